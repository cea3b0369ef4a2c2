"""Sparse Monte Carlo trial engine and bottom-up tree aggregation.

For a leaf, the simulator runs trials ``0 .. n_trials - 1``, keeps only the
trials in which the risk occurs and the loss is positive, and returns them
as an :class:`~risk_register.outcome.Outcome`. Most trials of a low
probability risk produce nothing, so storage scales with the number of
losses rather than the number of trials.

For a portfolio, children are simulated (in parallel, on a bounded pool)
and their outcomes summed with :func:`~risk_register.outcome.combine_all`.

Every trial is a pure function of its counter and the seeds, so outcomes
are identical for any ``parallelism``.

Examples:
    Simulate a whole tree::

        simulator = Simulator(n_trials=10_000, parallelism=4)
        result = simulator.simulate_tree(tree.index, tree.index.root_id)
        result.outcome.prob_of_exceedance(50_000)
"""

import logging
import threading
from typing import TYPE_CHECKING, Dict, List, Optional, Tuple, Union

import numpy as np

from .config import SimulationConfig
from .exceptions import (
    NodeNotFoundError,
    SimulationCancelled,
    ValidationErrorCode,
    ValidationFailed,
)
from .hdr import stable_hash
from .loss_distributions import distribution_for_leaf
from .outcome import Outcome, TreeOutcome, combine_all
from .parallel_executor import ChunkingStrategy, ParallelExecutor
from .provenance import NodeProvenance
from .risk_node import RiskLeaf, RiskNode, RiskPortfolio
from .risk_sampler import RiskSampler

if TYPE_CHECKING:
    from .tree_index import TreeIndex

logger = logging.getLogger(__name__)


class Simulator:
    """Runs trials for leaves and aggregates portfolios.

    Args:
        n_trials: Trials per node.
        parallelism: Worker threads for trial chunks and for sibling nodes.
        seed3: First global seed.
        seed4: Second global seed.
        confidence_level: Mass between a lognormal leaf's bounds.
        progress_bar: Show a tqdm bar while chunks run.
        chunking_strategy: How trial ranges are split across workers.
    """

    def __init__(
        self,
        n_trials: int = 10_000,
        parallelism: int = 1,
        seed3: int = 0,
        seed4: int = 0,
        confidence_level: float = 0.90,
        progress_bar: bool = False,
        chunking_strategy: Optional[ChunkingStrategy] = None,
    ):
        if n_trials <= 0:
            raise ValidationFailed.single(
                "nTrials",
                ValidationErrorCode.INVALID_RANGE,
                f"n_trials must be positive, got {n_trials}",
            )
        if parallelism < 1:
            raise ValidationFailed.single(
                "parallelism",
                ValidationErrorCode.INVALID_RANGE,
                f"parallelism must be at least 1, got {parallelism}",
            )
        self.n_trials = n_trials
        self.parallelism = parallelism
        self.seed3 = seed3
        self.seed4 = seed4
        self.confidence_level = confidence_level
        self.progress_bar = progress_bar
        self.chunking_strategy = chunking_strategy or ChunkingStrategy()

    @classmethod
    def from_config(cls, config: SimulationConfig, **overrides) -> "Simulator":
        """Build a simulator from configuration defaults.

        Args:
            config: Simulation configuration.
            **overrides: Constructor arguments that replace the defaults.
        """
        kwargs = {
            "n_trials": config.default_n_trials,
            "parallelism": config.default_parallelism,
            "seed3": config.default_seed3,
            "seed4": config.default_seed4,
            "confidence_level": config.lognormal_confidence_level,
            "progress_bar": config.progress_bar,
        }
        kwargs.update(overrides)
        return cls(**kwargs)

    def create_sampler(self, leaf: RiskLeaf) -> Tuple[RiskSampler, NodeProvenance]:
        """Fit the leaf's distribution and bind it to generator streams.

        Returns:
            The sampler and a provenance record that reproduces it.

        Raises:
            DistributionFitError: If the leaf's parameters cannot be fitted.
        """
        distribution = distribution_for_leaf(leaf, self.confidence_level)
        sampler = RiskSampler.from_distribution(
            entity_id=stable_hash(leaf.id),
            risk_id=leaf.id,
            probability=leaf.probability,
            distribution=distribution,
            seed3=self.seed3,
            seed4=self.seed4,
        )
        provenance = NodeProvenance(
            risk_id=leaf.id,
            entity_id=sampler.entity_id,
            occurrence_var_id=sampler.occurrence_var_id,
            loss_var_id=sampler.loss_var_id,
            seed3=self.seed3,
            seed4=self.seed4,
            distribution_type=leaf.distribution_type,
            distribution_params=distribution.params(),
        )
        return sampler, provenance

    def perform_trials(
        self,
        sampler: RiskSampler,
        n_trials: Optional[int] = None,
        parallelism: Optional[int] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> Dict[int, int]:
        """Run trials for one sampler, keeping only positive losses.

        Args:
            sampler: Sampler for the risk.
            n_trials: Number of trials (defaults to the simulator's).
            parallelism: Worker threads (defaults to the simulator's).
            cancel_event: Abandon the run when set.

        Returns:
            Trial id to loss, for occurring trials with a positive loss.

        Raises:
            SimulationCancelled: If ``cancel_event`` is set before completion.
        """
        n = self.n_trials if n_trials is None else n_trials
        executor = ParallelExecutor(
            n_workers=self.parallelism if parallelism is None else parallelism,
            chunking_strategy=self.chunking_strategy,
        )

        def run_chunk(start: int, end: int) -> Tuple[np.ndarray, np.ndarray]:
            trials = np.arange(start, end, dtype=np.int64)
            hits = trials[sampler.occurrences(trials)]
            if len(hits) == 0:
                return hits, np.zeros(0, dtype=np.int64)
            losses = sampler.losses(hits)
            keep = losses > 0
            return hits[keep], losses[keep]

        chunks: List[Tuple[np.ndarray, np.ndarray]] = executor.map_chunks(
            run_chunk,
            n,
            progress_bar=self.progress_bar,
            desc=f"Simulating {sampler.risk_id}",
            cancel_event=cancel_event,
        )
        results: Dict[int, int] = {}
        for trial_ids, losses in chunks:
            results.update(zip(trial_ids.tolist(), losses.tolist()))
        return results

    def simulate_leaf(
        self, leaf: RiskLeaf, cancel_event: Optional[threading.Event] = None
    ) -> Outcome:
        """Simulate one leaf.

        Raises:
            SimulationCancelled: Carrying ``leaf.id``, if ``cancel_event`` is set
                before completion.
        """
        sampler, _ = self.create_sampler(leaf)
        try:
            trials = self.perform_trials(sampler, cancel_event=cancel_event)
        except SimulationCancelled as exc:
            if exc.node_id is None:
                raise SimulationCancelled(leaf.id) from exc
            raise
        logger.debug(
            "Simulated leaf %s: %d of %d trials with loss", leaf.id, len(trials), self.n_trials
        )
        return Outcome(leaf.id, trials, self.n_trials)

    def aggregate(self, portfolio: RiskPortfolio, children: List[Outcome]) -> Outcome:
        """Sum child outcomes into the portfolio's outcome.

        Raises:
            ValidationFailed: If the portfolio has no children.
        """
        if not children:
            raise ValidationFailed.single(
                f"{portfolio.id}.childIds",
                ValidationErrorCode.EMPTY_COLLECTION,
                f"RiskPortfolio '{portfolio.id}' has no children",
            )
        return combine_all(children).with_name(portfolio.id)

    def simulate_tree(
        self,
        index: "TreeIndex",
        node_id: str,
        cancel_event: Optional[threading.Event] = None,
    ) -> TreeOutcome:
        """Simulate ``node_id`` and everything beneath it.

        Args:
            index: Index of the tree holding the node.
            node_id: Node to simulate.
            cancel_event: Abandon the run when set.

        Returns:
            Hierarchical result mirroring the subtree.

        Raises:
            NodeNotFoundError: If ``node_id`` is not in the index.
            ValidationFailed: If a portfolio has no children.
        """
        node = index.get(node_id)
        if node is None:
            raise NodeNotFoundError(node_id)
        if isinstance(node, RiskLeaf):
            return TreeOutcome(node.id, self.simulate_leaf(node, cancel_event))

        child_ids = index.children_of(node.id)
        if not child_ids:
            self.aggregate(node, [])
        executor = ParallelExecutor(n_workers=self.parallelism)
        children = executor.map(
            lambda child_id: self.simulate_tree(index, child_id, cancel_event),
            child_ids,
            cancel_event=cancel_event,
        )
        outcome = self.aggregate(node, [child.outcome for child in children])
        return TreeOutcome(node.id, outcome, tuple(children))

    def simulate(
        self,
        node: RiskNode,
        n_trials: Optional[int] = None,
        parallelism: Optional[int] = None,
        index: Optional["TreeIndex"] = None,
    ) -> Union[Outcome, TreeOutcome]:
        """Simulate a node with optional trial-count and parallelism overrides.

        Leaves return an :class:`Outcome`; portfolios need the tree's index
        to find their children and return a :class:`TreeOutcome`.

        Raises:
            ValidationFailed: If a portfolio is given without an index.
        """
        simulator = self
        if n_trials is not None or parallelism is not None:
            simulator = Simulator(
                n_trials=self.n_trials if n_trials is None else n_trials,
                parallelism=self.parallelism if parallelism is None else parallelism,
                seed3=self.seed3,
                seed4=self.seed4,
                confidence_level=self.confidence_level,
                progress_bar=self.progress_bar,
                chunking_strategy=self.chunking_strategy,
            )
        if isinstance(node, RiskLeaf):
            return simulator.simulate_leaf(node)
        if index is None:
            raise ValidationFailed.single(
                "index",
                ValidationErrorCode.REQUIRED_FIELD,
                f"Simulating portfolio '{node.id}' requires the tree index",
            )
        return simulator.simulate_tree(index, node.id)
