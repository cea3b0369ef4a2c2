"""Cache-aside read path for node outcomes.

:class:`RiskResultResolver` is the one way callers obtain a node's outcome:
a cache hit returns immediately; a miss simulates whatever beneath the node
is not cached yet, stores every newly computed node, and returns the
result. Curve and exceedance queries are thin layers on top::

    outcome = resolver.ensure_cached(tree, "ops")
    points = generate_curve_points(outcome)
    outcome.prob_of_exceedance(250_000)

On a miss the resolver walks down from the requested nodes, stopping at
nodes that are already cached. The uncached leaves found this way are
simulated in parallel on a bounded pool, each cached as soon as it
completes, and the uncached portfolios are then aggregated bottom-up.

Cancelling through a ``threading.Event`` leaves every completed node
cached; whatever was still in progress is simply absent and will be
recomputed on the next access.
"""

import logging
import threading
import time
from typing import Dict, Iterable, List, Optional

from .cache import TreeCacheManager
from .config import Config, SimulationConfig
from .exceptions import SimulationCancelled
from .outcome import Outcome
from .parallel_executor import ParallelExecutor
from .risk_node import RiskLeaf, RiskPortfolio
from .simulation_semaphore import SimulationSemaphore
from .simulator import Simulator
from .telemetry import SimulationTelemetry
from .tree_index import RiskTree

logger = logging.getLogger(__name__)


class RiskResultResolver:
    """Resolves node outcomes through a per-tree cache.

    Args:
        cache_manager: Owner of the per-tree caches.
        config: Trial count, parallelism and seeds for simulations.
        semaphore: Bounds concurrently running simulations; defaults to
            ``config.max_concurrent_simulations`` permits.
        telemetry: Span and metric sink; defaults to a no-op.
    """

    def __init__(
        self,
        cache_manager: TreeCacheManager,
        config: Optional[SimulationConfig] = None,
        semaphore: Optional[SimulationSemaphore] = None,
        telemetry: Optional[SimulationTelemetry] = None,
    ):
        self.config = config or SimulationConfig()
        self.cache_manager = cache_manager
        self.semaphore = semaphore or SimulationSemaphore.from_config(self.config)
        self.telemetry = telemetry or SimulationTelemetry()
        self.simulator = Simulator.from_config(self.config)

    @classmethod
    def from_config(
        cls,
        config: Config,
        cache_manager: Optional[TreeCacheManager] = None,
        telemetry: Optional[SimulationTelemetry] = None,
    ) -> "RiskResultResolver":
        """Build a resolver from the top-level configuration."""
        logger.info("Resolver configured: %s", config.summary())
        return cls(
            cache_manager or TreeCacheManager(),
            config.simulation,
            telemetry=telemetry,
        )

    def ensure_cached(
        self,
        tree: RiskTree,
        node_id: str,
        cancel_event: Optional[threading.Event] = None,
    ) -> Outcome:
        """Outcome of ``node_id``, from the cache or freshly simulated.

        Args:
            tree: Tree holding the node; its id scopes the cache.
            node_id: Node to resolve.
            cancel_event: Abandon the simulation when set.

        Returns:
            The node's outcome.

        Raises:
            NodeNotFoundError: If ``node_id`` is not in ``tree``.
            DistributionFitError: If a leaf's distribution cannot be fitted.
            SimulationCancelled: If ``cancel_event`` is set before completion.
        """
        cache = self.cache_manager.cache_for(tree.id)
        with self.telemetry.span("ensure_cached", tree_id=tree.id, node_id=node_id) as span:
            cached = cache.get(node_id)
            span["cache_hit"] = cached is not None
            if cached is not None:
                return cached
            return self._simulate_subtree(tree, [node_id], cancel_event)[node_id]

    def ensure_cached_all(
        self,
        tree: RiskTree,
        node_ids: Iterable[str],
        cancel_event: Optional[threading.Event] = None,
    ) -> Dict[str, Outcome]:
        """Outcomes of several nodes of one tree.

        Cached nodes are returned as they are; all uncached ones are
        resolved together, so leaves they share are simulated once.

        Returns:
            Node id to outcome, in the order the ids were given.

        Raises:
            NodeNotFoundError: If any id is not in ``tree``.
            SimulationCancelled: If ``cancel_event`` is set before completion.
        """
        ids = list(dict.fromkeys(node_ids))
        cache = self.cache_manager.cache_for(tree.id)
        results: Dict[str, Outcome] = {}
        with self.telemetry.span("ensure_cached_all", tree_id=tree.id, n_nodes=len(ids)) as span:
            misses: List[str] = []
            for node_id in ids:
                cached = cache.get(node_id)
                if cached is None:
                    misses.append(node_id)
                else:
                    results[node_id] = cached
            span["cache_hits"] = len(results)
            span["cache_hit"] = not misses
            if misses:
                results.update(self._simulate_subtree(tree, misses, cancel_event))
        return {node_id: results[node_id] for node_id in ids}

    def _simulate_subtree(
        self,
        tree: RiskTree,
        node_ids: List[str],
        cancel_event: Optional[threading.Event],
    ) -> Dict[str, Outcome]:
        index = tree.index
        for node_id in node_ids:
            index.node(node_id)

        cache = self.cache_manager.cache_for(tree.id)
        known: Dict[str, Outcome] = {}
        leaves: List[RiskLeaf] = []
        portfolios: List[RiskPortfolio] = []
        visited = set()
        # the caller already looked these up and missed
        checked = set(node_ids)

        def plan(node_id: str) -> None:
            if node_id in visited:
                return
            visited.add(node_id)
            cached = None if node_id in checked else cache.get(node_id)
            if cached is not None:
                known[node_id] = cached
                return
            node = index.node(node_id)
            if isinstance(node, RiskLeaf):
                leaves.append(node)
                return
            for child_id in index.children_of(node_id):
                plan(child_id)
            portfolios.append(node)

        for node_id in node_ids:
            plan(node_id)

        def run_leaf(leaf: RiskLeaf) -> Outcome:
            start = time.perf_counter()
            outcome = self.simulator.simulate_leaf(leaf, cancel_event)
            cache.put(leaf.id, outcome)
            self.telemetry.record_duration(leaf.id, (time.perf_counter() - start) * 1000.0)
            self.telemetry.add_trials(leaf.id, self.simulator.n_trials)
            return outcome

        try:
            with self.semaphore.permit(cancel_event):
                logger.debug(
                    "Resolving %s in tree %s: %d leaves to simulate, %d portfolios to aggregate",
                    node_ids,
                    tree.id,
                    len(leaves),
                    len(portfolios),
                )
                executor = ParallelExecutor(n_workers=self.simulator.parallelism)
                outcomes = executor.map(run_leaf, leaves, cancel_event=cancel_event)
                known.update((leaf.id, outcome) for leaf, outcome in zip(leaves, outcomes))

                for portfolio in portfolios:
                    if cancel_event is not None and cancel_event.is_set():
                        raise SimulationCancelled(portfolio.id)
                    children = [known[child_id] for child_id in index.children_of(portfolio.id)]
                    outcome = self.simulator.aggregate(portfolio, children)
                    cache.put(portfolio.id, outcome)
                    known[portfolio.id] = outcome
        except SimulationCancelled as exc:
            if exc.node_id is None:
                raise SimulationCancelled(", ".join(node_ids)) from exc
            raise

        return {node_id: known[node_id] for node_id in node_ids}
