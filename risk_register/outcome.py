"""Per-node simulation outcomes and the combination monoid.

An :class:`Outcome` records, for one node, the loss in every trial where
the loss was non-zero, together with the total number of trials run. Trials
that produced no loss are not stored; they still count towards ``n_trials``
and therefore towards every exceedance probability.

Outcomes combine by summing losses trial by trial. :func:`combine` is
associative and commutative on the loss map, and :data:`IDENTITY` (no
trials, no losses) is its neutral element, so a portfolio's outcome is the
same whatever order its children are folded in. Losses are integers, so the
laws hold exactly.

Examples:
    Aggregating two leaves::

        a = Outcome("cyber", {1: 500, 4: 1_000}, n_trials=10)
        b = Outcome("hardware", {4: 250}, n_trials=10)
        combine(a, b).outcomes  # {1: 500, 4: 1250}
"""

from collections import Counter
from dataclasses import dataclass, field, replace
from decimal import ROUND_CEILING, Decimal
from functools import cached_property, reduce
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

import numpy as np

from .decimal_utils import ONE, ZERO, Numeric, exceedance_ratio, to_decimal
from .exceptions import ValidationErrorCode, ValidationFailed

TrialId = int
Loss = int


@dataclass(frozen=True)
class Outcome:
    """Sparse trial-to-loss map for one node.

    Attributes:
        name: Node id the outcome belongs to (empty for anonymous results).
        outcomes: Loss per trial, only for trials with a positive loss.
        n_trials: Total number of trials simulated, including zero-loss ones.
    """

    name: str
    outcomes: Mapping[TrialId, Loss] = field(default_factory=dict)
    n_trials: int = 0

    def __post_init__(self):
        """Copy the loss map, dropping zero entries and rejecting negative or fractional ones."""
        if self.n_trials < 0:
            raise ValidationFailed.single(
                "nTrials",
                ValidationErrorCode.INVALID_RANGE,
                f"n_trials must be non-negative, got {self.n_trials}",
            )
        cleaned: Dict[TrialId, Loss] = {}
        for trial, loss in self.outcomes.items():
            if loss < 0:
                raise ValidationFailed.single(
                    "outcomes",
                    ValidationErrorCode.INVALID_RANGE,
                    f"Loss for trial {trial} is negative: {loss}",
                )
            if loss != int(loss):
                raise ValidationFailed.single(
                    "outcomes",
                    ValidationErrorCode.INVALID_FORMAT,
                    f"Loss for trial {trial} is not a whole amount: {loss}",
                )
            if loss > 0:
                cleaned[int(trial)] = int(loss)
        object.__setattr__(self, "outcomes", cleaned)

    @classmethod
    def empty(cls, name: str, n_trials: int) -> "Outcome":
        """An outcome in which no trial produced a loss."""
        return cls(name, {}, n_trials)

    @property
    def is_identity(self) -> bool:
        """True for the neutral element: no trials and no losses."""
        return self.n_trials == 0 and not self.outcomes

    @cached_property
    def _sorted_losses(self) -> np.ndarray:
        values = np.fromiter(self.outcomes.values(), dtype=np.int64, count=len(self.outcomes))
        return np.sort(values)

    @cached_property
    def max_loss(self) -> Loss:
        """Largest stored loss, 0 when no trial had a loss."""
        return int(self._sorted_losses[-1]) if len(self._sorted_losses) else 0

    @cached_property
    def min_loss(self) -> Loss:
        """Smallest stored (non-zero) loss, 0 when no trial had a loss."""
        return int(self._sorted_losses[0]) if len(self._sorted_losses) else 0

    @cached_property
    def outcome_count(self) -> Dict[Loss, int]:
        """Frequency of each stored loss value, ordered by loss."""
        return dict(sorted(Counter(self.outcomes.values()).items()))

    def outcome_of(self, trial: TrialId) -> Loss:
        """Loss in ``trial``; 0 when the trial produced no loss."""
        return self.outcomes.get(trial, 0)

    def trial_ids(self) -> List[TrialId]:
        """Ids of the trials with a positive loss, ascending."""
        return sorted(self.outcomes)

    def prob_of_exceedance(self, threshold: Numeric) -> Decimal:
        """Exact fraction of all trials whose loss is at least ``threshold``.

        Zero-loss trials are part of the denominator, so the result is 1 for
        any threshold at or below zero and 0 above :attr:`max_loss`.

        Args:
            threshold: Loss threshold.

        Returns:
            ``P(loss >= threshold)`` as a :class:`~decimal.Decimal`.

        Raises:
            ValueError: If ``threshold`` is NaN.
        """
        limit = to_decimal(threshold)
        if limit.is_nan():
            raise ValueError(f"Exceedance threshold must be a number, got {threshold!r}")
        if self.n_trials == 0 or limit > self.max_loss:
            return ZERO
        if limit <= 0:
            return ONE
        # losses are integers, so loss >= t  <=>  loss >= ceil(t)
        bound = int(limit.to_integral_value(rounding=ROUND_CEILING))
        losses = self._sorted_losses
        count = len(losses) - int(np.searchsorted(losses, bound, side="left"))
        return exceedance_ratio(count, self.n_trials)

    def with_name(self, name: str) -> "Outcome":
        """Copy of this outcome under another name."""
        return replace(self, name=name)

    def __repr__(self) -> str:
        return (
            f"Outcome(name={self.name!r}, stored={len(self.outcomes)}, "
            f"n_trials={self.n_trials})"
        )


IDENTITY = Outcome("", {}, 0)


def combine(a: Outcome, b: Outcome) -> Outcome:
    """Sum two outcomes trial by trial.

    The trial-id domains are unioned and losses for shared trials added.
    The result keeps ``a``'s name, or ``b``'s if ``a`` is anonymous.

    Args:
        a: Left operand.
        b: Right operand.

    Returns:
        The combined outcome. If either side is :data:`IDENTITY` the other
        side is returned unchanged.

    Raises:
        ValidationFailed: If both sides are non-identity and were simulated
            with different trial counts.
    """
    if a.is_identity:
        return b
    if b.is_identity:
        return a
    if a.n_trials != b.n_trials:
        raise ValidationFailed.single(
            "nTrials",
            ValidationErrorCode.INVALID_COMBINATION,
            f"Cannot combine outcomes with different trial counts: "
            f"{a.name or '<anonymous>'}={a.n_trials}, {b.name or '<anonymous>'}={b.n_trials}",
        )
    merged = dict(a.outcomes)
    for trial, loss in b.outcomes.items():
        merged[trial] = merged.get(trial, 0) + loss
    return Outcome(a.name or b.name, merged, a.n_trials)


def combine_all(outcomes: Iterable[Outcome]) -> Outcome:
    """Fold any number of outcomes with :func:`combine`, starting from :data:`IDENTITY`."""
    return reduce(combine, outcomes, IDENTITY)


@dataclass(frozen=True)
class TreeOutcome:
    """Hierarchical simulation result mirroring the shape of the tree.

    Attributes:
        id: Node id.
        outcome: Outcome of the node itself.
        children: Results of the direct children, in tree order (empty for leaves).
    """

    id: str
    outcome: Outcome
    children: Tuple["TreeOutcome", ...] = ()

    @property
    def is_leaf(self) -> bool:
        return not self.children

    def flatten(self) -> Dict[str, Outcome]:
        """Every node's outcome keyed by id, parents before children."""
        flat = {self.id: self.outcome}
        for child in self.children:
            flat.update(child.flatten())
        return flat

    def find(self, node_id: str) -> Optional["TreeOutcome"]:
        """The sub-result for ``node_id``, or None."""
        if self.id == node_id:
            return self
        for child in self.children:
            found = child.find(node_id)
            if found is not None:
                return found
        return None
