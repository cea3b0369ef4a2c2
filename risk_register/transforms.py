"""Mitigation transforms over outcomes.

A :class:`RiskTransform` maps an outcome to a mitigated outcome (after a
deductible, a cap, a coinsurance share...). Transforms compose into a
second monoid, distinct from outcome combination: :data:`IDENTITY_TRANSFORM`
is neutral and composition is associative, but order matters. A deductible
followed by a 50% share is not the same policy as a 50% share followed by
the deductible.

Examples:
    Compare the two orders on a single 100,000 loss::

        outcome = Outcome("fire", {0: 100_000}, n_trials=1)
        deductible = apply_deductible(10_000)
        share = scale_losses(0.5)

        deductible.and_then(share)(outcome).outcomes  # {0: 45000}
        share.and_then(deductible)(outcome).outcomes  # {0: 40000}
"""

from dataclasses import dataclass
from typing import Callable, Dict

from .decimal_utils import Numeric, round_half_up, to_decimal
from .exceptions import ValidationError, ValidationErrorCode, ValidationFailed
from .outcome import Loss, Outcome, TrialId


@dataclass(frozen=True)
class RiskTransform:
    """An outcome-to-outcome function with composition helpers.

    Attributes:
        run: The underlying function.
        label: Human-readable description used in ``repr``.
    """

    run: Callable[[Outcome], Outcome]
    label: str = "transform"

    def __call__(self, outcome: Outcome) -> Outcome:
        return self.run(outcome)

    def and_then(self, that: "RiskTransform") -> "RiskTransform":
        """Apply this transform, then ``that`` (left to right)."""
        return RiskTransform(lambda r: that.run(self.run(r)), f"{self.label} >> {that.label}")

    def compose(self, that: "RiskTransform") -> "RiskTransform":
        """Apply ``that``, then this transform (right to left)."""
        return RiskTransform(lambda r: self.run(that.run(r)), f"{that.label} >> {self.label}")

    def __repr__(self) -> str:
        return f"RiskTransform({self.label})"


IDENTITY_TRANSFORM = RiskTransform(lambda r: r, "identity")


def combine_transforms(left: RiskTransform, right: RiskTransform) -> RiskTransform:
    """Monoid operation on transforms: ``left`` then ``right``."""
    return left.and_then(right)


def _require_non_negative(value: Numeric, field_name: str) -> None:
    if to_decimal(value) < 0:
        raise ValidationFailed.single(
            field_name,
            ValidationErrorCode.INVALID_RANGE,
            f"{field_name} must be non-negative, got {value}",
        )


def _whole_amount(value: Numeric, field_name: str) -> Loss:
    """Validate a deductible or cap: a non-negative whole amount, returned as int."""
    amount = to_decimal(value)
    if amount.is_finite():
        _require_non_negative(amount, field_name)
    if not amount.is_finite() or amount != amount.to_integral_value():
        raise ValidationFailed.single(
            field_name,
            ValidationErrorCode.INVALID_FORMAT,
            f"{field_name} must be a whole amount, got {value}",
        )
    return int(amount)


def _with_losses(outcome: Outcome, losses: Dict[TrialId, Loss]) -> Outcome:
    return Outcome(outcome.name, losses, outcome.n_trials)


def apply_deductible(deductible: Loss) -> RiskTransform:
    """Subtract ``deductible`` from every loss, dropping trials left at or below zero.

    Raises:
        ValidationFailed: If ``deductible`` is negative or fractional.
    """
    deductible = _whole_amount(deductible, "deductible")

    def run(outcome: Outcome) -> Outcome:
        return _with_losses(
            outcome,
            {t: loss - deductible for t, loss in outcome.outcomes.items() if loss > deductible},
        )

    return RiskTransform(run, f"deductible({deductible})")


def cap_losses(cap: Loss) -> RiskTransform:
    """Clamp every loss to at most ``cap``.

    Raises:
        ValidationFailed: If ``cap`` is negative or fractional.
    """
    cap = _whole_amount(cap, "cap")

    def run(outcome: Outcome) -> Outcome:
        return _with_losses(outcome, {t: min(loss, cap) for t, loss in outcome.outcomes.items()})

    return RiskTransform(run, f"cap({cap})")


def scale_losses(factor: Numeric) -> RiskTransform:
    """Multiply every loss by ``factor``, rounding half up and dropping zeros.

    Scaling is done in decimal arithmetic, so ``scale_losses(0.5)`` on 90,000
    is exactly 45,000.

    Raises:
        ValidationFailed: If ``factor`` is negative.
    """
    _require_non_negative(factor, "factor")
    k = to_decimal(factor)

    def run(outcome: Outcome) -> Outcome:
        scaled = {t: round_half_up(loss * k) for t, loss in outcome.outcomes.items()}
        return _with_losses(outcome, {t: loss for t, loss in scaled.items() if loss > 0})

    return RiskTransform(run, f"scale({factor})")


def insurance_policy(deductible: Loss, cap: Loss) -> RiskTransform:
    """Deductible followed by a cap on what remains.

    Args:
        deductible: Amount retained per trial.
        cap: Maximum recovery after the deductible; must exceed ``deductible``.

    Raises:
        ValidationFailed: If ``deductible < 0`` or ``cap <= deductible``.
    """
    errors = []
    if deductible < 0:
        errors.append(("deductible", f"Deductible must be non-negative, got {deductible}"))
    if cap <= deductible:
        errors.append(("cap", f"Cap ({cap}) must be greater than deductible ({deductible})"))
    if errors:
        raise ValidationFailed(
            [ValidationError(f, ValidationErrorCode.CONSTRAINT_VIOLATION, m) for f, m in errors]
        )
    return combine_transforms(apply_deductible(deductible), cap_losses(cap))


def filter_below_threshold(threshold: Loss) -> RiskTransform:
    """Keep only trials whose loss is at least ``threshold``."""

    def run(outcome: Outcome) -> Outcome:
        return _with_losses(
            outcome, {t: loss for t, loss in outcome.outcomes.items() if loss >= threshold}
        )

    return RiskTransform(run, f"filter(>={threshold})")
