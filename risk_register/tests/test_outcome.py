"""Tests for outcomes and the combination monoid."""

from decimal import Decimal

from hypothesis import given, settings
from hypothesis import strategies as st
import numpy as np
import pytest

from risk_register.exceptions import ValidationErrorCode, ValidationFailed
from risk_register.outcome import IDENTITY, Outcome, TreeOutcome, combine, combine_all

N_TRIALS = 50

loss_maps = st.dictionaries(
    st.integers(min_value=0, max_value=N_TRIALS - 1),
    st.integers(min_value=0, max_value=10**9),
    max_size=N_TRIALS,
)


def outcome_of(losses, name="node"):
    return Outcome(name, losses, N_TRIALS)


class TestOutcome:
    """Test the sparse outcome map."""

    def test_zero_losses_are_dropped(self):
        outcome = Outcome("cyber", {1: 500, 2: 0, 3: 700}, n_trials=10)
        assert outcome.outcomes == {1: 500, 3: 700}
        assert outcome.outcome_of(2) == 0
        assert outcome.trial_ids() == [1, 3]

    def test_negative_loss_rejected(self):
        with pytest.raises(ValidationFailed) as exc_info:
            Outcome("cyber", {1: -5}, n_trials=10)
        assert exc_info.value.codes == [ValidationErrorCode.INVALID_RANGE]

    def test_negative_trial_count_rejected(self):
        with pytest.raises(ValidationFailed, match="non-negative"):
            Outcome("cyber", {}, n_trials=-1)

    def test_min_max_and_counts(self):
        outcome = Outcome("cyber", {0: 300, 1: 100, 2: 300, 7: 900}, n_trials=10)
        assert outcome.min_loss == 100
        assert outcome.max_loss == 900
        assert outcome.outcome_count == {100: 1, 300: 2, 900: 1}
        assert list(outcome.outcome_count) == [100, 300, 900]

    def test_empty_outcome(self):
        outcome = Outcome.empty("quiet", 1_000)
        assert outcome.min_loss == 0
        assert outcome.max_loss == 0
        assert not outcome.is_identity
        assert outcome.prob_of_exceedance(1) == 0

    def test_exceedance_counts_zero_loss_trials(self):
        outcome = Outcome("cyber", {1: 500, 4: 1_000}, n_trials=10)
        assert outcome.prob_of_exceedance(0) == 1
        assert outcome.prob_of_exceedance(-5) == 1
        assert outcome.prob_of_exceedance(500) == Decimal("0.2")
        assert outcome.prob_of_exceedance(501) == Decimal("0.1")
        assert outcome.prob_of_exceedance(1_000) == Decimal("0.1")
        assert outcome.prob_of_exceedance(1_001) == 0

    def test_fractional_threshold_rounds_up(self):
        outcome = Outcome("cyber", {1: 500, 4: 1_000}, n_trials=10)
        assert outcome.prob_of_exceedance(500.5) == Decimal("0.1")
        assert outcome.prob_of_exceedance("499.9") == Decimal("0.2")

    def test_identity_has_no_exceedance(self):
        assert IDENTITY.is_identity
        assert IDENTITY.prob_of_exceedance(0) == 0

    def test_numpy_integer_threshold(self):
        outcome = Outcome("cyber", {1: 10, 2: 20}, n_trials=4)
        assert outcome.prob_of_exceedance(np.int64(15)) == Decimal("0.25")
        assert outcome.prob_of_exceedance(np.float64(10.0)) == Decimal("0.5")

    def test_infinite_threshold(self):
        outcome = Outcome("cyber", {1: 10, 2: 20}, n_trials=4)
        assert outcome.prob_of_exceedance(float("inf")) == 0
        assert outcome.prob_of_exceedance(float("-inf")) == 1

    def test_nan_threshold_rejected(self):
        outcome = Outcome("cyber", {1: 10, 2: 20}, n_trials=4)
        with pytest.raises(ValueError, match="must be a number"):
            outcome.prob_of_exceedance(float("nan"))

    def test_fractional_loss_rejected(self):
        with pytest.raises(ValidationFailed) as exc_info:
            Outcome("cyber", {1: 89.5}, n_trials=10)
        assert exc_info.value.codes == [ValidationErrorCode.INVALID_FORMAT]

    @given(loss_maps, st.integers(min_value=-10, max_value=10**9 + 10))
    def test_exceedance_is_a_probability(self, losses, threshold):
        p = outcome_of(losses).prob_of_exceedance(threshold)
        assert 0 <= p <= 1

    @given(loss_maps, st.integers(min_value=0, max_value=10**9), st.integers(0, 10**6))
    def test_exceedance_is_non_increasing(self, losses, threshold, delta):
        outcome = outcome_of(losses)
        assert outcome.prob_of_exceedance(threshold + delta) <= outcome.prob_of_exceedance(
            threshold
        )

    def test_with_name_keeps_losses(self):
        outcome = Outcome("cyber", {1: 5}, n_trials=3)
        renamed = outcome.with_name("ops")
        assert renamed.name == "ops"
        assert renamed.outcomes == outcome.outcomes
        assert renamed.n_trials == 3


class TestCombine:
    """Test trial-wise combination."""

    def test_sums_shared_trials(self):
        a = Outcome("cyber", {1: 500, 4: 1_000}, n_trials=10)
        b = Outcome("hardware", {4: 250, 6: 75}, n_trials=10)
        combined = combine(a, b)
        assert combined.outcomes == {1: 500, 4: 1_250, 6: 75}
        assert combined.name == "cyber"
        assert combined.n_trials == 10

    def test_anonymous_left_takes_right_name(self):
        combined = combine(Outcome("", {1: 1}, 5), Outcome("fire", {2: 2}, 5))
        assert combined.name == "fire"

    def test_trial_count_mismatch(self):
        with pytest.raises(ValidationFailed) as exc_info:
            combine(Outcome("a-1", {}, 10), Outcome("b-1", {}, 20))
        assert exc_info.value.codes == [ValidationErrorCode.INVALID_COMBINATION]
        assert "a-1=10" in str(exc_info.value)

    def test_identity_is_returned_unchanged(self):
        a = Outcome("cyber", {1: 5}, 10)
        assert combine(IDENTITY, a) is a
        assert combine(a, IDENTITY) is a

    def test_combine_all_empty_is_identity(self):
        assert combine_all([]) is IDENTITY

    @given(loss_maps, loss_maps)
    def test_commutative(self, x, y):
        a, b = outcome_of(x, "a-1"), outcome_of(y, "b-1")
        assert combine(a, b).outcomes == combine(b, a).outcomes

    @given(loss_maps, loss_maps, loss_maps)
    @settings(max_examples=50)
    def test_associative(self, x, y, z):
        a, b, c = outcome_of(x), outcome_of(y), outcome_of(z)
        assert combine(combine(a, b), c) == combine(a, combine(b, c))

    @given(loss_maps)
    def test_identity_laws(self, x):
        a = outcome_of(x)
        assert combine(IDENTITY, a) == a
        assert combine(a, IDENTITY) == a

    @given(st.lists(loss_maps, min_size=1, max_size=5))
    @settings(max_examples=50)
    def test_fold_order_does_not_matter(self, maps):
        outcomes = [outcome_of(m) for m in maps]
        assert combine_all(outcomes) == combine_all(reversed(outcomes))


class TestTreeOutcome:
    """Test the hierarchical result wrapper."""

    def test_flatten_and_find(self):
        cyber = TreeOutcome("cyber", Outcome("cyber", {1: 5}, 3))
        hardware = TreeOutcome("hardware", Outcome("hardware", {2: 7}, 3))
        ops = TreeOutcome("ops", combine(cyber.outcome, hardware.outcome), (cyber, hardware))

        assert list(ops.flatten()) == ["ops", "cyber", "hardware"]
        assert ops.find("hardware") is hardware
        assert ops.find("nope") is None
        assert cyber.is_leaf
        assert not ops.is_leaf
