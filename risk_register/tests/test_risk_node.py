"""Tests for leaf and portfolio validation."""

import pytest

from risk_register.exceptions import ValidationErrorCode, ValidationFailed
from risk_register.risk_node import (
    NAME_MAX_LENGTH,
    RiskLeaf,
    RiskPortfolio,
    node_from_dict,
    validate_node_id,
)


def lognormal_leaf(**overrides):
    fields = {
        "id": "fire",
        "name": "Fire",
        "distribution_type": "lognormal",
        "probability": 0.1,
        "min_loss": 1_000,
        "max_loss": 50_000,
    }
    fields.update(overrides)
    return RiskLeaf(**fields)


def expert_leaf(**overrides):
    fields = {
        "id": "flood",
        "name": "Flood",
        "distribution_type": "expert",
        "probability": 0.1,
        "percentiles": (0.1, 0.5, 0.9),
        "quantiles": (1_000, 5_000, 20_000),
    }
    fields.update(overrides)
    return RiskLeaf(**fields)


class TestNodeId:
    """Test node id rules."""

    @pytest.mark.parametrize("value", ["abc", "cyber-risk", "ops_2", "A" * 30])
    def test_valid_ids(self, value):
        assert validate_node_id(value) == value

    @pytest.mark.parametrize(
        "value,code",
        [
            ("", ValidationErrorCode.REQUIRED_FIELD),
            (None, ValidationErrorCode.REQUIRED_FIELD),
            ("ab", ValidationErrorCode.INVALID_LENGTH),
            ("a" * 31, ValidationErrorCode.INVALID_LENGTH),
            ("has space", ValidationErrorCode.INVALID_PATTERN),
            ("dot.ted", ValidationErrorCode.INVALID_PATTERN),
            (123, ValidationErrorCode.INVALID_FORMAT),
        ],
    )
    def test_invalid_ids(self, value, code):
        with pytest.raises(ValidationFailed) as exc_info:
            validate_node_id(value, "nodeId")
        assert code in exc_info.value.codes
        assert exc_info.value.errors[0].field == "nodeId"


class TestRiskLeaf:
    """Test leaf construction and validation."""

    def test_valid_lognormal_leaf(self):
        leaf = lognormal_leaf()
        assert leaf.min_loss == 1_000
        assert leaf.percentiles == ()

    def test_valid_expert_leaf_normalises_to_tuples(self):
        leaf = expert_leaf(percentiles=[0.1, 0.5, 0.9], quantiles=[1, 2, 3])
        assert leaf.percentiles == (0.1, 0.5, 0.9)
        assert isinstance(leaf.quantiles, tuple)

    @pytest.mark.parametrize("probability", [0.0, 1.0, -0.2, 1.5, float("nan")])
    def test_probability_outside_open_interval(self, probability):
        with pytest.raises(ValidationFailed) as exc_info:
            lognormal_leaf(probability=probability)
        error = exc_info.value.errors[0]
        assert error.code == ValidationErrorCode.INVALID_RANGE
        assert error.field == "fire.probability"

    def test_expert_length_mismatch(self):
        with pytest.raises(ValidationFailed, match="same length") as exc_info:
            expert_leaf(quantiles=(1_000, 5_000))
        assert exc_info.value.codes == [ValidationErrorCode.INVALID_EXPERT_PARAMS]

    def test_expert_needs_two_points(self):
        with pytest.raises(ValidationFailed, match="at least 2 points"):
            expert_leaf(percentiles=(0.5,), quantiles=(1_000,))

    def test_expert_missing_arrays(self):
        with pytest.raises(ValidationFailed) as exc_info:
            expert_leaf(percentiles=(), quantiles=())
        assert exc_info.value.codes == [ValidationErrorCode.INVALID_EXPERT_PARAMS]

    def test_lognormal_min_not_below_max(self):
        with pytest.raises(ValidationFailed, match="must be less than maxLoss") as exc_info:
            lognormal_leaf(min_loss=50_000, max_loss=50_000)
        assert exc_info.value.codes == [ValidationErrorCode.INVALID_LOGNORMAL_PARAMS]

    def test_lognormal_missing_bounds(self):
        with pytest.raises(ValidationFailed) as exc_info:
            lognormal_leaf(max_loss=None)
        assert exc_info.value.codes == [ValidationErrorCode.INVALID_LOGNORMAL_PARAMS]

    def test_unsupported_distribution_type(self):
        with pytest.raises(ValidationFailed) as exc_info:
            lognormal_leaf(distribution_type="pareto")
        assert exc_info.value.codes == [ValidationErrorCode.UNSUPPORTED_DISTRIBUTION_TYPE]

    def test_errors_are_accumulated(self):
        """Every problem is reported at once."""
        with pytest.raises(ValidationFailed) as exc_info:
            RiskLeaf(
                id="x",
                name="",
                distribution_type="lognormal",
                probability=2.0,
                min_loss=10,
                max_loss=5,
            )
        codes = exc_info.value.codes
        assert ValidationErrorCode.INVALID_LENGTH in codes
        assert ValidationErrorCode.REQUIRED_FIELD in codes
        assert ValidationErrorCode.INVALID_RANGE in codes
        assert ValidationErrorCode.INVALID_LOGNORMAL_PARAMS in codes

    def test_name_too_long(self):
        with pytest.raises(ValidationFailed) as exc_info:
            lognormal_leaf(name="n" * (NAME_MAX_LENGTH + 1))
        assert exc_info.value.codes == [ValidationErrorCode.INVALID_LENGTH]

    def test_to_dict_round_trip(self):
        leaf = expert_leaf(parent_id="root")
        assert node_from_dict(leaf.to_dict()) == leaf


class TestRiskPortfolio:
    """Test portfolio construction and validation."""

    def test_valid_portfolio(self):
        portfolio = RiskPortfolio(id="ops", name="Operations", child_ids=["fire", "flood"])
        assert portfolio.child_ids == ("fire", "flood")

    def test_empty_children(self):
        with pytest.raises(ValidationFailed) as exc_info:
            RiskPortfolio(id="ops", name="Operations", child_ids=())
        assert exc_info.value.codes == [ValidationErrorCode.EMPTY_COLLECTION]

    def test_duplicate_children(self):
        with pytest.raises(ValidationFailed) as exc_info:
            RiskPortfolio(id="ops", name="Operations", child_ids=("fire", "fire"))
        assert ValidationErrorCode.DUPLICATE_VALUE in exc_info.value.codes

    def test_own_child(self):
        with pytest.raises(ValidationFailed) as exc_info:
            RiskPortfolio(id="ops", name="Operations", child_ids=("ops",))
        assert ValidationErrorCode.CONSTRAINT_VIOLATION in exc_info.value.codes

    def test_to_dict_round_trip(self):
        portfolio = RiskPortfolio(id="ops", name="Ops", child_ids=("fire",), parent_id="root")
        assert node_from_dict(portfolio.to_dict()) == portfolio


class TestNodeFromDict:
    """Test building nodes from plain dictionaries."""

    def test_camel_case_leaf(self):
        node = node_from_dict(
            {
                "id": "fire",
                "name": "Fire",
                "distributionType": "lognormal",
                "probability": 0.1,
                "minLoss": 100,
                "maxLoss": 1_000,
                "parentId": "root",
            }
        )
        assert isinstance(node, RiskLeaf)
        assert node.parent_id == "root"

    def test_child_ids_make_a_portfolio(self):
        node = node_from_dict({"id": "root", "name": "Root", "childIds": ["fire"]})
        assert isinstance(node, RiskPortfolio)

    def test_explicit_portfolio_type_without_children_is_rejected(self):
        with pytest.raises(ValidationFailed) as exc_info:
            node_from_dict({"type": "portfolio", "id": "root", "name": "Root"})
        assert exc_info.value.codes == [ValidationErrorCode.EMPTY_COLLECTION]
