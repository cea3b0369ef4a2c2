"""Tests for the trial engine and tree aggregation."""

import threading

import pytest

from risk_register.exceptions import (
    DistributionFitError,
    NodeNotFoundError,
    SimulationCancelled,
    ValidationErrorCode,
    ValidationFailed,
)
from risk_register.outcome import Outcome, combine
from risk_register.risk_node import RiskLeaf
from risk_register.simulator import Simulator


class TestSimulatorSetup:
    """Test construction and configuration."""

    def test_from_config(self, small_config):
        simulator = Simulator.from_config(small_config)
        assert simulator.n_trials == 2_000
        assert simulator.parallelism == 2
        assert simulator.confidence_level == 0.90

    def test_from_config_overrides(self, small_config):
        simulator = Simulator.from_config(small_config, n_trials=500, seed3=9)
        assert simulator.n_trials == 500
        assert simulator.seed3 == 9

    @pytest.mark.parametrize("kwargs", [{"n_trials": 0}, {"parallelism": 0}])
    def test_invalid_arguments(self, kwargs):
        with pytest.raises(ValidationFailed) as exc_info:
            Simulator(**kwargs)
        assert exc_info.value.codes == [ValidationErrorCode.INVALID_RANGE]

    def test_create_sampler_provenance(self, cyber_leaf):
        sampler, provenance = Simulator(seed3=3, seed4=4).create_sampler(cyber_leaf)
        assert provenance.risk_id == "cyber"
        assert provenance.loss_var_id == sampler.loss_var_id
        assert (provenance.seed3, provenance.seed4) == (3, 4)
        assert provenance.distribution_params["type"] == "metalog"
        assert provenance.to_dict()["timestamp"].endswith("+00:00")


class TestSimulateLeaf:
    """Test single-leaf simulation."""

    def test_outcome_shape(self, cyber_leaf):
        outcome = Simulator(n_trials=5_000).simulate_leaf(cyber_leaf)
        assert outcome.name == "cyber"
        assert outcome.n_trials == 5_000
        assert all(0 <= trial < 5_000 for trial in outcome.outcomes)
        assert all(loss > 0 for loss in outcome.outcomes.values())

    def test_occurrence_frequency(self, cyber_leaf):
        outcome = Simulator(n_trials=10_000).simulate_leaf(cyber_leaf)
        assert len(outcome.outcomes) / 10_000 == pytest.approx(0.3, abs=0.02)

    @pytest.mark.parametrize("parallelism", [2, 4, 8])
    def test_parallelism_does_not_change_outcome(self, hardware_leaf, parallelism):
        baseline = Simulator(n_trials=6_000, parallelism=1).simulate_leaf(hardware_leaf)
        parallel = Simulator(n_trials=6_000, parallelism=parallelism).simulate_leaf(hardware_leaf)
        assert parallel == baseline

    def test_seed_changes_outcome(self, hardware_leaf):
        a = Simulator(n_trials=2_000, seed4=1).simulate_leaf(hardware_leaf)
        b = Simulator(n_trials=2_000, seed4=2).simulate_leaf(hardware_leaf)
        assert a != b

    def test_fit_failure_names_leaf(self):
        leaf = RiskLeaf(
            id="wobbly",
            name="Wobbly",
            distribution_type="expert",
            probability=0.5,
            percentiles=(0.1, 0.5, 0.9),
            quantiles=(5_000, 1_000, 9_000),
        )
        with pytest.raises(DistributionFitError) as exc_info:
            Simulator(n_trials=100).simulate_leaf(leaf)
        assert exc_info.value.node_id == "wobbly"

    def test_cancelled_before_start(self, cyber_leaf):
        cancel = threading.Event()
        cancel.set()
        with pytest.raises(SimulationCancelled) as exc_info:
            Simulator(n_trials=5_000, parallelism=2).simulate_leaf(cyber_leaf, cancel)
        assert exc_info.value.node_id == "cyber"


class TestSimulateTree:
    """Test bottom-up aggregation."""

    def test_portfolio_is_sum_of_children(self, risk_tree):
        result = Simulator(n_trials=3_000, parallelism=2).simulate_tree(risk_tree.index, "root")
        flat = result.flatten()

        assert list(flat) == ["root", "ops", "cyber", "hardware"]
        assert flat["ops"] == combine(flat["cyber"], flat["hardware"]).with_name("ops")
        assert flat["root"] == flat["ops"].with_name("root")

    def test_tree_matches_standalone_leaves(self, risk_tree, cyber_leaf):
        simulator = Simulator(n_trials=3_000, parallelism=4)
        result = simulator.simulate_tree(risk_tree.index, "ops")
        assert result.find("cyber").outcome == simulator.simulate_leaf(cyber_leaf)

    @pytest.mark.parametrize("parallelism", [4, 8])
    def test_tree_is_deterministic_across_parallelism(self, risk_tree, parallelism):
        baseline = Simulator(n_trials=4_000, parallelism=1).simulate_tree(risk_tree.index, "root")
        parallel = Simulator(n_trials=4_000, parallelism=parallelism).simulate_tree(
            risk_tree.index, "root"
        )
        assert parallel.flatten() == baseline.flatten()

    def test_unknown_node(self, risk_tree):
        with pytest.raises(NodeNotFoundError):
            Simulator(n_trials=100).simulate_tree(risk_tree.index, "ghost")

    def test_aggregate_without_children(self, ops_portfolio):
        with pytest.raises(ValidationFailed) as exc_info:
            Simulator(n_trials=100).aggregate(ops_portfolio, [])
        assert exc_info.value.codes == [ValidationErrorCode.EMPTY_COLLECTION]

    def test_aggregate_renames(self, ops_portfolio):
        children = [Outcome("cyber", {1: 5}, 10), Outcome("hardware", {1: 2, 3: 4}, 10)]
        result = Simulator(n_trials=10).aggregate(ops_portfolio, children)
        assert result == Outcome("ops", {1: 7, 3: 4}, 10)


class TestSimulate:
    """Test the node-level entry point."""

    def test_leaf_with_trial_override(self, hardware_leaf):
        outcome = Simulator(n_trials=1_000).simulate(hardware_leaf, n_trials=250)
        assert isinstance(outcome, Outcome)
        assert outcome.n_trials == 250

    def test_trial_override_is_a_prefix(self, hardware_leaf):
        simulator = Simulator(n_trials=1_000)
        full = simulator.simulate(hardware_leaf)
        short = simulator.simulate(hardware_leaf, n_trials=250)
        assert short.outcomes == {t: v for t, v in full.outcomes.items() if t < 250}

    def test_portfolio_requires_index(self, ops_portfolio):
        with pytest.raises(ValidationFailed) as exc_info:
            Simulator(n_trials=100).simulate(ops_portfolio)
        assert exc_info.value.codes == [ValidationErrorCode.REQUIRED_FIELD]

    def test_portfolio_with_index(self, risk_tree, ops_portfolio):
        result = Simulator(n_trials=500).simulate(ops_portfolio, index=risk_tree.index)
        assert result.id == "ops"
        assert [child.id for child in result.children] == ["cyber", "hardware"]
