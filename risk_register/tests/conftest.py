"""Pytest configuration and shared fixtures."""

import pytest

from risk_register.cache import TreeCacheManager
from risk_register.config import SimulationConfig
from risk_register.risk_node import RiskLeaf, RiskPortfolio
from risk_register.tree_index import RiskTree


@pytest.fixture
def cyber_leaf():
    """Expert-mode leaf fitted from three percentiles."""
    return RiskLeaf(
        id="cyber",
        name="Cyber attack",
        distribution_type="expert",
        probability=0.3,
        percentiles=(0.05, 0.5, 0.95),
        quantiles=(1_000, 5_000, 25_000),
        parent_id="ops",
    )


@pytest.fixture
def hardware_leaf():
    """Lognormal-mode leaf."""
    return RiskLeaf(
        id="hardware",
        name="Hardware failure",
        distribution_type="lognormal",
        probability=0.2,
        min_loss=500,
        max_loss=20_000,
        parent_id="ops",
    )


@pytest.fixture
def ops_portfolio():
    return RiskPortfolio(
        id="ops", name="Operations", child_ids=("cyber", "hardware"), parent_id="root"
    )


@pytest.fixture
def root_portfolio():
    return RiskPortfolio(id="root", name="All risks", child_ids=("ops",))


@pytest.fixture
def risk_tree(root_portfolio, ops_portfolio, cyber_leaf, hardware_leaf):
    """Tree ``root -> ops -> {cyber, hardware}``."""
    return RiskTree(
        id="tree-1",
        name="Enterprise",
        nodes=(root_portfolio, ops_portfolio, cyber_leaf, hardware_leaf),
    )


@pytest.fixture
def tree_dict():
    """Plain-dict form of a tree, as read from YAML or JSON."""
    return {
        "id": "tree-2",
        "name": "Plant",
        "nodes": [
            {"id": "root", "name": "All", "childIds": ["fire", "flood"]},
            {
                "id": "fire",
                "name": "Fire",
                "distributionType": "lognormal",
                "probability": 0.05,
                "minLoss": 10_000,
                "maxLoss": 500_000,
                "parentId": "root",
            },
            {
                "id": "flood",
                "name": "Flood",
                "distribution_type": "expert",
                "probability": 0.1,
                "percentiles": [0.1, 0.5, 0.9],
                "quantiles": [2_000, 20_000, 200_000],
                "parent_id": "root",
            },
        ],
    }


@pytest.fixture
def small_config():
    """Fast simulation settings for tests."""
    return SimulationConfig(default_n_trials=2_000, default_parallelism=2)


@pytest.fixture
def cache_manager():
    return TreeCacheManager()
