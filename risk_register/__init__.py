"""Risk Register: hierarchical Monte Carlo risk aggregation"""

from ._version import __version__

# Use lazy imports so that importing the package stays cheap
# Modules are imported only when one of their names is accessed

__all__ = [
    "__version__",
    "Config",
    "CurveBundle",
    "DistributionFitError",
    "InvalidationHandler",
    "LognormalDistribution",
    "MetalogDistribution",
    "NodeNotFoundError",
    "Outcome",
    "RiskLeaf",
    "RiskPortfolio",
    "RiskResultCache",
    "RiskResultResolver",
    "RiskTransform",
    "RiskTree",
    "SimulationCancelled",
    "SimulationConfig",
    "SimulationSemaphore",
    "Simulator",
    "TreeCacheManager",
    "TreeIndex",
    "ValidationFailed",
    "calculate_quantiles",
    "combine",
    "generate_curve_points",
    "generate_curve_points_multi",
]


def __getattr__(name):
    """Lazy import modules on first attribute access."""
    if name == "Config" or name == "SimulationConfig":
        from .config import Config, SimulationConfig

        return locals()[name]
    elif name in ["DistributionFitError", "NodeNotFoundError", "SimulationCancelled"]:
        from .exceptions import DistributionFitError, NodeNotFoundError, SimulationCancelled

        return locals()[name]
    elif name == "ValidationFailed":
        from .exceptions import ValidationFailed

        return ValidationFailed
    elif name == "LognormalDistribution" or name == "MetalogDistribution":
        from .loss_distributions import LognormalDistribution, MetalogDistribution

        return locals()[name]
    elif name == "Outcome" or name == "combine":
        from .outcome import Outcome, combine

        return locals()[name]
    elif name == "RiskLeaf" or name == "RiskPortfolio":
        from .risk_node import RiskLeaf, RiskPortfolio

        return locals()[name]
    elif name == "RiskTree" or name == "TreeIndex":
        from .tree_index import RiskTree, TreeIndex

        return locals()[name]
    elif name == "RiskResultCache" or name == "TreeCacheManager":
        from .cache import RiskResultCache, TreeCacheManager

        return locals()[name]
    elif name == "RiskResultResolver":
        from .resolver import RiskResultResolver

        return RiskResultResolver
    elif name == "InvalidationHandler":
        from .invalidation import InvalidationHandler

        return InvalidationHandler
    elif name == "SimulationSemaphore":
        from .simulation_semaphore import SimulationSemaphore

        return SimulationSemaphore
    elif name == "Simulator":
        from .simulator import Simulator

        return Simulator
    elif name == "RiskTransform":
        from .transforms import RiskTransform

        return RiskTransform
    elif name in [
        "CurveBundle",
        "calculate_quantiles",
        "generate_curve_points",
        "generate_curve_points_multi",
    ]:
        from .lec import (
            CurveBundle,
            calculate_quantiles,
            generate_curve_points,
            generate_curve_points_multi,
        )

        return locals()[name]
    raise AttributeError(f"module '{__name__}' has no attribute '{name}'")
