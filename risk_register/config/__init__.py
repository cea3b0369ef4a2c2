"""Configuration management using Pydantic v2 models.

Sub-modules:
    core: Master Config class that composes all sub-configs.
    reporting: Curve generation and logging configs.
    simulation: Trial counts, parallelism, seeds and lognormal reading.
    utils: Dict merging, dot-path expansion and YAML reading shared by the loaders.

Examples:
    Quick start with defaults::

        from risk_register.config import Config

        config = Config()

    Loading from file and tweaking one value::

        config = Config.from_yaml(Path("risk_register.yaml"))
        config = config.override({"simulation.default_n_trials": 50_000})
"""

from .core import Config
from .reporting import CurveConfig, LoggingConfig
from .simulation import SimulationConfig
from .utils import deep_merge

__all__ = [
    "Config",
    "CurveConfig",
    "LoggingConfig",
    "SimulationConfig",
    "deep_merge",
]
