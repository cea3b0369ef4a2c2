"""Top-level configuration object.

``Config`` groups the three sections the engine reads (``simulation``,
``curves`` and ``logging``) and handles loading, saving and dot-path
overrides. Sections are pydantic models, so every value is validated on the
way in, including values that arrive through :meth:`Config.override`.
"""

import logging
from pathlib import Path
import sys
from typing import Any, Dict, List, Mapping, Optional, Union

from pydantic import BaseModel, Field
import yaml

from .reporting import CurveConfig, LoggingConfig
from .simulation import SimulationConfig
from .utils import deep_merge, expand_dotted, read_yaml_mapping

PACKAGE_LOGGER = "risk_register"


class Config(BaseModel):
    """Complete configuration for the risk register engine.

    ``Config()`` is valid on its own: 10,000 trials per node, 100-tick
    curves, INFO logging to the console.

    Examples:
        From a file, then one tweak::

            config = Config.from_yaml("risk_register.yaml")
            config = config.override({"simulation.default_n_trials": 50_000})

        A section given directly::

            config = Config(curves=CurveConfig(n_entries=250))
    """

    simulation: SimulationConfig = Field(default_factory=SimulationConfig)
    curves: CurveConfig = Field(default_factory=CurveConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "Config":
        """Load a configuration file; sections it omits keep their defaults.

        Raises:
            FileNotFoundError: If the file doesn't exist.
            ValueError: If the file is not a mapping or a value is invalid.
        """
        return cls.from_dict(read_yaml_mapping(path, what="Configuration"))

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], base_config: Optional["Config"] = None) -> "Config":
        """Build a config from nested section dicts.

        Args:
            data: ``{"simulation": {...}, "curves": {...}, ...}``.
            base_config: Values to start from; ``data`` is merged over them.
        """
        if base_config is None:
            return cls(**data)
        return cls(**deep_merge(base_config.model_dump(), dict(data)))

    def override(self, overrides: Mapping[str, Any]) -> "Config":
        """Copy of this config with dot-path values replaced.

        Args:
            overrides: Dot path to new value, e.g.
                ``{"simulation.default_parallelism": 4, "curves.n_entries": 200}``.

        Returns:
            A new, re-validated Config; this one is unchanged.

        Raises:
            ValueError: If a path names an unknown section or field, or a new
                value fails validation.
        """
        for key in overrides:
            self._check_path(key)
        return Config.from_dict(expand_dotted(overrides), base_config=self)

    @classmethod
    def _check_path(cls, key: str) -> None:
        section, *fields = key.split(".")
        if section not in cls.model_fields:
            raise ValueError(
                f"Invalid config path '{key}': '{section}' is not a config section "
                f"(expected one of {', '.join(sorted(cls.model_fields))})"
            )
        model: Any = cls.model_fields[section].annotation
        owner = section
        for name in fields:
            known = getattr(model, "model_fields", None)
            if known is None:
                break
            if name not in known:
                raise ValueError(
                    f"Invalid config path '{key}': '{name}' is not a field of '{owner}' "
                    f"(expected one of {', '.join(sorted(known))})"
                )
            model = known[name].annotation
            owner = name

    def to_yaml(self, path: Union[str, Path]) -> None:
        """Write every section to ``path``, creating parent directories."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            yaml.safe_dump(self.model_dump(), f, default_flow_style=False, sort_keys=False)

    def setup_logging(self) -> None:
        """Attach console and/or file handlers to the ``risk_register`` logger.

        Existing handlers on that logger are replaced. Does nothing when
        logging is disabled.
        """
        settings = self.logging
        if not settings.enabled:
            return

        handlers: List[logging.Handler] = []
        if settings.console_output:
            handlers.append(logging.StreamHandler(sys.stdout))
        if settings.log_file:
            log_path = Path(settings.log_file)
            log_path.parent.mkdir(parents=True, exist_ok=True)
            handlers.append(logging.FileHandler(log_path, encoding="utf-8"))

        formatter = logging.Formatter(settings.format)
        package_logger = logging.getLogger(PACKAGE_LOGGER)
        package_logger.setLevel(settings.level)
        package_logger.handlers.clear()
        for handler in handlers:
            handler.setFormatter(formatter)
            package_logger.addHandler(handler)

    def summary(self) -> Dict[str, Any]:
        """The handful of values worth logging at startup."""
        sim = self.simulation
        return {
            "n_trials": sim.default_n_trials,
            "parallelism": sim.default_parallelism,
            "seeds": (sim.default_seed3, sim.default_seed4),
            "lognormal_confidence_level": sim.lognormal_confidence_level,
            "curve_ticks": self.curves.n_entries,
        }
