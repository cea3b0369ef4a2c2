"""Simulation execution configuration.

Contains the parameters that control how Monte Carlo trials are run:
trial counts, parallelism, the seeds fed to the deterministic generator,
and the confidence level used to read lognormal bounds.
"""

import logging
import warnings

from pydantic import BaseModel, Field, model_validator
import psutil

from .._warnings import ConfigurationWarning

logger = logging.getLogger(__name__)

LOW_TRIAL_COUNT = 1_000


def _default_parallelism() -> int:
    return max(1, min(8, psutil.cpu_count(logical=True) or 1))


class SimulationConfig(BaseModel):
    """Simulation execution parameters.

    Attributes:
        default_n_trials: Trials run per node when the caller gives none.
        max_n_trials: Hard upper limit on trials per node.
        default_parallelism: Worker threads used for trial chunks and for
            independent leaves. Defaults to the logical CPU count, capped at 8.
        max_parallelism: Hard upper limit on worker threads.
        max_tree_depth: Deepest tree the owning service accepts.
        max_concurrent_simulations: Simulations allowed to run at once
            across all trees.
        default_seed3: Third generator input, shared by every node.
        default_seed4: Fourth generator input, shared by every node.
        lognormal_confidence_level: Probability mass between a lognormal
            leaf's ``min_loss`` and ``max_loss``. 0.90 reads the bounds as
            the 5th and 95th percentiles.
        progress_bar: Show a tqdm bar while leaves are simulated.

    Examples:
        Quick exploratory run::

            sim = SimulationConfig(default_n_trials=2_000, default_parallelism=2)

        Reproducing a run with a different seed family::

            sim = SimulationConfig(default_seed3=7, default_seed4=11)
    """

    default_n_trials: int = Field(default=10_000, gt=0, description="Trials per node")
    max_n_trials: int = Field(default=1_000_000, gt=0, description="Maximum trials per node")
    default_parallelism: int = Field(
        default_factory=_default_parallelism, ge=1, description="Worker threads"
    )
    max_parallelism: int = Field(default=64, ge=1, description="Maximum worker threads")
    max_tree_depth: int = Field(default=5, ge=1, le=50, description="Maximum tree depth")
    max_concurrent_simulations: int = Field(
        default=4, ge=1, description="Simulations allowed to run concurrently"
    )
    default_seed3: int = Field(default=0, ge=0, description="Generator seed 3")
    default_seed4: int = Field(default=0, ge=0, description="Generator seed 4")
    lognormal_confidence_level: float = Field(
        default=0.90, gt=0, lt=1, description="Mass between lognormal min/max bounds"
    )
    progress_bar: bool = Field(default=False, description="Show progress while simulating")

    @model_validator(mode="after")
    def validate_limits(self):
        """Ensure defaults never exceed their hard limits.

        Returns:
            SimulationConfig: The validated config object.

        Raises:
            ValueError: If a default trial count or parallelism exceeds its
                maximum.
        """
        if self.default_n_trials > self.max_n_trials:
            raise ValueError(
                f"default_n_trials {self.default_n_trials} exceeds maximum "
                f"{self.max_n_trials}"
            )
        if self.default_parallelism > self.max_parallelism:
            raise ValueError(
                f"default_parallelism {self.default_parallelism} exceeds maximum "
                f"{self.max_parallelism}"
            )
        if self.default_n_trials < LOW_TRIAL_COUNT:
            warnings.warn(
                f"default_n_trials={self.default_n_trials} is below {LOW_TRIAL_COUNT}; "
                "exceedance estimates in the tail will be unreliable",
                ConfigurationWarning,
                stacklevel=2,
            )
        return self
