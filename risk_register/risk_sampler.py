"""Occurrence and loss sampling for a single risk.

A :class:`RiskSampler` binds a leaf's occurrence probability and loss
distribution to two independent generator streams. The streams share the
entity id and seeds but use variable ids offset from a hash of the risk id,
so whether a risk occurs in a trial never correlates with how large the
loss is.
"""

from dataclasses import dataclass
import logging
from typing import Iterable, Optional, Union
import warnings

import numpy as np

from ._warnings import DataQualityWarning
from .hdr import generate_batch, stable_hash
from .loss_distributions import Distribution

logger = logging.getLogger(__name__)

OCCURRENCE_VAR_OFFSET = 1000
LOSS_VAR_OFFSET = 2000

#: Largest loss a trial may record; larger samples are clipped.
MAX_LOSS = 2**53

TrialArray = Union[np.ndarray, Iterable[int]]


@dataclass(frozen=True)
class RiskSampler:
    """Deterministic sampler for one risk.

    Attributes:
        risk_id: Id of the leaf being sampled.
        entity_id: Generator entity input.
        probability: Chance of occurrence per trial, in (0, 1).
        distribution: Loss severity distribution.
        occurrence_var_id: Generator variable id for occurrence draws.
        loss_var_id: Generator variable id for loss draws.
        seed3: First global seed.
        seed4: Second global seed.
    """

    risk_id: str
    entity_id: int
    probability: float
    distribution: Distribution
    occurrence_var_id: int
    loss_var_id: int
    seed3: int = 0
    seed4: int = 0

    @classmethod
    def from_distribution(
        cls,
        entity_id: int,
        risk_id: str,
        probability: float,
        distribution: Distribution,
        seed3: int = 0,
        seed4: int = 0,
    ) -> "RiskSampler":
        """Create a sampler with occurrence and loss streams derived from ``risk_id``.

        Args:
            entity_id: Generator entity input.
            risk_id: Risk (leaf) id; its stable hash seeds both streams.
            probability: Chance of occurrence per trial.
            distribution: Loss severity distribution.
            seed3: First global seed.
            seed4: Second global seed.

        Returns:
            A ready-to-use sampler.
        """
        risk_hash = stable_hash(risk_id)
        return cls(
            risk_id=risk_id,
            entity_id=entity_id,
            probability=probability,
            distribution=distribution,
            occurrence_var_id=risk_hash + OCCURRENCE_VAR_OFFSET,
            loss_var_id=risk_hash + LOSS_VAR_OFFSET,
            seed3=seed3,
            seed4=seed4,
        )

    def _uniforms(self, trials: TrialArray, var_id: int) -> np.ndarray:
        return generate_batch(trials, self.entity_id, var_id, self.seed3, self.seed4)

    def occurrences(self, trials: TrialArray) -> np.ndarray:
        """Boolean mask of the trials in which the risk occurs."""
        return self._uniforms(trials, self.occurrence_var_id) < self.probability

    def losses(self, trials: TrialArray) -> np.ndarray:
        """Loss amount for each trial, assuming the risk occurred.

        Losses are the floor of the distribution's quantile, clipped to
        ``[0, MAX_LOSS]``. Clipping above emits a :class:`DataQualityWarning`.

        Returns:
            ``int64`` array, one loss per trial.
        """
        values = self.distribution.quantiles(self._uniforms(trials, self.loss_var_id))
        values = np.floor(values)
        too_large = ~(values <= MAX_LOSS)
        if np.any(too_large):
            n_clipped = int(np.count_nonzero(too_large))
            warnings.warn(
                f"{n_clipped} sampled losses for '{self.risk_id}' exceeded {MAX_LOSS} "
                "and were clipped",
                DataQualityWarning,
                stacklevel=2,
            )
            logger.warning("Clipped %d losses for risk %s", n_clipped, self.risk_id)
        return np.clip(np.nan_to_num(values, nan=MAX_LOSS, posinf=MAX_LOSS), 0, MAX_LOSS).astype(
            np.int64
        )

    def sample_occurrence(self, trial: int) -> bool:
        """Whether the risk occurs in ``trial``."""
        return bool(self.occurrences(np.array([trial]))[0])

    def sample_loss(self, trial: int) -> int:
        """Loss in ``trial`` if the risk occurs."""
        return int(self.losses(np.array([trial]))[0])

    def sample(self, trial: int) -> Optional[int]:
        """Loss in ``trial``, or None if the risk does not occur."""
        if self.sample_occurrence(trial):
            return self.sample_loss(trial)
        return None
