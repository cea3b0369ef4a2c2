"""Reproducibility metadata for simulated leaves.

A :class:`NodeProvenance` captures every input that determined a leaf's
samples: generator ids, seeds and the fitted distribution's parameters.
Feeding the same record back into the engine reproduces the outcome
trial for trial.
"""

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict

from ._version import __version__


@dataclass(frozen=True)
class NodeProvenance:
    """Inputs that determined one leaf's simulated losses.

    Attributes:
        risk_id: Leaf id.
        entity_id: Generator entity input.
        occurrence_var_id: Generator variable id of the occurrence stream.
        loss_var_id: Generator variable id of the loss stream.
        seed3: First global seed.
        seed4: Second global seed.
        distribution_type: ``"expert"`` or ``"lognormal"``.
        distribution_params: Parameters returned by the distribution.
        timestamp: When the sampler was created (UTC).
        version: Package version that created the sampler.
    """

    risk_id: str
    entity_id: int
    occurrence_var_id: int
    loss_var_id: int
    seed3: int
    seed4: int
    distribution_type: str
    distribution_params: Dict[str, Any]
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    version: str = __version__

    def to_dict(self) -> Dict[str, Any]:
        """JSON-friendly dictionary with an ISO-8601 timestamp."""
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        return data
