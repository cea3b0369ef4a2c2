"""Loss exceedance curves and quantiles from cached outcomes.

A loss exceedance curve (LEC) plots ``P(loss >= x)`` against ``x``. Curves
are computed at render time from an :class:`~risk_register.outcome.Outcome`:
the loss axis is sampled at evenly spaced integer ticks and the exact
exceedance probability is evaluated at each tick, with no interpolation.

When several curves are shown together they share one tick domain, built
from the combined loss range of all of them, so every curve is evaluated at
the same losses. The flat tail where every curve has dropped below
:data:`TAIL_CUTOFF` is then trimmed from the chart data, keeping one tick
past the last informative one. Trimming only affects the points returned;
the outcomes and every analytical query on them are unchanged.

Examples:
    Two nodes on a shared axis::

        curves = generate_curve_points_multi({"cyber": cyber, "hardware": hardware})
        [loss for loss, _ in curves["cyber"]] == [loss for loss, _ in curves["hardware"]]

    As a DataFrame::

        bundle = CurveBundle.from_outcomes({"ops": ops, "cyber": cyber})
        bundle.to_dataframe().head()
"""

from dataclasses import dataclass, field
import logging
from typing import Dict, Hashable, List, Mapping, Optional, Tuple, TypeVar

import numpy as np
import pandas as pd

from .config import CurveConfig
from .outcome import Outcome

logger = logging.getLogger(__name__)

K = TypeVar("K", bound=Hashable)

CurvePoints = List[Tuple[int, float]]

#: Exceedance below which a tick is visually uninformative (a 1-in-200 year
#: return period).
TAIL_CUTOFF = 0.005

DEFAULT_N_ENTRIES = 100

#: Loss buffer above the largest observed loss, as a fraction of it.
TICK_BUFFER = (11, 10)

QUANTILE_LEVELS = {"p50": 0.50, "p90": 0.90, "p95": 0.95, "p99": 0.99}


def get_ticks(min_loss: int, max_loss: int, n_entries: int = DEFAULT_N_ENTRIES) -> List[int]:
    """Evenly spaced integer losses covering ``[max(1, min_loss), 1.1 * max_loss]``.

    Args:
        min_loss: Smallest observed loss.
        max_loss: Largest observed loss.
        n_entries: Target number of ticks.

    Returns:
        Strictly increasing ticks. When the range collapses (equal bounds, or
        too narrow for integer steps) a single tick is returned.

    Raises:
        ValueError: If ``n_entries < 2``, ``min_loss < 0`` or
            ``max_loss < min_loss``.

    Examples:
        >>> get_ticks(1000, 100_000, 10)[0]
        1000
        >>> get_ticks(5000, 5000, 10)
        [5000]
    """
    if n_entries < 2:
        raise ValueError(f"n_entries must be > 1, got {n_entries}")
    if min_loss < 0:
        raise ValueError(f"min_loss must be >= 0, got {min_loss}")
    if max_loss < min_loss:
        raise ValueError(f"max_loss ({max_loss}) must be >= min_loss ({min_loss})")

    if min_loss == max_loss:
        return [int(min_loss)]

    numerator, denominator = TICK_BUFFER
    max_tick = int(max_loss) * numerator // denominator
    min_tick = max(1, int(min_loss))

    step = (max_tick - min_tick) // (n_entries - 1)
    if step <= 0:
        return [min_tick]
    return list(range(min_tick, max_tick + 1, step))


def _exceedance_at(outcome: Outcome, ticks: List[int]) -> List[float]:
    return [float(outcome.prob_of_exceedance(tick)) for tick in ticks]


def generate_curve_points(outcome: Outcome, n_entries: int = DEFAULT_N_ENTRIES) -> CurvePoints:
    """Exceedance curve of one outcome over its own loss range.

    Returns:
        ``(loss, exceedance)`` pairs; empty if the outcome has no losses.
    """
    if not outcome.outcomes:
        return []
    ticks = get_ticks(outcome.min_loss, outcome.max_loss, n_entries)
    return list(zip(ticks, _exceedance_at(outcome, ticks)))


def _last_informative_index(curves: List[List[float]], n_ticks: int, cutoff: float) -> int:
    for i in range(n_ticks - 1, -1, -1):
        if any(curve[i] >= cutoff for curve in curves):
            return i
    return n_ticks - 1


def generate_curve_points_multi(
    results: Mapping[K, Outcome],
    n_entries: int = DEFAULT_N_ENTRIES,
    tail_cutoff: float = TAIL_CUTOFF,
) -> Dict[K, CurvePoints]:
    """Exceedance curves of several outcomes on one shared, tail-trimmed tick domain.

    Args:
        results: Key (typically a node id) to outcome.
        n_entries: Target number of ticks before trimming.
        tail_cutoff: Exceedance below which trailing ticks are dropped.

    Returns:
        Key to ``(loss, exceedance)`` pairs, in the input's key order. Every
        non-empty curve has the same losses; outcomes without losses map to
        an empty list.
    """
    if not results:
        return {}

    non_empty = [outcome for outcome in results.values() if outcome.outcomes]
    if not non_empty:
        return {key: [] for key in results}

    combined_min = min(outcome.min_loss for outcome in non_empty)
    combined_max = max(outcome.max_loss for outcome in non_empty)
    ticks = get_ticks(combined_min, combined_max, n_entries)

    evaluated: Dict[K, List[float]] = {
        key: _exceedance_at(outcome, ticks) if outcome.outcomes else []
        for key, outcome in results.items()
    }

    curves = [values for values in evaluated.values() if values]
    last = _last_informative_index(curves, len(ticks), tail_cutoff)
    keep = min(last + 1, len(ticks) - 1) + 1
    if keep < len(ticks):
        logger.debug(
            "Trimmed %d of %d ticks below %.4f", len(ticks) - keep, len(ticks), tail_cutoff
        )

    return {
        key: list(zip(ticks[:keep], values[:keep])) if values else []
        for key, values in evaluated.items()
    }


def calculate_quantiles(outcome: Outcome) -> Dict[str, float]:
    """Loss quantiles over the trials that produced a loss.

    Trials without a loss are not stored in an outcome and do not take part:
    ``p50`` is the median loss given that a loss occurred.

    Returns:
        ``{"p50", "p90", "p95", "p99"}`` to loss; empty if there are no losses.
    """
    counts = outcome.outcome_count
    if not counts:
        return {}

    losses = sorted(counts)
    cumulative = np.cumsum([counts[loss] for loss in losses], dtype=np.float64)
    cumulative /= cumulative[-1]

    quantiles = {}
    for name, level in QUANTILE_LEVELS.items():
        index = int(np.searchsorted(cumulative, level, side="left"))
        quantiles[name] = float(losses[min(index, len(losses) - 1)])
    return quantiles


@dataclass
class CurveBundle:
    """Curves for several keys on a shared tick domain.

    Attributes:
        ticks: Shared loss ticks after tail trimming.
        exceedance: Key to exceedance per tick (empty for outcomes without
            losses).
        quantiles: Key to :func:`calculate_quantiles` output.
    """

    ticks: List[int] = field(default_factory=list)
    exceedance: Dict[Hashable, List[float]] = field(default_factory=dict)
    quantiles: Dict[Hashable, Dict[str, float]] = field(default_factory=dict)

    @classmethod
    def from_outcomes(
        cls,
        results: Mapping[Hashable, Outcome],
        n_entries: Optional[int] = None,
        tail_cutoff: Optional[float] = None,
        config: Optional[CurveConfig] = None,
    ) -> "CurveBundle":
        """Build a bundle with :func:`generate_curve_points_multi`.

        Args:
            results: Key to outcome; the first key is treated as the root curve.
            n_entries: Target tick count (defaults to ``config.n_entries``).
            tail_cutoff: Trim threshold (defaults to ``config.tail_cutoff``).
            config: Curve settings; defaults to :class:`CurveConfig`.
        """
        config = config or CurveConfig()
        points = generate_curve_points_multi(
            results,
            n_entries=config.n_entries if n_entries is None else n_entries,
            tail_cutoff=config.tail_cutoff if tail_cutoff is None else tail_cutoff,
        )
        ticks: List[int] = next(([loss for loss, _ in pts] for pts in points.values() if pts), [])
        return cls(
            ticks=ticks,
            exceedance={key: [p for _, p in pts] for key, pts in points.items()},
            quantiles={key: calculate_quantiles(outcome) for key, outcome in results.items()},
        )

    @property
    def keys(self) -> List[Hashable]:
        return list(self.exceedance)

    def points(self, key: Hashable) -> CurvePoints:
        """``(loss, exceedance)`` pairs for ``key``.

        Raises:
            KeyError: If ``key`` is not in the bundle.
        """
        values = self.exceedance[key]
        return list(zip(self.ticks, values)) if values else []

    def to_dataframe(self) -> pd.DataFrame:
        """Wide table: one row per tick (index ``loss``), one column per non-empty curve."""
        columns = {key: values for key, values in self.exceedance.items() if values}
        frame = pd.DataFrame(columns, index=pd.Index(self.ticks, name="loss"))
        return frame
