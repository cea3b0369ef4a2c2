"""Loss severity distributions fitted from expert judgement.

This module provides the two loss families a risk leaf may use:

* :class:`MetalogDistribution` -- a quantile-parameterised distribution fitted
  by least squares to percentile/quantile pairs, with optional lower and
  upper bounds.
* :class:`LognormalDistribution` -- a closed-form lognormal read from a
  confidence interval ``(min_loss, max_loss)``.

Both expose the quantile function (inverse CDF) only. Sampling is done by
feeding uniform draws from :mod:`risk_register.hdr` through
:meth:`Distribution.sample`, never with a stateful random generator.
"""

from abc import ABC, abstractmethod
import logging
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence, Union

import numpy as np
from scipy import special

from .exceptions import DistributionFitError

if TYPE_CHECKING:
    from .risk_node import RiskLeaf

logger = logging.getLogger(__name__)

#: Probabilities are clipped into ``[P_EPS, 1 - P_EPS]`` before evaluation.
P_EPS = 1e-10

MAX_METALOG_TERMS = 16

# Logit grid used to verify a fitted quantile function is non-decreasing.
_MONOTONE_GRID = special.expit(np.linspace(-15.0, 15.0, 3001))

# Beasley-Springer-Moro coefficients
_BSM_A = (2.50662823884, -18.61500062529, 41.39119773534, -25.44106049637)
_BSM_B = (-8.47351093090, 23.08336743743, -21.06224101826, 3.13082909833)
_BSM_C = (
    0.3374754822726147,
    0.9761690190917186,
    0.1607979714918209,
    0.0276438810333863,
    0.0038405729373609,
    0.0003951896511919,
    0.0000321767881768,
    0.0000002888167364,
    0.0000003960315187,
)

ArrayLike = Union[float, Sequence[float], np.ndarray]


def inverse_normal_cdf(p: ArrayLike) -> Union[float, np.ndarray]:
    """Inverse of the standard normal CDF (Beasley-Springer-Moro).

    Uses the Beasley-Springer rational approximation in the central region
    ``|p - 0.5| < 0.42`` and Moro's Chebyshev polynomial in ``log(-log)``
    space for the tails. Absolute error is below 1e-8 over ``(1e-10, 1 - 1e-10)``.

    Args:
        p: Probability or array of probabilities, each strictly in (0, 1).

    Returns:
        The standard normal quantile; a float for scalar input, else an array.

    Raises:
        ValueError: If any probability lies outside (0, 1).

    Examples:
        >>> round(inverse_normal_cdf(0.95), 4)
        1.6449
    """
    arr = np.asarray(p, dtype=np.float64)
    if np.any((arr <= 0.0) | (arr >= 1.0)):
        raise ValueError(f"Probability must be in (0, 1), got: {p}")

    y = arr - 0.5
    r = y * y
    a0, a1, a2, a3 = _BSM_A
    b0, b1, b2, b3 = _BSM_B
    numerator = y * (((a3 * r + a2) * r + a1) * r + a0)
    central = numerator / ((((b3 * r + b2) * r + b1) * r + b0) * r + 1.0)

    s = np.log(-np.log(np.where(y > 0, 1.0 - arr, arr)))
    tail = np.zeros_like(s)
    for coefficient in reversed(_BSM_C):
        tail = tail * s + coefficient
    tail = np.where(y < 0, -tail, tail)

    result = np.where(np.abs(y) < 0.42, central, tail)
    if result.ndim == 0:
        return float(result)
    return result


class Distribution(ABC):
    """Abstract base class for loss severity distributions.

    Subclasses implement the vectorised quantile function; scalar access and
    sampling are derived from it.
    """

    @abstractmethod
    def quantiles(self, ps: ArrayLike) -> np.ndarray:
        """Evaluate the quantile function at many probabilities.

        Args:
            ps: Probabilities in [0, 1].

        Returns:
            Array of loss amounts, one per probability.
        """

    @abstractmethod
    def params(self) -> Dict[str, Any]:
        """Parameters that reproduce this distribution, for provenance records."""

    def quantile(self, p: float) -> float:
        """Loss ``x`` such that ``P(X <= x) = p``."""
        return float(self.quantiles(np.array([p], dtype=np.float64))[0])

    def sample(self, u: ArrayLike) -> Union[float, np.ndarray]:
        """Map uniform draws to losses (inverse transform sampling)."""
        if np.ndim(u) == 0:
            return self.quantile(float(u))  # type: ignore[arg-type]
        return self.quantiles(u)


def _metalog_basis(ps: np.ndarray, terms: int) -> np.ndarray:
    """Design matrix of the metalog basis functions, shape ``(len(ps), terms)``."""
    logit = special.logit(ps)
    centred = ps - 0.5
    columns = [np.ones_like(ps), logit]
    if terms > 2:
        columns.append(centred * logit)
    if terms > 3:
        columns.append(centred)
    for j in range(5, terms + 1):
        if j % 2 == 1:
            columns.append(centred ** ((j - 1) // 2))
        else:
            columns.append(centred ** ((j - 2) // 2) * logit)
    return np.column_stack(columns[:terms])


class MetalogDistribution(Distribution):
    """Metalog (quantile-parameterised) distribution.

    The quantile function is a linear combination of basis functions of
    ``logit(p)``. Bounds change the space the combination lives in:

    ============  =================================
    Bounds        Fitted quantity
    ============  =================================
    none          ``x``
    lower ``l``   ``ln(x - l)``
    upper ``u``   ``-ln(u - x)``
    both          ``ln((x - l) / (u - x))``
    ============  =================================

    Instances are built with :meth:`from_percentiles`.
    """

    def __init__(
        self,
        coefficients: np.ndarray,
        lower: Optional[float] = None,
        upper: Optional[float] = None,
        percentiles: Optional[Sequence[float]] = None,
        quantiles: Optional[Sequence[float]] = None,
    ):
        self.coefficients = np.asarray(coefficients, dtype=np.float64)
        self.terms = len(self.coefficients)
        self.lower = lower
        self.upper = upper
        self.percentiles = list(percentiles) if percentiles is not None else []
        self.input_quantiles = list(quantiles) if quantiles is not None else []

    @classmethod
    def from_percentiles(
        cls,
        percentiles: Sequence[float],
        quantiles: Sequence[float],
        terms: Optional[int] = None,
        lower: Optional[float] = None,
        upper: Optional[float] = None,
    ) -> "MetalogDistribution":
        """Fit a metalog through percentile/quantile pairs.

        Args:
            percentiles: Probabilities strictly in (0, 1), strictly increasing.
            quantiles: Loss value at each percentile.
            terms: Number of basis terms, 2 to 16 and at most the number of
                points. Defaults to the number of points (exact interpolation).
            lower: Optional lower bound on the support.
            upper: Optional upper bound on the support.

        Returns:
            The fitted distribution.

        Raises:
            DistributionFitError: If the inputs are inconsistent or the fitted
                quantile function is not non-decreasing over (0, 1).

        Examples:
            Three-point expert estimate, losses bounded below by zero::

                dist = MetalogDistribution.from_percentiles(
                    [0.05, 0.5, 0.95], [1_000, 5_000, 25_000], lower=0.0
                )
                dist.quantile(0.5)  # ~5000
        """
        ps = np.asarray(percentiles, dtype=np.float64)
        xs = np.asarray(quantiles, dtype=np.float64)
        n_terms = len(ps) if terms is None else terms

        reasons: List[str] = []
        if len(ps) == 0:
            reasons.append("Percentiles array cannot be empty")
        elif len(ps) < 2:
            reasons.append(f"At least 2 percentile/quantile pairs are required, got {len(ps)}")
        if len(xs) == 0:
            reasons.append("Quantiles array cannot be empty")
        elif len(ps) != len(xs):
            reasons.append(
                f"Percentiles ({len(ps)}) and quantiles ({len(xs)}) must have same length"
            )
        if len(ps) and np.any((ps <= 0.0) | (ps >= 1.0)):
            reasons.append("All percentiles must be in (0.0, 1.0)")
        if len(ps) > 1 and np.any(np.diff(ps) <= 0):
            reasons.append("Percentiles must be sorted in strictly ascending order")
        if n_terms < 2 or n_terms > MAX_METALOG_TERMS:
            reasons.append(f"Terms ({n_terms}) must be between 2 and {MAX_METALOG_TERMS}")
        elif len(ps) and n_terms > len(ps):
            reasons.append(f"Terms ({n_terms}) cannot exceed number of data points ({len(ps)})")
        if lower is not None and upper is not None and lower >= upper:
            reasons.append(f"Lower bound ({lower}) must be < upper bound ({upper})")
        elif len(xs):
            if lower is not None and np.any(xs <= lower):
                reasons.append(f"All quantiles must be greater than the lower bound ({lower})")
            if upper is not None and np.any(xs >= upper):
                reasons.append(f"All quantiles must be less than the upper bound ({upper})")
        if len(xs) and not np.all(np.isfinite(xs)):
            reasons.append("Quantiles must be finite")
        if reasons:
            raise DistributionFitError(reasons)

        target = cls._to_fit_space(xs, lower, upper)
        basis = _metalog_basis(ps, n_terms)
        coefficients, _, rank, _ = np.linalg.lstsq(basis, target, rcond=None)
        if rank < n_terms:
            raise DistributionFitError(
                [f"Metalog system is rank deficient ({rank} < {n_terms} terms)"]
            )

        dist = cls(coefficients, lower=lower, upper=upper, percentiles=ps, quantiles=xs)
        if not dist.is_monotone():
            raise DistributionFitError(
                ["Fitted quantile function is not non-decreasing over (0, 1)"]
            )
        logger.debug(
            "Fitted %d-term metalog (lower=%s, upper=%s) to %d points",
            n_terms,
            lower,
            upper,
            len(ps),
        )
        return dist

    @staticmethod
    def _to_fit_space(
        xs: np.ndarray, lower: Optional[float], upper: Optional[float]
    ) -> np.ndarray:
        if lower is not None and upper is not None:
            return np.log((xs - lower) / (upper - xs))
        if lower is not None:
            return np.log(xs - lower)
        if upper is not None:
            return -np.log(upper - xs)
        return xs

    def _from_fit_space(self, m: np.ndarray) -> np.ndarray:
        if self.lower is not None and self.upper is not None:
            return self.lower + (self.upper - self.lower) * special.expit(m)
        if self.lower is not None:
            return self.lower + np.exp(m)
        if self.upper is not None:
            return self.upper - np.exp(-m)
        return m

    def quantiles(self, ps: ArrayLike) -> np.ndarray:
        clipped = np.clip(np.asarray(ps, dtype=np.float64), P_EPS, 1.0 - P_EPS)
        basis = _metalog_basis(clipped.reshape(-1), self.terms)
        # Element-wise sum in a fixed order keeps results independent of
        # how trials are chunked; a BLAS product is not.
        m = np.zeros(basis.shape[0])
        for j in range(self.terms):
            m = m + basis[:, j] * self.coefficients[j]
        return self._from_fit_space(m).reshape(clipped.shape)

    def is_monotone(self) -> bool:
        """Whether the quantile function is non-decreasing on a dense logit grid."""
        values = self.quantiles(_MONOTONE_GRID)
        if not np.all(np.isfinite(values)):
            return False
        tolerance = 1e-9 * max(1.0, float(np.max(np.abs(values))))
        return bool(np.all(np.diff(values) >= -tolerance))

    def params(self) -> Dict[str, Any]:
        return {
            "type": "metalog",
            "terms": self.terms,
            "lower": self.lower,
            "upper": self.upper,
            "percentiles": [float(p) for p in self.percentiles],
            "quantiles": [float(q) for q in self.input_quantiles],
            "coefficients": [float(c) for c in self.coefficients],
        }

    def __repr__(self) -> str:
        return f"MetalogDistribution(terms={self.terms}, lower={self.lower}, upper={self.upper})"


class LognormalDistribution(Distribution):
    """Lognormal loss distribution in closed form.

    Attributes:
        mean_log: Mean of ``ln X``.
        std_log: Standard deviation of ``ln X``.
    """

    def __init__(self, mean_log: float, std_log: float):
        if std_log <= 0:
            raise DistributionFitError([f"std_log must be positive, got {std_log}"])
        self.mean_log = mean_log
        self.std_log = std_log
        self.confidence_level: Optional[float] = None

    @classmethod
    def from_confidence_interval(
        cls, lo: float, hi: float, confidence_level: float = 0.90
    ) -> "LognormalDistribution":
        """Read ``(lo, hi)`` as a central confidence interval.

        With the default ``confidence_level`` of 0.90 the bounds are the 5th
        and 95th percentiles and ``z = 2 * 1.6449 = 3.29``.

        Args:
            lo: Lower bound of the interval, strictly positive.
            hi: Upper bound of the interval, greater than ``lo``.
            confidence_level: Probability mass between the bounds, in (0, 1).

        Returns:
            The lognormal distribution.

        Raises:
            DistributionFitError: If ``lo <= 0``, ``hi <= lo`` or the
                confidence level lies outside (0, 1).
        """
        reasons: List[str] = []
        if lo <= 0 or hi <= lo:
            reasons.append(f"Invalid bounds: minLoss={lo} must be > 0 and < maxLoss={hi}")
        if not 0.0 < confidence_level < 1.0:
            reasons.append(f"Confidence level must be in (0, 1), got {confidence_level}")
        if reasons:
            raise DistributionFitError(reasons)

        z = 2.0 * inverse_normal_cdf((1.0 + confidence_level) / 2.0)
        mean_log = (np.log(hi) + np.log(lo)) / 2.0
        std_log = (np.log(hi) - np.log(lo)) / z
        dist = cls(float(mean_log), float(std_log))
        dist.confidence_level = confidence_level
        return dist

    def quantiles(self, ps: ArrayLike) -> np.ndarray:
        clipped = np.clip(np.asarray(ps, dtype=np.float64), P_EPS, 1.0 - P_EPS)
        return np.exp(self.mean_log + self.std_log * inverse_normal_cdf(clipped))

    def params(self) -> Dict[str, Any]:
        return {
            "type": "lognormal",
            "mean_log": self.mean_log,
            "std_log": self.std_log,
            "confidence_level": self.confidence_level,
        }

    def __repr__(self) -> str:
        return f"LognormalDistribution(mean_log={self.mean_log:.4f}, std_log={self.std_log:.4f})"


def distribution_for_leaf(leaf: "RiskLeaf", confidence_level: float = 0.90) -> Distribution:
    """Build the loss distribution a leaf describes.

    Expert leaves become a lower-bounded (at zero) metalog with one term per
    point. Lognormal leaves read ``(min_loss, max_loss)`` as a confidence
    interval at ``confidence_level``.

    Raises:
        DistributionFitError: Attributed to the leaf's id when fitting fails.
    """
    try:
        if leaf.distribution_type == "expert":
            return MetalogDistribution.from_percentiles(
                leaf.percentiles,
                leaf.quantiles,
                terms=len(leaf.percentiles),
                lower=0.0,
            )
        return LognormalDistribution.from_confidence_interval(
            float(leaf.min_loss), float(leaf.max_loss), confidence_level  # type: ignore[arg-type]
        )
    except DistributionFitError as exc:
        raise exc.for_node(leaf.id) from exc
