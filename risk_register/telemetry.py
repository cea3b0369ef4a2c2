"""Optional tracing and metrics hooks around resolution.

The resolver opens a span per resolve and, on a cache miss, records the
simulation duration and the number of trials run. :class:`SimulationTelemetry`
does nothing; subclass it to forward these to a tracing or metrics backend.
:class:`LoggingTelemetry` writes them to the ``risk_register.telemetry``
logger.

Sinks are fire-and-forget: an exception raised by a subclass is logged and
swallowed so it can never change a simulation result.
"""

from contextlib import contextmanager
import logging
import time
from typing import Any, Dict, Iterator

logger = logging.getLogger(__name__)

SIMULATION_DURATION_METRIC = "risk_result.simulation.duration_ms"
TRIALS_COUNTER_METRIC = "risk_result.simulation.trials"


class SimulationTelemetry:
    """No-op telemetry sink.

    Override :meth:`on_span_end`, :meth:`on_duration` and :meth:`on_trials`
    in subclasses; the public methods take care of error isolation.
    """

    @contextmanager
    def span(self, name: str, **attributes: Any) -> Iterator[Dict[str, Any]]:
        """Time a block of work.

        Yields a mutable attribute dict; anything the block adds to it (for
        example ``cache_hit``) is reported when the span ends, including when
        the block raises.
        """
        attrs: Dict[str, Any] = dict(attributes)
        start = time.perf_counter()
        try:
            yield attrs
        except BaseException as exc:
            attrs["error"] = type(exc).__name__
            raise
        finally:
            elapsed_ms = (time.perf_counter() - start) * 1000.0
            self._safely(self.on_span_end, name, elapsed_ms, attrs)

    def record_duration(self, node_id: str, duration_ms: float) -> None:
        self._safely(self.on_duration, node_id, duration_ms)

    def add_trials(self, node_id: str, n_trials: int) -> None:
        self._safely(self.on_trials, node_id, n_trials)

    def on_span_end(self, name: str, elapsed_ms: float, attributes: Dict[str, Any]) -> None:
        pass

    def on_duration(self, node_id: str, duration_ms: float) -> None:
        pass

    def on_trials(self, node_id: str, n_trials: int) -> None:
        pass

    @staticmethod
    def _safely(hook, *args) -> None:
        try:
            hook(*args)
        except Exception:  # pylint: disable=broad-exception-caught
            name = getattr(hook, "__name__", hook)
            logger.warning("Telemetry sink %s failed", name, exc_info=True)


class LoggingTelemetry(SimulationTelemetry):
    """Telemetry sink that writes spans and metrics to a logger.

    Args:
        level: Log level for span and metric records.
    """

    def __init__(self, level: int = logging.DEBUG):
        self.level = level

    def on_span_end(self, name: str, elapsed_ms: float, attributes: Dict[str, Any]) -> None:
        logger.log(self.level, "span %s took %.1f ms %s", name, elapsed_ms, attributes)

    def on_duration(self, node_id: str, duration_ms: float) -> None:
        logger.log(
            self.level,
            "%s node_name=%s value=%.1f",
            SIMULATION_DURATION_METRIC,
            node_id,
            duration_ms,
        )

    def on_trials(self, node_id: str, n_trials: int) -> None:
        logger.log(self.level, "%s node_name=%s value=%d", TRIALS_COUNTER_METRIC, node_id, n_trials)
