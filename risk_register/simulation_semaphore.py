"""Process-wide limit on simultaneously running simulations.

Simulations are CPU bound, so the resolver acquires a permit before running
one on a cache miss. Callers that hit the cache never touch the semaphore.
Permits are released when the guarded block exits, whether it returned,
raised, or was cancelled.

Example:
    >>> semaphore = SimulationSemaphore(max_concurrent=4)
    >>> with semaphore.permit():
    ...     outcome = simulator.simulate_leaf(leaf)
"""

from contextlib import contextmanager
import logging
import threading
from typing import Iterator, Optional

from .config import SimulationConfig
from .exceptions import SimulationCancelled, ValidationErrorCode, ValidationFailed

logger = logging.getLogger(__name__)

_POLL_INTERVAL = 0.05


class SimulationSemaphore:
    """Counting semaphore with a context-manager permit.

    Args:
        max_concurrent: Number of simulations allowed to run at once.

    Raises:
        ValidationFailed: If ``max_concurrent`` is less than 1.
    """

    def __init__(self, max_concurrent: int = 4):
        if max_concurrent < 1:
            raise ValidationFailed.single(
                "maxConcurrentSimulations",
                ValidationErrorCode.INVALID_RANGE,
                f"max_concurrent must be at least 1, got {max_concurrent}",
            )
        self.max_concurrent = max_concurrent
        self._semaphore = threading.BoundedSemaphore(max_concurrent)
        self._lock = threading.Lock()
        self._available = max_concurrent

    @classmethod
    def from_config(cls, config: SimulationConfig) -> "SimulationSemaphore":
        return cls(config.max_concurrent_simulations)

    @property
    def available(self) -> int:
        """Free permits right now; may change immediately after reading."""
        with self._lock:
            return self._available

    def _acquire(self, cancel_event: Optional[threading.Event]) -> None:
        if cancel_event is None:
            self._semaphore.acquire()
        else:
            while not self._semaphore.acquire(timeout=_POLL_INTERVAL):
                if cancel_event.is_set():
                    raise SimulationCancelled()
        with self._lock:
            self._available -= 1

    def _release(self) -> None:
        with self._lock:
            self._available += 1
        self._semaphore.release()

    @contextmanager
    def permit(self, cancel_event: Optional[threading.Event] = None) -> Iterator[None]:
        """Hold one permit for the duration of the ``with`` block.

        Blocks until a permit is free.

        Args:
            cancel_event: Stop waiting for a permit when set.

        Raises:
            SimulationCancelled: If ``cancel_event`` is set while waiting.
        """
        self._acquire(cancel_event)
        logger.debug("Acquired simulation permit (%d left)", self.available)
        try:
            yield
        finally:
            self._release()
            logger.debug("Released simulation permit (%d left)", self.available)

    def __repr__(self) -> str:
        return (
            f"SimulationSemaphore(max_concurrent={self.max_concurrent}, "
            f"available={self.available})"
        )
