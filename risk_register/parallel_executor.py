"""Thread-pool execution engine for Monte Carlo trials and tree nodes.

This module provides bounded parallel execution with deterministic ordering:
work is split into contiguous chunks, chunks run on a thread pool, and
results are reassembled in submission order. Because every trial is a pure
function of its counter, the output is the same at any worker count.

Features:
    - Chunk sizing from item count and worker count
    - Ordered results regardless of completion order
    - Cooperative cancellation through :class:`threading.Event`
    - Optional tqdm progress bar

Example:
    >>> from risk_register.parallel_executor import ParallelExecutor
    >>> executor = ParallelExecutor(n_workers=4)
    >>> totals = executor.map_chunks(lambda start, end: sum(range(start, end)), 10_000)
    >>> sum(totals)
    49995000
"""

from concurrent.futures import FIRST_EXCEPTION, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
import logging
import os
import threading
import time
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, TypeVar

import psutil
from tqdm import tqdm

from .exceptions import SimulationCancelled

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


@dataclass
class CPUProfile:
    """CPU profile used to pick default worker counts."""

    n_cores: int
    n_threads: int
    available_memory: int
    system_load: float

    @classmethod
    def detect(cls) -> "CPUProfile":
        """Detect current CPU profile.

        Returns:
            CPUProfile: Current system CPU profile
        """
        cpu_count_physical = psutil.cpu_count(logical=False) or 1
        cpu_count_logical = psutil.cpu_count(logical=True) or 1
        load_avg = os.getloadavg()[0] if hasattr(os, "getloadavg") else 0.5

        return cls(
            n_cores=cpu_count_physical,
            n_threads=cpu_count_logical,
            available_memory=psutil.virtual_memory().available,
            system_load=load_avg,
        )

    def default_workers(self, cap: int = 8) -> int:
        """Worker count for this machine, leaving one core free when possible."""
        return max(1, min(cap, self.n_threads - 1 if self.n_threads > 2 else self.n_threads))


@dataclass
class ChunkingStrategy:
    """Chunk sizing for parallel trial workloads."""

    min_chunk_size: int = 1000
    max_chunk_size: int = 50_000
    target_chunks_per_worker: int = 4

    def calculate_optimal_chunk_size(self, n_items: int, n_workers: int) -> int:
        """Calculate optimal chunk size based on workload and workers.

        Args:
            n_items: Total number of work items
            n_workers: Number of parallel workers

        Returns:
            int: Chunk size, at least 1
        """
        base_chunk_size = n_items // max(1, n_workers * self.target_chunks_per_worker)
        return max(1, min(self.max_chunk_size, max(self.min_chunk_size, base_chunk_size)))

    def create_chunks(self, n_items: int, n_workers: int) -> List[Tuple[int, int]]:
        """Split ``range(n_items)`` into contiguous ``(start, end)`` chunks."""
        chunk_size = self.calculate_optimal_chunk_size(n_items, n_workers)
        return [(i, min(i + chunk_size, n_items)) for i in range(0, n_items, chunk_size)]


class ParallelExecutor:
    """Bounded thread-pool executor with ordered results.

    Each call to :meth:`map` or :meth:`map_chunks` opens its own pool, so
    executors can be nested (a node-level map whose work items run their
    own trial-level map) without one pool waiting on itself.
    """

    def __init__(
        self,
        n_workers: Optional[int] = None,
        chunking_strategy: Optional[ChunkingStrategy] = None,
    ):
        """Initialize parallel executor.

        Args:
            n_workers: Number of worker threads (None for auto)
            chunking_strategy: Strategy for splitting trial ranges
        """
        if n_workers is None:
            n_workers = CPUProfile.detect().default_workers()
        if n_workers < 1:
            raise ValueError(f"n_workers must be at least 1, got {n_workers}")
        self.n_workers = n_workers
        self.chunking_strategy = chunking_strategy or ChunkingStrategy()
        self.last_elapsed = 0.0

    def map(
        self,
        work_function: Callable[[T], R],
        work_items: Iterable[T],
        progress_bar: bool = False,
        desc: str = "Processing",
        cancel_event: Optional[threading.Event] = None,
    ) -> List[R]:
        """Apply ``work_function`` to every item, returning results in order.

        Args:
            work_function: Function to apply to each work item
            work_items: Items to process
            progress_bar: Show a tqdm progress bar
            desc: Progress bar label
            cancel_event: When set, pending items are abandoned and
                :class:`SimulationCancelled` is raised

        Returns:
            List of results, one per item, in input order

        Raises:
            SimulationCancelled: If ``cancel_event`` is set before all items finish.
            Exception: The first exception raised by ``work_function``.
        """
        items = list(work_items)
        start = time.time()
        try:
            if self.n_workers == 1 or len(items) <= 1:
                return self._run_sequential(work_function, items, progress_bar, desc, cancel_event)
            return self._run_parallel(work_function, items, progress_bar, desc, cancel_event)
        finally:
            self.last_elapsed = time.time() - start

    def map_chunks(
        self,
        chunk_function: Callable[[int, int], R],
        n_items: int,
        reduce_function: Optional[Callable[[List[R]], Any]] = None,
        progress_bar: bool = False,
        desc: str = "Processing chunks",
        cancel_event: Optional[threading.Event] = None,
    ) -> Any:
        """Run ``chunk_function(start, end)`` over contiguous chunks of ``range(n_items)``.

        Args:
            chunk_function: Function receiving a half-open index range
            n_items: Total number of items
            reduce_function: Function combining the ordered chunk results
                (None returns the list)
            progress_bar: Show a tqdm progress bar
            desc: Progress bar label
            cancel_event: Optional cancellation event

        Returns:
            Reduced result, or the ordered list of chunk results
        """
        chunks = self.chunking_strategy.create_chunks(n_items, self.n_workers)
        results = self.map(
            lambda bounds: chunk_function(*bounds),
            chunks,
            progress_bar=progress_bar,
            desc=desc,
            cancel_event=cancel_event,
        )
        logger.debug(
            "Processed %d items in %d chunks on %d workers (%.3fs)",
            n_items,
            len(chunks),
            self.n_workers,
            self.last_elapsed,
        )
        if reduce_function is not None:
            return reduce_function(results)
        return results

    @staticmethod
    def _check_cancelled(cancel_event: Optional[threading.Event]) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise SimulationCancelled()

    def _run_sequential(
        self,
        work_function: Callable[[T], R],
        items: Sequence[T],
        progress_bar: bool,
        desc: str,
        cancel_event: Optional[threading.Event],
    ) -> List[R]:
        results = []
        with tqdm(total=len(items), desc=desc, disable=not progress_bar) as pbar:
            for item in items:
                self._check_cancelled(cancel_event)
                results.append(work_function(item))
                pbar.update(1)
        return results

    def _run_parallel(
        self,
        work_function: Callable[[T], R],
        items: Sequence[T],
        progress_bar: bool,
        desc: str,
        cancel_event: Optional[threading.Event],
    ) -> List[R]:
        self._check_cancelled(cancel_event)

        def guarded(item: T) -> R:
            self._check_cancelled(cancel_event)
            return work_function(item)

        results: Dict[int, R] = {}
        with ThreadPoolExecutor(max_workers=min(self.n_workers, len(items))) as executor:
            futures: Dict[Future, int] = {
                executor.submit(guarded, item): index for index, item in enumerate(items)
            }
            pending = set(futures)
            with tqdm(total=len(items), desc=desc, disable=not progress_bar) as pbar:
                while pending:
                    done, pending = wait(pending, timeout=0.05, return_when=FIRST_EXCEPTION)
                    for future in done:
                        error = future.exception()
                        if error is not None:
                            for f in pending:
                                f.cancel()
                            raise error
                        results[futures[future]] = future.result()
                        pbar.update(1)
                    if pending and cancel_event is not None and cancel_event.is_set():
                        for f in pending:
                            f.cancel()
                        raise SimulationCancelled()

        return [results[i] for i in range(len(items))]
