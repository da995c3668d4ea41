"""
Parallel processing utilities for independent solves.

Frontier grid targets and the portfolios of a multi-portfolio comparison are
independent pure computations; this module distributes them across a thread
pool (the default, since the numerical solvers release the GIL) or a process
pool, sized against the available cores and memory.

``timeout_seconds`` bounds a whole dispatch and cancels it as one unit; the
per-solve budget that skips a single point is ``SolverSettings.time_limit``.
"""

import multiprocessing as mp
import concurrent.futures
from typing import Any, Callable, Dict, List, Mapping, Optional
from functools import partial
import logging
from dataclasses import dataclass
import time
import psutil

from ...domain.exceptions import SolverError

logger = logging.getLogger(__name__)


@dataclass
class ProcessingConfig:
    """Configuration for parallel processing."""
    max_workers: Optional[int] = None
    chunk_size: Optional[int] = None
    use_processes: bool = False  # True needs picklable functions and arguments
    memory_limit_gb: float = 8.0
    timeout_seconds: Optional[float] = None


class ParallelProcessor:
    """
    Maps a function over independent work items in parallel.

    Results always come back in input order. With a single worker or a single
    item the work runs inline on the calling thread.
    """

    def __init__(self, config: Optional[ProcessingConfig] = None):
        self.config = config or ProcessingConfig()
        self._setup_workers()

    def _setup_workers(self):
        """Setup worker configuration based on system resources."""
        if self.config.max_workers is None:
            # Use 75% of available cores, leaving some for system processes
            self.config.max_workers = max(1, int(mp.cpu_count() * 0.75))
        elif self.config.max_workers < 1:
            raise ValueError("max_workers must be at least 1")

        available_memory_gb = psutil.virtual_memory().available / (1024**3)
        if available_memory_gb < self.config.memory_limit_gb:
            memory_ratio = available_memory_gb / self.config.memory_limit_gb
            # Only reduce if memory is really constrained
            if memory_ratio < 0.5:
                self.config.max_workers = max(1, int(self.config.max_workers * memory_ratio))

        logger.debug(f"Initialized ParallelProcessor with {self.config.max_workers} workers")

    def map_parallel(
        self,
        func: Callable,
        iterable: List[Any],
        chunk_size: Optional[int] = None,
        **kwargs
    ) -> List[Any]:
        """
        Apply function to iterable in parallel.

        Args:
            func: Function to apply
            iterable: Items to process
            chunk_size: Size of chunks for process pools
            **kwargs: Additional arguments for function

        Returns:
            List of results, in input order

        Raises:
            SolverError: if the dispatch exceeds ``timeout_seconds``
        """
        items = list(iterable)
        if not items:
            return []

        if kwargs:
            func = partial(func, **kwargs)

        start_time = time.time()
        workers = min(self.config.max_workers, len(items))

        try:
            if workers == 1:
                results = [func(item) for item in items]
            elif self.config.use_processes:
                chunk_size = chunk_size or self.config.chunk_size or max(1, len(items) // workers)
                with mp.Pool(processes=workers) as pool:
                    results = pool.map_async(func, items, chunksize=chunk_size).get(self.config.timeout_seconds)
            else:
                with concurrent.futures.ThreadPoolExecutor(max_workers=workers) as executor:
                    results = list(executor.map(func, items, timeout=self.config.timeout_seconds))

            processing_time = time.time() - start_time
            logger.debug(f"Parallel processing completed in {processing_time:.2f}s for {len(items)} items")

            return results

        except (concurrent.futures.TimeoutError, mp.TimeoutError) as e:
            logger.error(f"Parallel processing exceeded {self.config.timeout_seconds}s for {len(items)} items")
            raise SolverError(
                f"Parallel dispatch exceeded its {self.config.timeout_seconds}s budget",
                error_code="DISPATCH_TIMEOUT",
                context={'timeout_seconds': self.config.timeout_seconds, 'n_items': len(items)}
            ) from e
        except Exception as e:
            logger.error(f"Parallel processing failed: {e}")
            raise

    def map_labelled(self, func: Callable, items: Mapping[str, Any], **kwargs) -> Dict[str, Any]:
        """Apply function to the values of a mapping, keeping the mapping's key order."""
        labels = list(items.keys())
        results = self.map_parallel(func, list(items.values()), **kwargs)
        return dict(zip(labels, results))

    def get_performance_stats(self) -> Dict[str, Any]:
        """Get current performance statistics."""
        return {
            'max_workers': self.config.max_workers,
            'cpu_count': mp.cpu_count(),
            'memory_usage_gb': psutil.virtual_memory().used / (1024**3),
            'memory_available_gb': psutil.virtual_memory().available / (1024**3),
            'use_processes': self.config.use_processes
        }
