#!/usr/bin/env python3
"""
Test suite for the parallel dispatch of independent solves.
"""

import math
import threading
import time
import unittest

from frontierlab.infrastructure.performance import ParallelProcessor, ProcessingConfig
from frontierlab.domain.exceptions import SolverError


class TestParallelProcessor(unittest.TestCase):
    """Test parallel processing functionality."""

    def setUp(self):
        self.config = ProcessingConfig(max_workers=2, memory_limit_gb=0.0)
        self.processor = ParallelProcessor(self.config)

    def test_map_parallel_keeps_order(self):
        """Results come back in input order."""
        def slow_square(x):
            time.sleep(0.01 * (5 - x % 5))
            return x * x

        data = list(range(10))
        results = self.processor.map_parallel(slow_square, data)

        self.assertEqual(results, [x * x for x in data])

    def test_keyword_arguments(self):
        def scale(x, factor):
            return x * factor

        self.assertEqual(self.processor.map_parallel(scale, [1, 2, 3], factor=10), [10, 20, 30])

    def test_empty_input(self):
        self.assertEqual(self.processor.map_parallel(abs, []), [])

    def test_single_worker_runs_inline(self):
        processor = ParallelProcessor(ProcessingConfig(max_workers=1))
        threads = processor.map_parallel(lambda _: threading.current_thread(), range(3))

        self.assertTrue(all(t is threading.current_thread() for t in threads))

    def test_process_pool(self):
        processor = ParallelProcessor(ProcessingConfig(max_workers=2, use_processes=True))
        self.assertEqual(processor.map_parallel(math.factorial, [3, 4, 5]), [6, 24, 120])

    def test_errors_propagate(self):
        def fail(x):
            if x == 2:
                raise RuntimeError("solver crashed")
            return x

        with self.assertRaises(RuntimeError):
            self.processor.map_parallel(fail, [1, 2, 3])

    def test_timeout_cancels_dispatch(self):
        processor = ParallelProcessor(ProcessingConfig(max_workers=2, memory_limit_gb=0.0, timeout_seconds=0.05))

        with self.assertRaises(SolverError) as ctx:
            processor.map_parallel(time.sleep, [0.5, 0.5, 0.5])

        self.assertEqual(ctx.exception.error_code, 'DISPATCH_TIMEOUT')
        self.assertEqual(ctx.exception.context['n_items'], 3)

    def test_map_labelled(self):
        results = self.processor.map_labelled(len, {'b': 'xx', 'a': 'x', 'c': 'xxx'})

        self.assertEqual(list(results), ['b', 'a', 'c'])
        self.assertEqual(results, {'b': 2, 'a': 1, 'c': 3})

    def test_invalid_worker_count(self):
        with self.assertRaises(ValueError):
            ParallelProcessor(ProcessingConfig(max_workers=0))

    def test_default_worker_count(self):
        processor = ParallelProcessor(ProcessingConfig(memory_limit_gb=0.0))
        self.assertGreaterEqual(processor.config.max_workers, 1)

    def test_performance_stats(self):
        stats = self.processor.get_performance_stats()

        self.assertEqual(stats['max_workers'], 2)
        self.assertFalse(stats['use_processes'])
        self.assertIn('memory_available_gb', stats)


if __name__ == '__main__':
    unittest.main()
