import threading
import time
import unittest
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import patch

from tabledump.errors import RangeExportFailure
from tabledump.range_chunking import plan_ranges
from tabledump.range_exporter import RangeOutcome
from tabledump.worker_pool import WorkerPool


class RecordingExporter:
    """Fake export function that tracks concurrency and completion order"""

    def __init__(self, delay_for=None):
        self.delay_for = delay_for or (lambda rng: 0)
        self.lock = threading.Lock()
        self.active = 0
        self.max_active = 0
        self.calls = []
        self.completed = []
        self.threads = set()

    def __call__(self, rng):
        with self.lock:
            self.active += 1
            self.max_active = max(self.max_active, self.active)
            self.calls.append(rng.index)
            self.threads.add(threading.current_thread().name)
        try:
            time.sleep(self.delay_for(rng))
            return RangeOutcome(range=rng, rows_written=rng.size)
        finally:
            with self.lock:
                self.active -= 1
                self.completed.append(rng.index)


class TestWorkerPool(unittest.TestCase):
    """Test cases for the range worker pool"""

    def test_report_follows_submission_order(self):
        """Outcomes keep plan order even when later ranges finish first"""
        ranges = plan_ranges(500, 100, '/out', 'run')
        # range 0 is the slowest, range 4 the fastest
        exporter = RecordingExporter(delay_for=lambda rng: 0.05 * (len(ranges) - rng.index))

        outcomes = WorkerPool(exporter).run(ranges, concurrency=5)

        self.assertEqual([o.range.index for o in outcomes], [0, 1, 2, 3, 4])
        self.assertNotEqual(exporter.completed, sorted(exporter.completed))

    def test_each_range_processed_exactly_once(self):
        ranges = plan_ranges(10000, 100, '/out', 'run')
        exporter = RecordingExporter()

        outcomes = WorkerPool(exporter).run(ranges, concurrency=8)

        self.assertEqual(sorted(exporter.calls), list(range(100)))
        self.assertEqual(len(outcomes), 100)
        self.assertEqual([o.range for o in outcomes], ranges)

    def test_concurrency_is_clamped_to_range_count(self):
        """Asking for 100 workers with 3 ranges runs at most 3 executors"""
        ranges = plan_ranges(2500, 1000, '/out', 'run')
        exporter = RecordingExporter(delay_for=lambda rng: 0.05)

        with patch('tabledump.worker_pool.ThreadPoolExecutor',
                   wraps=ThreadPoolExecutor) as executor_cls:
            outcomes = WorkerPool(exporter).run(ranges, concurrency=100)

        self.assertEqual(executor_cls.call_args.kwargs['max_workers'], 3)
        self.assertLessEqual(exporter.max_active, 3)
        self.assertLessEqual(len(exporter.threads), 3)
        self.assertEqual(len(outcomes), 3)

    def test_concurrency_bound_is_respected(self):
        ranges = plan_ranges(1000, 100, '/out', 'run')
        exporter = RecordingExporter(delay_for=lambda rng: 0.02)

        WorkerPool(exporter).run(ranges, concurrency=2)

        self.assertLessEqual(exporter.max_active, 2)

    def test_no_ranges_returns_empty_without_executor(self):
        with patch('tabledump.worker_pool.ThreadPoolExecutor') as executor_cls:
            outcomes = WorkerPool(RecordingExporter()).run([], concurrency=4)

        self.assertEqual(outcomes, [])
        executor_cls.assert_not_called()

    def test_zero_concurrency_returns_empty(self):
        ranges = plan_ranges(10, 5, '/out', 'run')
        exporter = RecordingExporter()

        self.assertEqual(WorkerPool(exporter).run(ranges, concurrency=0), [])
        self.assertEqual(exporter.calls, [])

    def test_escaped_exception_becomes_failed_outcome(self):
        """A raising export function cannot drop its range from the report"""
        ranges = plan_ranges(30, 10, '/out', 'run')

        def export(rng):
            if rng.index == 1:
                raise OSError('disk full')
            return RangeOutcome(range=rng, rows_written=rng.size)

        outcomes = WorkerPool(export).run(ranges, concurrency=3)

        self.assertEqual(len(outcomes), 3)
        self.assertTrue(outcomes[0].succeeded)
        self.assertTrue(outcomes[2].succeeded)
        self.assertIsInstance(outcomes[1].error, RangeExportFailure)
        self.assertEqual(str(outcomes[1].error), 'disk full')
        self.assertEqual(outcomes[1].rows_written, 0)


if __name__ == '__main__':
    unittest.main()
