"""
並列実行ユーティリティのテスト
"""

import threading

import pytest

from proc.parallel import run_each, run_parallel, split_ranges
from proc.util import get_cpu_count, get_optimal_worker_count


class TestSplitRanges:

    def test_even_split(self):
        assert split_ranges(10, 3) == [(0, 4), (4, 7), (7, 10)]

    def test_minimum_per_range(self):
        assert split_ranges(20, 8, 16) == [(0, 20)]
        assert split_ranges(64, 8, 16) == [(0, 16), (16, 32), (32, 48), (48, 64)]

    def test_more_parts_than_items(self):
        assert split_ranges(2, 5) == [(0, 1), (1, 2)]

    def test_empty(self):
        assert split_ranges(0, 4) == []

    @pytest.mark.parametrize("total, parts", [(1, 1), (7, 2), (100, 7), (33, 33)])
    def test_ranges_cover_total(self, total, parts):
        ranges = split_ranges(total, parts)
        assert ranges[0][0] == 0
        assert ranges[-1][1] == total
        for (_, stop), (start, _) in zip(ranges, ranges[1:]):
            assert stop == start


class TestRunParallel:

    def test_order_is_preserved(self):
        assert run_parallel(lambda x: x * x, list(range(20)), max_workers=4) == [x * x for x in range(20)]

    def test_single_worker_runs_inline(self):
        threads = run_parallel(lambda _: threading.get_ident(), [1, 2, 3], max_workers=1)
        assert set(threads) == {threading.get_ident()}

    def test_exception_propagates(self):
        def fail(x):
            if x == 3:
                raise RuntimeError("boom")
            return x

        with pytest.raises(RuntimeError, match="boom"):
            run_parallel(fail, list(range(6)), max_workers=3)

    def test_run_each(self):
        seen = []
        lock = threading.Lock()

        def record(x):
            with lock:
                seen.append(x)

        run_each(record, range(10), max_workers=4)
        assert sorted(seen) == list(range(10))


def test_worker_counts_are_positive():
    assert get_cpu_count() >= 1
    assert get_cpu_count(logical=False) >= 1
    assert get_optimal_worker_count(cpu_intensive=True) >= 1
    assert get_optimal_worker_count(cpu_intensive=False, io_bound=True, max_workers=2) <= 2
