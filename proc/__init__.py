"""
並列処理ユーティリティモジュール

ワーカー数の算出と、スレッドプールによるファンアウト/待ち合わせを提供します。
"""

from .util import get_cpu_count, get_optimal_worker_count, adjust_workers_for_memory
from .parallel import split_ranges, run_parallel, run_each

__all__ = [
    'get_cpu_count', 'get_optimal_worker_count', 'adjust_workers_for_memory',
    'split_ranges', 'run_parallel', 'run_each',
]
