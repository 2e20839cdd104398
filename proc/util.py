"""
プロセスとスレッドのユーティリティ関数

CPU数、適切なワーカー数の計算など、テクスチャデコードの並列化で
必要となる共通ユーティリティ関数を提供します。
"""

import multiprocessing
from typing import Optional

import psutil

from logutils import log_print, DEBUG, WARNING

_LOG_NAME = 'proc.util'


def get_cpu_count(logical: bool = True) -> int:
    """
    システムで利用可能なCPU数を取得する

    Args:
        logical: 論理コア数を返す場合はTrue、物理コア数の場合はFalse

    Returns:
        CPU数（コア数）
    """
    try:
        if logical:
            return multiprocessing.cpu_count()
        # 物理コア数はpsutilでしか取れない。取れない環境ではNoneが返る
        return psutil.cpu_count(logical=False) or multiprocessing.cpu_count()
    except NotImplementedError as e:
        log_print(WARNING, f"CPU数の取得に失敗しました: {e}", name=_LOG_NAME)
        return 1


def get_optimal_worker_count(cpu_intensive: bool = True,
                             io_bound: bool = False,
                             memory_intensive: bool = False,
                             max_workers: Optional[int] = None) -> int:
    """
    ワークロードの特性に基づいて最適なワーカー数を計算する

    Args:
        cpu_intensive: CPUを多く使用する処理の場合True
        io_bound: I/O待ちが多い処理の場合True
        memory_intensive: メモリを多く使用する処理の場合True
        max_workers: 最大ワーカー数の上限（Noneの場合は制限なし）

    Returns:
        推奨されるワーカー数（1以上）
    """
    logical_cores = get_cpu_count(logical=True)
    physical_cores = get_cpu_count(logical=False)

    if cpu_intensive:
        # CPU集約型は物理コア数が基本
        workers = physical_cores
    elif io_bound:
        workers = logical_cores * 2
    else:
        workers = logical_cores

    if memory_intensive:
        workers = max(1, min(workers, physical_cores // 2 + 1))

    # 搭載メモリが少ない環境では控えめにする
    total_memory_gb = psutil.virtual_memory().total / (1024 ** 3)
    if total_memory_gb < 4:
        workers = min(workers, 2)
    elif total_memory_gb < 8:
        workers = min(workers, physical_cores, 4)

    if max_workers is not None:
        workers = min(workers, max_workers)

    workers = max(1, workers)
    log_print(DEBUG, f"推奨ワーカー数: {workers} (論理={logical_cores}, 物理={physical_cores})",
              name=_LOG_NAME)
    return workers


def adjust_workers_for_memory(total_data_size: int,
                              workers: int,
                              memory_per_worker_factor: float = 2.0,
                              memory_limit_percent: float = 50.0) -> int:
    """
    利用可能なメモリに基づいてワーカー数を調整する

    Args:
        total_data_size: 処理する合計データサイズ（バイト単位）
        workers: 初期ワーカー数
        memory_per_worker_factor: ワーカーあたりのメモリ使用量係数
        memory_limit_percent: 使用を許可する空きメモリの最大パーセンテージ

    Returns:
        調整後のワーカー数
    """
    if workers <= 1 or total_data_size <= 0:
        return max(1, workers)

    allowed_memory = psutil.virtual_memory().available * (memory_limit_percent / 100.0)
    worker_size = (total_data_size / workers) * memory_per_worker_factor
    if worker_size <= 0:
        return workers
    return max(1, min(workers, int(allowed_memory / worker_size)))
