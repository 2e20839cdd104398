"""
スレッドプールによる並列実行ユーティリティ

独立した処理単位（テクスチャのブロック行バンドなど）をスレッドプールへ
ファンアウトし、全ての完了を待ち合わせる。
"""

from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Iterable, List, Optional, Sequence, Tuple, TypeVar

from .util import get_optimal_worker_count

T = TypeVar('T')
R = TypeVar('R')


def split_ranges(total: int, parts: int, minimum: int = 1) -> List[Tuple[int, int]]:
    """
    [0, total) を連続した半開区間に分割する

    Args:
        total: 分割対象の要素数
        parts: 希望する分割数
        minimum: 1区間あたりの最小要素数

    Returns:
        (start, stop) のリスト。total が 0 の場合は空リスト
    """
    if total <= 0:
        return []
    parts = max(1, min(parts, total // max(1, minimum) or 1))
    step, extra = divmod(total, parts)
    ranges = []
    start = 0
    for i in range(parts):
        stop = start + step + (1 if i < extra else 0)
        ranges.append((start, stop))
        start = stop
    return ranges


def run_parallel(func: Callable[[T], R],
                 items: Sequence[T],
                 max_workers: Optional[int] = None) -> List[R]:
    """
    items の各要素に func を適用し、結果を入力順で返す

    ワーカー数が1以下、または要素が1つ以下の場合は呼び出し元スレッドで実行する。
    いずれかのタスクで例外が発生した場合はそのまま送出される。

    Args:
        func: 各要素に適用する関数
        items: 処理対象
        max_workers: 最大ワーカー数（Noneの場合はCPU集約型の推奨値）

    Returns:
        結果のリスト
    """
    if max_workers is None:
        max_workers = get_optimal_worker_count(cpu_intensive=True)

    if max_workers <= 1 or len(items) <= 1:
        return [func(item) for item in items]

    with ThreadPoolExecutor(max_workers=min(max_workers, len(items))) as executor:
        return list(executor.map(func, items))


def run_each(func: Callable[[T], None], items: Iterable[T], max_workers: Optional[int] = None) -> None:
    """戻り値を必要としない run_parallel"""
    run_parallel(func, list(items), max_workers)
