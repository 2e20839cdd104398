"""
サブファイルウィンドウ

1つの物理ストリームを複数のアーカイブ内ファイルで共有し、
各ファイルを [offset, offset + size) の範囲に限定した独立カーソルのストリームとして見せる
"""

import io
import threading
from contextlib import contextmanager
from typing import BinaryIO, Iterator

from .errors import ArcIOError, ClosedWindowError, WindowSeekError


class SharedStream:
    """
    複数のウィンドウから共有される物理ストリーム

    アクセスはロックで直列化する。参照カウントが0になった時点で物理ストリームを閉じる。
    """

    def __init__(self, stream: BinaryIO):
        self._stream = stream
        self._lock = threading.Lock()
        self._refs = 1
        self._refs_lock = threading.Lock()

    @property
    def closed(self) -> bool:
        return self._refs <= 0

    @property
    def ref_count(self) -> int:
        return self._refs

    def acquire(self) -> "SharedStream":
        with self._refs_lock:
            if self._refs <= 0:
                raise ArcIOError("閉じられたストリームは共有できません")
            self._refs += 1
        return self

    def release(self) -> None:
        with self._refs_lock:
            if self._refs <= 0:
                return
            self._refs -= 1
            last = self._refs == 0
        if last:
            with self._lock:
                self._stream.close()

    @contextmanager
    def locked(self) -> Iterator[BinaryIO]:
        """ロックを保持した状態で物理ストリームを渡す"""
        with self._lock:
            if self._refs <= 0:
                raise ArcIOError("ストリームは既に閉じられています")
            yield self._stream


class SubFileWindow(io.RawIOBase):
    """
    共有ストリーム上の範囲限定ストリーム

    カーソルは常に 0 <= cursor <= size を満たす。
    読み込みは毎回 offset + cursor へシークしてから行うので、
    同じ物理ストリーム上の他のウィンドウと交互に使っても結果は変わらない。
    """

    def __init__(self, shared: SharedStream, offset: int, size: int):
        super().__init__()
        if offset < 0 or size < 0:
            raise ValueError(f"不正なウィンドウ範囲です: offset={offset}, size={size}")
        self._shared = shared
        self.offset = offset
        self.size = size
        self._cursor = 0
        self._released = False

    @classmethod
    def open(cls, stream: BinaryIO, offset: int, size: int) -> "SubFileWindow":
        """物理ストリームから新しい共有ストリームとウィンドウを作成する"""
        return cls(SharedStream(stream), offset, size)

    @property
    def shared(self) -> SharedStream:
        return self._shared

    def readable(self) -> bool:
        return True

    def seekable(self) -> bool:
        return True

    def writable(self) -> bool:
        return False

    def readinto(self, buf) -> int:
        self._check_open()
        view = memoryview(buf).cast('B')
        length = min(self.size - self._cursor, len(view))
        if length <= 0:
            return 0

        with self._shared.locked() as stream:
            stream.seek(self.offset + self._cursor)
            data = stream.read(length)

        if not data:
            return 0
        n = len(data)
        view[:n] = data
        self._cursor += n
        return n

    def seek(self, pos: int, whence: int = io.SEEK_SET) -> int:
        self._check_open()
        if whence == io.SEEK_SET:
            target = pos
        elif whence == io.SEEK_CUR:
            target = self._cursor + pos
        elif whence == io.SEEK_END:
            target = self.size + pos
        else:
            raise ValueError(f"不正なwhenceです: {whence}")

        if target < 0 or target > self.size:
            raise WindowSeekError(
                f"ウィンドウの範囲外へのシークです: {target} (size={self.size})")
        self._cursor = target
        return target

    def tell(self) -> int:
        self._check_open()
        return self._cursor

    def clone(self) -> "SubFileWindow":
        """
        同じ範囲とカーソル位置を持つ別のウィンドウを作成する

        物理ストリームは複製せず、共有ストリームの参照カウントを増やす
        """
        self._check_open()
        twin = self._new_window(self._shared.acquire())
        twin._cursor = self._cursor
        return twin

    def _new_window(self, shared: SharedStream) -> "SubFileWindow":
        return SubFileWindow(shared, self.offset, self.size)

    def close(self) -> None:
        if not self._released:
            self._released = True
            self._shared.release()
        super().close()

    def _check_open(self) -> None:
        if self.closed:
            raise ClosedWindowError("閉じられたウィンドウに対する操作です")

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(offset={self.offset}, size={self.size}, cursor={self._cursor})"
