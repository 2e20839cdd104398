"""
仮想ファイルシステム

アーカイブハンドラを共有し、アーカイブ内のファイルとディレクトリを
パスで参照できるオブジェクトとして提供する
"""

import io
import os
import shutil
import threading
from typing import Iterator, List, Union

from .arc import TreeEntry
from .errors import WrongEntryTypeError
from .handler.handler import ArchiveHandler
from .path_utils import FullPath
from .window import SubFileWindow


class VirtualFs:
    """
    アーカイブハンドラのラッパー

    複数のエントリから同時に参照されるので、ハンドラへの問い合わせはロックで直列化する
    """

    def __init__(self, handler: ArchiveHandler):
        self._handler = handler
        self._lock = threading.RLock()

    @property
    def handler(self) -> ArchiveHandler:
        return self._handler

    def _query(self, path: FullPath) -> TreeEntry:
        with self._lock:
            return self._handler.read(str(path))

    def read(self, path: Union[str, FullPath] = "") -> Union["VirtualFile", "VirtualDirectory"]:
        """
        パスのエントリを取得する

        Args:
            path: アーカイブ内のパス（ルートは空文字列）

        Returns:
            VirtualFile または VirtualDirectory
        """
        path = FullPath(path)
        entry = self._query(path)
        if entry.is_file():
            return VirtualFile(self, path, entry.window)
        return VirtualDirectory(self, path, [path.join(name) for name in entry.children])

    def root(self) -> "VirtualDirectory":
        return self.read_directory("")

    def read_file(self, path: Union[str, FullPath]) -> "VirtualFile":
        entry = self.read(path)
        if not isinstance(entry, VirtualFile):
            raise WrongEntryTypeError(str(entry.path), "file")
        return entry

    def read_directory(self, path: Union[str, FullPath]) -> "VirtualDirectory":
        entry = self.read(path)
        if not isinstance(entry, VirtualDirectory):
            entry.close()
            raise WrongEntryTypeError(str(entry.path), "directory")
        return entry

    def file_count(self) -> int:
        with self._lock:
            return self._handler.file_count()

    def close(self) -> None:
        """ハンドラを閉じる。取得済みのファイルは閉じるまで読み込める"""
        with self._lock:
            self._handler.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


class VirtualFile(io.RawIOBase):
    """
    アーカイブ内のファイル

    サブファイルウィンドウを所有するファイルライクオブジェクト
    """

    def __init__(self, fs: VirtualFs, path: FullPath, stream: SubFileWindow):
        super().__init__()
        self.fs = fs
        self.path = path
        self.stream = stream

    @property
    def name(self) -> str:
        return self.path.name

    def is_file(self) -> bool:
        return True

    def is_dir(self) -> bool:
        return False

    def readable(self) -> bool:
        return True

    def seekable(self) -> bool:
        return True

    def readinto(self, buf) -> int:
        return self.stream.readinto(buf)

    def seek(self, pos: int, whence: int = io.SEEK_SET) -> int:
        return self.stream.seek(pos, whence)

    def tell(self) -> int:
        return self.stream.tell()

    def size(self) -> int:
        """ファイルサイズ（現在位置は維持する）"""
        position = self.tell()
        size = self.seek(0, io.SEEK_END)
        self.seek(position)
        return size

    def read_all(self) -> bytes:
        """先頭から全内容を読み込む"""
        self.seek(0)
        return self.read()

    def save(self, real_path: Union[str, os.PathLike]) -> None:
        """
        実ファイルとして書き出す

        読み込みに失敗した場合は書きかけのファイルを削除してから例外を送出する

        Args:
            real_path: 書き出し先のパス（親ディレクトリは自動で作成する）
        """
        parent = os.path.dirname(os.fspath(real_path))
        if parent:
            os.makedirs(parent, exist_ok=True)
        self.seek(0)
        with open(real_path, 'wb') as f:
            try:
                shutil.copyfileobj(self, f)
            except BaseException:
                f.close()
                os.remove(real_path)
                raise

    def clone(self) -> "VirtualFile":
        """同じパスを読み直した新しいファイル（カーソルは先頭）"""
        return self.fs.read_file(self.path)

    def close(self) -> None:
        if not self.closed:
            self.stream.close()
        super().close()

    def __repr__(self) -> str:
        return f"VirtualFile({str(self.path)!r})"


class VirtualDirectory:
    """
    アーカイブ内のディレクトリ

    子エントリのパスだけを保持し、実体は参照されたときに読み込む
    """

    def __init__(self, fs: VirtualFs, path: FullPath, entries: List[FullPath]):
        self.fs = fs
        self.path = path
        self._entries = entries

    @property
    def name(self) -> str:
        return self.path.name

    def is_file(self) -> bool:
        return False

    def is_dir(self) -> bool:
        return True

    def entry_paths(self) -> List[FullPath]:
        return list(self._entries)

    def entries(self) -> Iterator[Union[VirtualFile, "VirtualDirectory"]]:
        """子エントリを順に読み込む（イテレートされた分だけ読む）"""
        for path in self._entries:
            yield self.fs.read(path)

    def entries_recursive(self) -> Iterator[Union[VirtualFile, "VirtualDirectory"]]:
        """自分自身、続いて子孫を深さ優先で列挙する"""
        yield self
        for entry in self.entries():
            if isinstance(entry, VirtualDirectory):
                yield from entry.entries_recursive()
            else:
                yield entry

    def files_recursive(self) -> Iterator[VirtualFile]:
        for entry in self.entries_recursive():
            if isinstance(entry, VirtualFile):
                yield entry

    def size(self) -> int:
        """配下の全ファイルの合計サイズ（呼ばれるたびに計算する）"""
        total = 0
        for file in self.files_recursive():
            with file:
                total += file.size()
        return total

    def save(self, real_path: Union[str, os.PathLike]) -> None:
        """
        配下の全ファイルを実ディレクトリに書き出す

        各ファイルはこのディレクトリからの相対パスで real_path の下に置かれる。
        途中で失敗した場合は、この呼び出しで書き出したファイルを削除してから例外を送出する
        """
        written = []
        try:
            for file in self.files_recursive():
                with file:
                    relative = file.path.relative_to(self.path)
                    target = os.path.join(os.fspath(real_path), *relative.segments)
                    file.save(target)
                    written.append(target)
        except BaseException:
            for target in written:
                if os.path.exists(target):
                    os.remove(target)
            raise

    def close(self) -> None:
        pass

    def __repr__(self) -> str:
        return f"VirtualDirectory({str(self.path)!r})"
