"""
アーカイブ内パスのユーティリティ

アーカイブ内のパスは '/' 区切りで、先頭・末尾・連続する区切りを持たない形に正規化して扱う
"""

import posixpath
from typing import List, Optional


def normalize_path(path: Optional[str]) -> str:
    """
    OSに依存しないパス正規化関数

    バックスラッシュをスラッシュに変換し、連続するスラッシュを1つにまとめ、
    先頭と末尾のスラッシュを取り除く。何度適用しても結果は変わらない。

    Args:
        path: 正規化する元のパス文字列

    Returns:
        正規化されたパス文字列（ルートは空文字列）
    """
    if not path:
        return ""

    normalized = path.replace('\\', '/')
    return '/'.join(segment for segment in normalized.split('/') if segment)


def join_path(base: str, name: str) -> str:
    """正規化済みのパスに名前を連結する"""
    base = normalize_path(base)
    name = normalize_path(name)
    if not base:
        return name
    if not name:
        return base
    return f"{base}/{name}"


class FullPath:
    """
    アーカイブ内の正規化済みパス

    変更不可。ハッシュ可能なので辞書のキーにも使える。
    """

    __slots__ = ('_path',)

    def __init__(self, path: "str | FullPath" = ""):
        if isinstance(path, FullPath):
            self._path = path._path
        else:
            self._path = normalize_path(path)

    @property
    def name(self) -> str:
        """最後のセグメント（ルートでは空文字列）"""
        return posixpath.basename(self._path)

    @property
    def segments(self) -> List[str]:
        return self._path.split('/') if self._path else []

    @property
    def is_root(self) -> bool:
        return not self._path

    def parent(self) -> Optional["FullPath"]:
        """
        親ディレクトリのパスを取得する

        Returns:
            親のパス。ルートの場合はNone
        """
        if self.is_root:
            return None
        return FullPath('/'.join(self.segments[:-1]))

    def join(self, name: str) -> "FullPath":
        return FullPath(join_path(self._path, name))

    def relative_to(self, base: "str | FullPath") -> "FullPath":
        """
        base からの相対パスを返す

        Raises:
            ValueError: base の配下にない場合
        """
        base = FullPath(base)
        if base.is_root:
            return self
        if self._path == base._path:
            return FullPath()
        prefix = base._path + '/'
        if not self._path.startswith(prefix):
            raise ValueError(f"'{self._path}' は '{base._path}' の配下にありません")
        return FullPath(self._path[len(prefix):])

    def __str__(self) -> str:
        return self._path

    def __repr__(self) -> str:
        return f"FullPath({self._path!r})"

    def __eq__(self, other) -> bool:
        if isinstance(other, FullPath):
            return self._path == other._path
        if isinstance(other, str):
            return self._path == normalize_path(other)
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._path)
