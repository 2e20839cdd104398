"""
アーカイブエントリの型定義

インデックスツリーが返すエントリ（ファイル/ディレクトリ）を表すクラス
"""

from enum import Enum
from typing import List, Optional

from .window import SubFileWindow


class EntryType(Enum):
    """エントリタイプを表す列挙型"""
    FILE = 1
    DIRECTORY = 2

    def is_dir(self) -> bool:
        """ディレクトリタイプかどうかを判定する"""
        return self == EntryType.DIRECTORY

    def is_file(self) -> bool:
        """ファイルタイプかどうかを判定する"""
        return self == EntryType.FILE


class TreeEntry:
    """
    ハンドラの read() が返すエントリ

    ファイルの場合は呼び出し側が所有するウィンドウ、
    ディレクトリの場合は子エントリ名のリスト（挿入順）を保持する。
    """

    __slots__ = ('type', 'window', 'children')

    def __init__(self, type: EntryType,
                 window: Optional[SubFileWindow] = None,
                 children: Optional[List[str]] = None):
        self.type = type
        self.window = window
        self.children = children if children is not None else []

    @classmethod
    def file(cls, window: SubFileWindow) -> "TreeEntry":
        return cls(EntryType.FILE, window=window)

    @classmethod
    def directory(cls, children: List[str]) -> "TreeEntry":
        return cls(EntryType.DIRECTORY, children=list(children))

    def is_file(self) -> bool:
        return self.type.is_file()

    def is_dir(self) -> bool:
        return self.type.is_dir()

    def __repr__(self) -> str:
        if self.is_file():
            return f"TreeEntry.file({self.window!r})"
        return f"TreeEntry.directory({self.children!r})"
