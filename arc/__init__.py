"""
gamearc アーカイブ処理モジュール

ゲームのアーカイブ形式（VPK / Godot PCK / Ren'Py RPA）を
読み取り専用の仮想ファイルシステムとして扱う統一インターフェースを提供
"""

# 基本型のみをインポート (循環参照を避けるため)
from .arc import EntryType, TreeEntry
from .errors import (
    ArcError, ArchiveLoadError, ArcLookupError, EntryNotFoundError, WrongEntryTypeError,
    NotADirectoryEntryError, ArcIOError, ReaderError, WindowSeekError, ClosedWindowError,
    UnsupportedPreloadError, PickleDecodeError,
)
from .path_utils import FullPath, normalize_path
from .vfs import VirtualFs, VirtualFile, VirtualDirectory

# インターフェース関数をインポート
from .interface import (
    mount, mount_vpk, mount_godot_pck, mount_renpy_rpa, get_supported_archive_extensions,
)

__all__ = [
    'EntryType', 'TreeEntry', 'FullPath', 'normalize_path',
    'VirtualFs', 'VirtualFile', 'VirtualDirectory',
    'mount', 'mount_vpk', 'mount_godot_pck', 'mount_renpy_rpa', 'get_supported_archive_extensions',
    'ArcError', 'ArchiveLoadError', 'ArcLookupError', 'EntryNotFoundError', 'WrongEntryTypeError',
    'NotADirectoryEntryError', 'ArcIOError', 'ReaderError', 'WindowSeekError', 'ClosedWindowError',
    'UnsupportedPreloadError', 'PickleDecodeError',
]
