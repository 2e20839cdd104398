"""
アーカイブ層の例外定義

ロード失敗・パス解決失敗・I/O失敗・デシリアライズ失敗を区別する例外階層
"""

from typing import Optional


class ArcError(Exception):
    """アーカイブ層のすべての例外の基底クラス"""


class ArchiveLoadError(ArcError):
    """
    アーカイブのロード（ヘッダ・ディレクトリ解析）に失敗したことを示す例外

    マウント自体が失敗するので、再試行はしない。
    """

    def __init__(self, kind: str, message: str, path: Optional[str] = None, offset: Optional[int] = None):
        self.kind = kind
        self.path = path
        self.offset = offset
        detail = f"[{kind}] {message}"
        if path:
            detail += f" (path={path})"
        if offset is not None:
            detail += f" (offset=0x{offset:X})"
        super().__init__(detail)


class ArcLookupError(ArcError, LookupError):
    """アーカイブ内のパス解決に失敗したことを示す例外"""

    def __init__(self, path: str, message: str):
        self.path = path
        super().__init__(f"{message}: '{path}'")


class EntryNotFoundError(ArcLookupError, FileNotFoundError):
    """指定されたパスのエントリが存在しない"""

    def __init__(self, path: str):
        super().__init__(path, "エントリが見つかりません")


class WrongEntryTypeError(ArcLookupError):
    """ファイルをディレクトリとして（またはその逆に）扱おうとした"""

    def __init__(self, path: str, expected: str):
        self.expected = expected
        super().__init__(path, f"エントリの種類が違います（期待: {expected}）")


class NotADirectoryEntryError(WrongEntryTypeError):
    """パスの途中のセグメントがファイルだった"""

    def __init__(self, path: str):
        super().__init__(path, "directory")


class ArcIOError(ArcError, OSError):
    """アーカイブ内ストリームの読み込み・シークに関する例外"""


class ReaderError(ArcIOError):
    """バイナリリーダーの読み込み失敗（途中終端、不正なUTF-8など）"""

    def __init__(self, message: str, offset: Optional[int] = None):
        self.offset = offset
        if offset is not None:
            message = f"{message} (offset=0x{offset:X})"
        super().__init__(message)


class WindowSeekError(ArcIOError, ValueError):
    """サブファイルウィンドウの範囲外へのシーク"""


class ClosedWindowError(ArcIOError, ValueError):
    """閉じられたサブファイルウィンドウに対する操作"""


class UnsupportedPreloadError(ArcIOError):
    """プリロードバイトを持つVPKエントリの読み込み（未対応）"""


class PickleDecodeError(ArcError):
    """オブジェクトシリアライズ形式のデコード失敗"""

    def __init__(self, message: str, offset: Optional[int] = None):
        self.offset = offset
        if offset is not None:
            message = f"{message} (offset=0x{offset:X})"
        super().__init__(message)
