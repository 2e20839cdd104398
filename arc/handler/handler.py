"""
アーカイブハンドラ基底クラス

アーカイブハンドラの抽象基底クラスを定義
"""
import os
from typing import Any, BinaryIO, List, Optional, Union

from logutils import log_print, log_trace, DEBUG, INFO, WARNING, ERROR, CRITICAL
from ..arc import TreeEntry
from ..errors import ArchiveLoadError, ReaderError
from ..tree import TreeFs
from ..window import SharedStream, SubFileWindow

Source = Union[str, os.PathLike, BinaryIO]


def source_name(source: Source) -> Optional[str]:
    """パスまたはストリームから表示用の名前を得る"""
    if isinstance(source, (str, os.PathLike)):
        return os.fspath(source)
    name = getattr(source, 'name', None)
    return name if isinstance(name, str) else None


class ArchiveHandler:
    """
    アーカイブハンドラの抽象基底クラス

    ハンドラはコンストラクタでディレクトリ情報をすべて解析し（ロード）、
    以後は read() でパスを問い合わせるだけになる。
    ロードに失敗した場合は ArchiveLoadError を送出する。
    """

    # このハンドラがサポートするファイル拡張子のリスト
    supported_extensions: List[str] = []

    # ロードエラーに記録するアーカイブ種別
    kind = "archive"

    def __init__(self):
        self.tree = TreeFs(kind=self.kind)
        self._streams: List[SharedStream] = []
        self._closed = False

    def debug_print(self, message: Any, *args, level: int = INFO, trace: bool = False, **kwargs):
        """
        デバッグ出力のラッパーメソッド

        Args:
            message: 出力するメッセージ
            *args: メッセージのフォーマット用引数
            level: ログレベル（デフォルトはINFO）
            trace: Trueならスタックトレース情報も出力する
            **kwargs: 追加のキーワード引数
        """
        # クラス名をログの名前空間として使用
        name = f"arc.handler.{self.__class__.__name__}"

        if trace:
            log_trace(None, level, message, *args, name=name, **kwargs)
        else:
            log_print(level, message, *args, name=name, **kwargs)

    def debug_debug(self, message: Any, *args, trace: bool = False, **kwargs):
        """DEBUGレベルのログ出力"""
        self.debug_print(message, *args, level=DEBUG, trace=trace, **kwargs)

    def debug_info(self, message: Any, *args, trace: bool = False, **kwargs):
        """INFOレベルのログ出力"""
        self.debug_print(message, *args, level=INFO, trace=trace, **kwargs)

    def debug_warning(self, message: Any, *args, trace: bool = False, **kwargs):
        """WARNINGレベルのログ出力"""
        self.debug_print(message, *args, level=WARNING, trace=trace, **kwargs)

    def debug_error(self, message: Any, *args, trace: bool = False, **kwargs):
        """ERRORレベルのログ出力"""
        self.debug_print(message, *args, level=ERROR, trace=trace, **kwargs)

    def debug_critical(self, message: Any, *args, trace: bool = False, **kwargs):
        """CRITICALレベルのログ出力"""
        self.debug_print(message, *args, level=CRITICAL, trace=trace, **kwargs)

    @classmethod
    def can_handle(cls, path: str) -> bool:
        """
        指定されたパスがこのハンドラで処理可能かどうか（拡張子のみで判定）

        Args:
            path: 処理するファイルのパス

        Returns:
            処理可能な場合はTrue
        """
        _, ext = os.path.splitext(str(path).lower())
        return ext in cls.supported_extensions

    # ------------------------------------------------------------------
    # ストリーム管理
    # ------------------------------------------------------------------

    def _share(self, source: Source) -> SharedStream:
        """
        パスまたはストリームから共有ストリームを作成し、ハンドラの所有物として登録する

        ストリームを渡した場合、その所有権はハンドラに移る
        """
        if isinstance(source, (str, os.PathLike)):
            try:
                stream = open(source, 'rb')
            except OSError as e:
                raise ArchiveLoadError(self.kind, f"ファイルを開けません: {e}", path=str(source)) from e
        else:
            stream = source
        shared = SharedStream(stream)
        self._streams.append(shared)
        return shared

    def _add_file(self, path: str, shared: SharedStream, offset: int, size: int) -> None:
        self.tree.insert(path, self._make_window(shared, offset, size))

    def _make_window(self, shared: SharedStream, offset: int, size: int) -> SubFileWindow:
        return SubFileWindow(shared.acquire(), offset, size)

    def _load_error(self, message: str, path: Optional[str] = None,
                    cause: Optional[BaseException] = None) -> ArchiveLoadError:
        """ロードエラーを作成する（リーダーのエラーはオフセットを引き継ぐ）"""
        offset = cause.offset if isinstance(cause, ReaderError) else None
        return ArchiveLoadError(self.kind, message, path=path, offset=offset)

    # ------------------------------------------------------------------
    # 問い合わせ
    # ------------------------------------------------------------------

    def read(self, path: str) -> TreeEntry:
        """
        指定されたパスのエントリを取得する

        Args:
            path: アーカイブ内のパス（ルートは空文字列）

        Returns:
            ファイルなら呼び出し側が所有するウィンドウ、ディレクトリなら子エントリ名
        """
        return self.tree.read(path)

    def file_count(self) -> int:
        """アーカイブ内のファイル数"""
        return self.tree.file_count()

    def list_files(self) -> List[str]:
        """アーカイブ内の全ファイルパス"""
        return list(self.tree.paths())

    def close(self) -> None:
        """ツリーのウィンドウとハンドラが持つ物理ストリームの参照を解放する"""
        if self._closed:
            return
        self._closed = True
        self.tree.close()
        for shared in self._streams:
            shared.release()
        self._streams.clear()

    def _abort(self) -> None:
        """ロード途中で失敗した場合の後始末"""
        try:
            self.close()
        except OSError as e:
            self.debug_warning(f"ロード失敗後のクローズでエラー: {e}")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
