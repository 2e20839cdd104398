"""
ロギング用ユーティリティ

アーカイブ層・デコーダー層で共通して使うロギング関数群
"""
import os
import sys
import traceback
import threading
from typing import Optional, Any

# Pythonの標準loggingモジュールをインポート
import logging as py_logging

# ログレベルの定数定義
DEBUG = 10
INFO = 20
WARNING = 30
ERROR = 40
CRITICAL = 50

# デフォルトのログレベル
_log_level = WARNING

# ロガーオブジェクトの格納用辞書
_loggers = {}
_loggers_lock = threading.Lock()

# ロギング先のファイルパス
_log_file: Optional[str] = None

_FORMAT = '%(asctime)s [%(name)s] %(levelname)s: %(message)s'


def setup_logging(level: int = WARNING, logfile: Optional[str] = None) -> None:
    """
    ロギングシステムをセットアップする

    Args:
        level: ログレベル（デフォルトはWARNING）
        logfile: ログの出力先ファイル（デフォルトはNone）
    """
    global _log_level, _log_file
    _log_level = level

    if logfile:
        try:
            # ログディレクトリが存在しない場合は作成
            log_dir = os.path.dirname(logfile)
            if log_dir:
                os.makedirs(log_dir, exist_ok=True)
            _log_file = logfile
        except OSError as e:
            sys.stderr.write(f"ログファイルを開けませんでした: {e}\n")
            _log_file = None

    # 既存のロガーにも反映する
    with _loggers_lock:
        for logger in _loggers.values():
            logger.setLevel(_log_level)
            if _log_file and not _has_file_handler(logger, _log_file):
                logger.addHandler(_file_handler(_log_file))


def get_log_level() -> int:
    """現在のログレベルを返す"""
    return _log_level


def _has_file_handler(logger: py_logging.Logger, path: str) -> bool:
    target = os.path.abspath(path)
    return any(
        isinstance(h, py_logging.FileHandler) and h.baseFilename == target
        for h in logger.handlers
    )


def _file_handler(path: str) -> py_logging.Handler:
    handler = py_logging.FileHandler(path, encoding='utf-8')
    handler.setFormatter(py_logging.Formatter(_FORMAT))
    return handler


def get_logger(name: str) -> py_logging.Logger:
    """
    名前付きのロガーを取得する

    Args:
        name: ロガー名（例: 'arc.handler.VpkHandler'）

    Returns:
        設定済みのロガーオブジェクト
    """
    with _loggers_lock:
        if name in _loggers:
            return _loggers[name]

        logger = py_logging.getLogger(name)
        logger.setLevel(_log_level)
        # 親ロガーへ伝播させるのでpytestのcaplogなどでも捕捉できる
        logger.propagate = True

        console = py_logging.StreamHandler()
        console.setFormatter(py_logging.Formatter(_FORMAT))
        logger.addHandler(console)

        if _log_file:
            logger.addHandler(_file_handler(_log_file))

        _loggers[name] = logger
        return logger


def log_print(level: int, message: Any, *args, name: Optional[str] = None, **kwargs) -> None:
    """
    指定したレベルでメッセージをログに出力する

    Args:
        level: ログレベル
        message: 出力するメッセージ
        *args: メッセージのフォーマット引数
        name: ロガー名（デフォルトは'arc'）
        **kwargs: loggingに渡すその他のキーワード引数
    """
    if level < _log_level:
        return
    logger = get_logger(name or 'arc')
    logger.log(level, message, *args, **kwargs)


def log_trace(e: Optional[BaseException], level: int, message: Any, *args,
              name: Optional[str] = None, **kwargs) -> None:
    """
    例外のトレース情報を含めてログに出力する

    Args:
        e: 例外オブジェクト（Noneの場合は現在のスタックを出力）
        level: ログレベル
        message: 出力するメッセージ
        *args: メッセージのフォーマット引数
        name: ロガー名（デフォルトは'arc'）
        **kwargs: loggingに渡すその他のキーワード引数
    """
    if level < _log_level:
        return

    log_print(level, message, *args, name=name, **kwargs)

    if e is not None:
        stack = ''.join(traceback.format_exception(type(e), e, e.__traceback__))
    else:
        stack = ''.join(traceback.format_stack()[:-1])  # 自分自身の呼び出しを除外

    get_logger(name or 'arc').log(level, f"スタックトレース:\n{stack}")
