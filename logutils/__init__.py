"""
ロギングモジュール

gamearc 全体で使用するロギング機能を提供します
"""

# log.pyからすべてのシンボルを公開
from .log import (
    setup_logging,
    get_logger,
    get_log_level,
    log_print,
    log_trace,
    DEBUG,
    INFO,
    WARNING,
    ERROR,
    CRITICAL
)

__all__ = [
    'setup_logging', 'get_logger', 'get_log_level', 'log_print', 'log_trace',
    'DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL',
]
