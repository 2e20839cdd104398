"""
ロギングユーティリティのテスト
"""

import logging

import pytest

import logutils.log as log_module
from logutils import DEBUG, INFO, WARNING, get_log_level, get_logger, log_print, log_trace, setup_logging


@pytest.fixture
def restore_level():
    saved = log_module._log_file
    yield
    setup_logging(WARNING)
    log_module._log_file = saved
    for logger in log_module._loggers.values():
        for handler in list(logger.handlers):
            if isinstance(handler, logging.FileHandler):
                logger.removeHandler(handler)
                handler.close()


def test_default_level_filters_info(caplog):
    log_print(INFO, "表示されない", name="tests.log")
    log_print(WARNING, "表示される", name="tests.log")
    messages = [r.getMessage() for r in caplog.records if r.name == "tests.log"]
    assert messages == ["表示される"]


def test_setup_logging_writes_file(tmp_path, restore_level):
    logfile = tmp_path / "logs" / "gamearc.log"
    setup_logging(DEBUG, str(logfile))
    assert get_log_level() == DEBUG
    log_print(DEBUG, "ファイルに出力", name="tests.file")
    for handler in get_logger("tests.file").handlers:
        handler.flush()
    assert "ファイルに出力" in logfile.read_text(encoding="utf-8")


def test_logger_is_cached():
    assert get_logger("tests.cached") is get_logger("tests.cached")


def test_log_trace_includes_exception(caplog):
    try:
        raise ValueError("失敗")
    except ValueError as e:
        log_trace(e, WARNING, "例外が発生しました", name="tests.trace")
    messages = [r.getMessage() for r in caplog.records if r.name == "tests.trace"]
    assert messages[0] == "例外が発生しました"
    assert "ValueError" in messages[1]
