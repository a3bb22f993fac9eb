import logging

import pytest

from wst.error_handling import (
    ErrorCategory,
    ErrorHandler,
    ErrorSeverity,
    get_error_handler,
    handle_collection_error,
    handle_export_error,
)
from wst.utils.exceptions import CsvWriteError, PushgatewayError, RemotePushError
from wst.utils.logging_utils import JsonFormatter, setup_logging


@pytest.mark.parametrize(
    "exc, category",
    [
        (CsvWriteError("disk full"), ErrorCategory.FILE_IO),
        (PushgatewayError("502"), ErrorCategory.NETWORK),
        (RemotePushError("refused"), ErrorCategory.NETWORK),
        (TimeoutError(), ErrorCategory.NETWORK),
        (PermissionError("denied"), ErrorCategory.FILE_IO),
        (ValueError("bad"), ErrorCategory.UNKNOWN),
    ],
)
def test_export_errors_are_categorized(exc, category):
    info = handle_export_error(exc, "stats_csv", {"path": "/tmp/x"})
    assert info.category is category
    assert info.severity is ErrorSeverity.MEDIUM
    assert info.to_dict()["function_name"] == "stats_csv"


def test_collection_errors_are_high_severity():
    info = handle_collection_error(RuntimeError("crashed"), 3)
    assert info.category is ErrorCategory.SESSION_COLLECTION
    assert info.severity is ErrorSeverity.HIGH
    assert info.context == {"session_id": 3}
    summary = get_error_handler().get_error_summary()
    assert summary["total_errors"] == 1
    assert summary["by_type"] == {"RuntimeError": 1}


def test_history_is_bounded():
    handler = ErrorHandler(max_errors=3)
    for i in range(5):
        handler.handle_error(ValueError(str(i)), should_log=False)
    assert [str(e.exception) for e in handler.get_recent_errors()] == ["2", "3", "4"]
    assert handler.get_error_summary()["by_type"] == {"ValueError": 5}
    handler.clear_errors()
    assert handler.get_error_summary()["total_errors"] == 0


@pytest.fixture()
def _restore_root_logging():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    for h in root.handlers[:]:
        if h not in handlers:
            root.removeHandler(h)
            h.close()
    for h in handlers:
        if h not in root.handlers:
            root.addHandler(h)
    root.setLevel(level)


@pytest.mark.usefixtures("_restore_root_logging")
def test_setup_logging_json_and_file(monkeypatch, tmp_path):
    monkeypatch.setenv("WST_JSON_LOGS", "1")
    log_file = tmp_path / "logs" / "wst.log"
    setup_logging("DEBUG", str(log_file))
    root = logging.getLogger()
    assert root.level == logging.DEBUG
    assert any(isinstance(h.formatter, JsonFormatter) for h in root.handlers)
    assert logging.getLogger("urllib3").level == logging.WARNING
    logging.getLogger("wst.test").info("hello")
    for h in root.handlers:
        h.flush()
    assert "hello" in log_file.read_text(encoding="utf-8")
