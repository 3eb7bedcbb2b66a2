import io
import json
import logging
import sys
import threading

import pytest

from autoupdater import configure_logging, log_event
from autoupdater.logging_utils import JSONFormatter


@pytest.fixture(autouse=True)
def restore_root_logger():
    logger = logging.getLogger()
    level = logger.level
    yield
    for h in list(logger.handlers):
        if getattr(h, "_added_by_configure_logging", False):
            logger.removeHandler(h)
            h.close()
    logger.setLevel(level)


def test_logging_default_level(caplog):
    configure_logging(False)
    logging.debug("debug")
    logging.info("info")
    logging.warning("warn")
    assert [r.getMessage() for r in caplog.records] == ["warn"]


def test_logging_verbose_level(caplog):
    configure_logging(True)
    logging.debug("debug")
    logging.info("info")
    logging.warning("warn")
    assert [r.getMessage() for r in caplog.records] == ["debug", "info", "warn"]


def test_explicit_level_overrides_verbose(caplog):
    configure_logging(True, log_level="error")
    logging.warning("warn")
    logging.error("boom")
    assert [r.getMessage() for r in caplog.records] == ["boom"]


def test_log_file_handler(tmp_path):
    log_path = tmp_path / "updater.log"
    configure_logging(True, log_file=str(log_path))
    logging.info("file-log")
    assert "file-log" in log_path.read_text(encoding="utf-8")


def test_log_json_handler(monkeypatch):
    buf = io.StringIO()
    monkeypatch.setattr(sys, "stdout", buf)
    configure_logging(False, log_json=True)
    msg = 'bad "quote" \\ newline\nhere'
    logging.warning(msg)
    json_output = buf.getvalue().strip().splitlines()[-1]
    assert json.loads(json_output) == {"level": "WARNING", "message": msg}


def test_log_event_structured_fields(monkeypatch):
    buf = io.StringIO()
    monkeypatch.setattr(sys, "stdout", buf)
    configure_logging(False, log_json=True, log_level="info")
    log_event(
        "update_check_finished",
        tool_path="/opt/app/maintenancetool",
        exit_code=1,
        outcome="no_updates",
        duration_ms=12,
    )
    payload = json.loads(buf.getvalue().strip().splitlines()[-1])
    assert payload == {
        "level": "INFO",
        "message": "update_check_finished",
        "event": "update_check_finished",
        "tool_path": "/opt/app/maintenancetool",
        "exit_code": 1,
        "outcome": "no_updates",
        "duration_ms": 12,
    }


def test_json_formatter_skips_unknown_extra():
    record = logging.LogRecord("x", logging.INFO, __file__, 1, "hello", None, None)
    record.task_id = 7
    record.unrelated = "ignored"
    assert json.loads(JSONFormatter().format(record)) == {
        "level": "INFO",
        "message": "hello",
        "task_id": 7,
    }


def test_log_event_never_raises():
    # "message" is a reserved LogRecord attribute and makes logging raise
    log_event("update_check_started", message="clash")


def test_reconfigure_logging_replaces_handlers():
    configure_logging(False)
    configure_logging(False)
    ours = [
        h
        for h in logging.getLogger().handlers
        if getattr(h, "_added_by_configure_logging", False)
    ]
    assert len(ours) == 1


def test_reconfigure_logging_closes_file_handlers(tmp_path):
    configure_logging(False, log_file=str(tmp_path / "one.log"))
    logger = logging.getLogger()
    old = next(
        h
        for h in logger.handlers
        if isinstance(h, logging.FileHandler)
        and getattr(h, "_added_by_configure_logging", False)
    )
    configure_logging(False, log_file=str(tmp_path / "two.log"))
    assert old.stream is None or old.stream.closed


def test_verbose_output_names_the_thread(capsys):
    configure_logging(True)
    worker = threading.Thread(target=logging.info, args=("from worker",), name="autoupdater-watch-1")
    worker.start()
    worker.join()
    assert "INFO [autoupdater-watch-1]: from worker" in capsys.readouterr().err


def test_quiet_output_is_plain(capsys):
    configure_logging(False)
    logging.warning("plain")
    assert "WARNING: plain" in capsys.readouterr().err


def test_critical_level_name_and_unknown_fallback(caplog):
    configure_logging(False, log_level="CRITICAL")
    logging.error("hidden")
    assert caplog.records == []
    configure_logging(True, log_level="loud")
    logging.info("hidden too")
    logging.warning("shown")
    assert [r.getMessage() for r in caplog.records] == ["shown"]
