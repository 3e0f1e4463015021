import json
import logging
import sys

from relay_core.infrastructure.logging.logger import JsonLineFormatter, setup_logger


def make_record(msg, extra=None, exc_info=None):
    record = logging.LogRecord("relay_core", logging.INFO, __file__, 1, msg, None, exc_info)
    if extra is not None:
        record.extra = extra
    return record


def test_formatter_writes_one_json_object_with_extra_fields():
    fmt = JsonLineFormatter()
    line = fmt.format(make_record("Completed response", {"trace_id": "rl-1", "msg": "ignored"}))

    assert "\n" not in line
    payload = json.loads(line)
    assert payload["level"] == "INFO"
    assert payload["name"] == "relay_core"
    assert payload["msg"] == "Completed response"
    assert payload["trace_id"] == "rl-1"
    assert payload["ts"].endswith("+00:00")


def test_formatter_redacts_user_content():
    fmt = JsonLineFormatter(redact=True)
    payload = json.loads(fmt.format(make_record("x" * 100, {"query": "my secret", "status": 401})))

    assert payload["msg"] == "x" * 64
    assert payload["query"] == "<redacted>"
    assert payload["status"] == 401


def test_formatter_includes_exception_text():
    try:
        raise RuntimeError("boom")
    except RuntimeError:
        record = make_record("Tool execution failed", exc_info=sys.exc_info())

    payload = json.loads(JsonLineFormatter().format(record))
    assert "RuntimeError: boom" in payload["exc"]


def test_setup_logger_writes_to_configured_file(tmp_path):
    class LogSettings:
        log_dir = str(tmp_path / "logs")
        log_file = "test.log"
        log_level = "warning"
        log_redact_content = False

    log = setup_logger(LogSettings(), name="relay_test_setup")
    again = setup_logger(LogSettings(), name="relay_test_setup")
    log.info("skipped")
    log.warning("Web search failed", extra={"extra": {"status": 500}})
    for handler in log.handlers:
        handler.flush()

    assert again is log
    assert len(log.handlers) == 1
    lines = (tmp_path / "logs" / "test.log").read_text(encoding="utf-8").splitlines()
    assert [json.loads(line)["msg"] for line in lines] == ["Web search failed"]
    assert json.loads(lines[0])["status"] == 500

    for handler in list(log.handlers):
        handler.close()
        log.removeHandler(handler)
