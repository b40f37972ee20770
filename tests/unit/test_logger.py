import json
import logging

from wasession.infra.logger import JsonFormatter, configure_logging


def _record(**extra):
    record = logging.LogRecord("wasession.test", logging.INFO, __file__, 1, "token %s", ("ready",), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_includes_request_context() -> None:
    payload = json.loads(JsonFormatter().format(_record(request_id="abc", attempt=2, mode="qr-png")))
    assert payload["message"] == "token ready"
    assert payload["level"] == "INFO"
    assert payload["request_id"] == "abc"
    assert payload["attempt"] == 2
    assert payload["mode"] == "qr-png"


def test_json_formatter_omits_missing_context() -> None:
    payload = json.loads(JsonFormatter().format(_record()))
    assert "request_id" not in payload


def test_configure_logging_replaces_own_handler() -> None:
    root = logging.getLogger()
    before = list(root.handlers)
    level = root.level
    try:
        configure_logging("DEBUG")
        configure_logging("WARNING", json_output=False)
        ours = [h for h in root.handlers if getattr(h, "_wasession", False)]
        assert len(ours) == 1
        assert not isinstance(ours[0].formatter, JsonFormatter)
        assert root.level == logging.WARNING
    finally:
        for handler in list(root.handlers):
            if handler not in before:
                root.removeHandler(handler)
        root.setLevel(level)
