"""
Name: JSON Logger Tests

Responsibilities:
  - Verify JSON output, context enrichment and secret redaction
"""

import json
import logging

import pytest


def _record(msg: str = "hello", **extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="warden",
        level=logging.INFO,
        pathname=__file__,
        lineno=10,
        msg=msg,
        args=(),
        exc_info=None,
    )
    for k, v in extra.items():
        setattr(record, k, v)
    return record


@pytest.mark.unit
class TestJSONFormatter:
    def test_outputs_one_json_object(self):
        from warden.crosscutting.logger import JSONFormatter

        payload = json.loads(JSONFormatter().format(_record(user_id="u-1")))

        assert payload["message"] == "hello"
        assert payload["level"] == "INFO"
        assert payload["logger"] == "warden"
        assert payload["user_id"] == "u-1"

    def test_redacts_sensitive_keys(self):
        from warden.crosscutting.logger import JSONFormatter

        payload = json.loads(
            JSONFormatter().format(
                _record(password="hunter2", token="abc", nested={"cookie_secret": "s"})
            )
        )

        assert payload["password"] == "***REDACTED***"
        assert payload["token"] == "***REDACTED***"
        assert payload["nested"]["cookie_secret"] == "***REDACTED***"

    def test_includes_operation_context(self):
        from warden.context import clear_context, set_operation_context
        from warden.crosscutting.logger import JSONFormatter

        set_operation_context(operation_id="op-1", operation="migrate")
        try:
            payload = json.loads(JSONFormatter().format(_record()))
        finally:
            clear_context()

        assert payload["operation_id"] == "op-1"
        assert payload["operation"] == "migrate"

    def test_long_strings_are_capped(self):
        from warden.crosscutting.logger import MAX_STR, JSONFormatter

        payload = json.loads(JSONFormatter().format(_record(body="x" * (MAX_STR + 50))))

        assert payload["body"].startswith("x" * MAX_STR)
        assert payload["body"].endswith("...(truncated)")
        assert len(payload["body"]) == MAX_STR + len("...(truncated)")

    def test_record_internals_are_not_copied(self):
        from warden.crosscutting.logger import JSONFormatter

        payload = json.loads(JSONFormatter().format(_record("n=%s")))

        for key in ("args", "msg", "pathname", "levelno", "exc_info", "thread"):
            assert key not in payload
        assert payload["source"].endswith(":10")

    def test_redacts_inside_lists(self):
        from warden.crosscutting.logger import JSONFormatter

        payload = json.loads(
            JSONFormatter().format(_record(rows=[{"token_hash": "h", "id": 1}]))
        )

        assert payload["rows"] == [{"token_hash": "***REDACTED***", "id": 1}]
