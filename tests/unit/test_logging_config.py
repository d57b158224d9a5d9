"""Tests for request-scoped logging context and the JSON formatter."""

import json
import logging

import pytest

from smartcommerce.logging_config import (
    ContextFilter,
    JSONFormatter,
    LogContext,
    clear_context,
    get_context,
    set_context,
)


@pytest.fixture(autouse=True)
def clean_context():
    clear_context()
    yield
    clear_context()


def make_record(**extra) -> logging.LogRecord:
    record = logging.LogRecord("smartcommerce.test", logging.INFO, __file__, 1, "Session created", None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestContext:
    def test_set_context_skips_none(self):
        set_context(correlation_id="abc", user_id=None)
        assert get_context() == {"correlation_id": "abc"}

    def test_log_context_is_scoped(self):
        set_context(correlation_id="abc")

        with LogContext(task="cleanup_sessions"):
            assert get_context() == {"correlation_id": "abc", "task": "cleanup_sessions"}

        assert get_context() == {"correlation_id": "abc"}

    def test_filter_does_not_override_extra(self):
        set_context(user_id="from-context", session_id="s1")
        record = make_record(user_id="explicit")

        assert ContextFilter().filter(record) is True
        assert record.user_id == "explicit"
        assert record.session_id == "s1"


class TestJSONFormatter:
    def test_includes_extra_fields(self):
        line = JSONFormatter().format(make_record(user_id="u-1"))

        payload = json.loads(line)
        assert payload["message"] == "Session created"
        assert payload["level"] == "INFO"
        assert payload["user_id"] == "u-1"

    def test_keeps_bengali_text(self):
        record = make_record()
        record.msg = "লগিন সফল"

        assert "লগিন সফল" in JSONFormatter().format(record)
