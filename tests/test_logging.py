"""Tests for the structured log formatter."""

import json
import logging
import sys

from partcopy.logging_config import JSONFormatter, SessionTagFilter


def _record(msg, *args, **extra):
    record = logging.LogRecord("partcopy.worker", logging.WARNING, __file__, 1, msg, args, None)
    for k, v in extra.items():
        setattr(record, k, v)
    return record


def test_json_line_has_core_fields():
    line = JSONFormatter().format(_record("Retrying %s message", "fetch"))
    entry = json.loads(line)
    assert entry["level"] == "WARNING"
    assert entry["logger"] == "partcopy.worker"
    assert entry["message"] == "Retrying fetch message"
    assert "timestamp" in entry


def test_extras_become_top_level_keys():
    record = _record("x", action="done", upload_id="u1", part_index=0, attempt=None)
    entry = json.loads(JSONFormatter().format(record))
    assert entry["action"] == "done"
    assert entry["upload_id"] == "u1"
    assert entry["part_index"] == 0
    assert "attempt" not in entry
    assert "lineno" not in entry and "args" not in entry


class TestSessionTagFilter:

    def test_tag_with_part(self):
        record = _record("x", session_id="abcdef0123456789", part_index=3)
        assert SessionTagFilter().filter(record)
        assert record.session_tag == " [abcdef012345/3]"

    def test_tag_without_part(self):
        record = _record("x", session_id="abcdef0123456789")
        SessionTagFilter().filter(record)
        assert record.session_tag == " [abcdef012345]"

    def test_no_session(self):
        record = _record("x")
        SessionTagFilter().filter(record)
        assert record.session_tag == ""

    def test_tag_is_not_a_json_extra(self):
        record = _record("x", session_id="abcdef0123456789")
        SessionTagFilter().filter(record)
        entry = json.loads(JSONFormatter().format(record))
        assert entry["session_id"] == "abcdef0123456789"
        assert "session_tag" not in entry


def test_exception_is_rendered():
    try:
        raise RuntimeError("boom")
    except RuntimeError:
        record = logging.LogRecord(
            "partcopy", logging.ERROR, __file__, 1, "failed", (), sys.exc_info()
        )
    entry = json.loads(JSONFormatter().format(record))
    assert "RuntimeError: boom" in entry["exception"]
