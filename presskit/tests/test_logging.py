"""Tests for structured logging and request_id propagation."""

import json
import logging

import pytest

from presskit.core.logging import (
    JsonFormatter,
    PrettyFormatter,
    RequestIdFilter,
    bind_request_id,
    get_request_id,
    latency_bucket_ms,
    log_event,
)


def _record(msg="user.login", **extra):
    record = logging.LogRecord("presskit", logging.INFO, __file__, 1, msg, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_request_id_in_response_and_logs(client, caplog):
    with caplog.at_level(logging.INFO, logger="presskit"):
        response = client.get("/healthz")
    rid = response.headers.get("x-request-id")
    assert rid
    records = [r for r in caplog.records if getattr(r, "request_id", None) == rid]
    assert records, "Expected logs to contain request_id from response"
    assert records[-1].getMessage() == "request.complete"
    assert records[-1].path == "/healthz"


def test_filter_fills_request_id_from_context():
    with bind_request_id("rid-ctx"):
        record = _record()
        RequestIdFilter().filter(record)
    assert record.request_id == "rid-ctx"
    assert get_request_id() is None


def test_json_formatter_includes_extra_fields():
    line = JsonFormatter().format(_record(request_id="rid-1", user_id="u1"))
    payload = json.loads(line)
    assert payload["message"] == "user.login"
    assert payload["level"] == "INFO"
    assert payload["request_id"] == "rid-1"
    assert payload["user_id"] == "u1"
    assert payload["timestamp"].endswith("Z")


def test_pretty_formatter_is_single_line():
    line = PrettyFormatter().format(_record(request_id="rid-2", status=200))
    assert "[rid=rid-2]" in line
    assert "user.login status=200" in line
    assert "\n" not in line


@pytest.mark.parametrize(
    "latency, bucket",
    [(None, "unknown"), (5, "<10ms"), (50, "10-100ms"), (250, "100-500ms"), (750, "500-1000ms"), (5000, ">=1000ms")],
)
def test_latency_buckets(latency, bucket):
    assert latency_bucket_ms(latency) == bucket


def test_log_event_truncates_and_drops_empty_fields(caplog):
    with caplog.at_level(logging.INFO, logger="presskit"):
        log_event("info", "epk.viewed", epk_id="e1", views=3, user_id=None, referrer="x" * 600)
    [record] = [r for r in caplog.records if r.getMessage() == "epk.viewed"]
    assert record.epk_id == "e1"
    assert record.views == 3
    assert not hasattr(record, "user_id")
    assert record.referrer.endswith("...<truncated>")
    assert len(record.referrer) == 500 + len("...<truncated>")
