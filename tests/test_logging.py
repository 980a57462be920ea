import json
import logging

from donor_registry.utils.logging_config import (
    ContextualJsonFormatter,
    LogContext,
    request_id,
)


def format_record(formatter: logging.Formatter) -> dict:
    record = logging.LogRecord("donor_registry", logging.INFO, __file__, 1, "hello", None, None)
    return json.loads(formatter.format(record))


def test_log_context_sets_and_resets_request_id():
    formatter = ContextualJsonFormatter(environment="testing")

    with LogContext(req_id="req-42"):
        assert request_id.get() == "req-42"
        entry = format_record(formatter)

    assert request_id.get() is None
    assert entry["request_id"] == "req-42"
    assert entry["service"] == "donor-registry-api"
    assert "user_id" not in entry


def test_log_record_without_context_has_no_request_id():
    entry = format_record(ContextualJsonFormatter(environment="testing"))
    assert "request_id" not in entry
    assert entry["environment"] == "testing"
