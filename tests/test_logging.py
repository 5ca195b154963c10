import json
import logging

from tripstore.core.logging import JsonFormatter, RequestIdFilter, request_id_ctx


def make_record(**extra):
    record = logging.LogRecord("tripstore.test", logging.WARNING, __file__, 1, "Trip %s broken", ("t1",), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_line_carries_structured_extras():
    record = make_record(trip_id="t1", errors=[{"type": "EXPENSE_NOT_FOUND"}], unrelated="x")
    token = request_id_ctx.set("req-1")
    try:
        RequestIdFilter().filter(record)
    finally:
        request_id_ctx.reset(token)

    line = json.loads(JsonFormatter().format(record))

    assert line["message"] == "Trip t1 broken"
    assert line["level"] == "WARNING"
    assert line["request_id"] == "req-1"
    assert line["trip_id"] == "t1"
    assert line["errors"] == [{"type": "EXPENSE_NOT_FOUND"}]
    assert "unrelated" not in line


def test_missing_request_id_renders_dash():
    record = make_record()
    RequestIdFilter().filter(record)
    assert json.loads(JsonFormatter().format(record))["request_id"] == "-"
