"""
test_core.py — Tests for the log formatters and the error hierarchy.

Run with:
    pytest tests/test_core.py -v
"""

from __future__ import annotations

import json
import logging

from backend.app.core.errors import (
    DeliveryFailed,
    InvalidCoordinate,
    InvalidParameter,
    NotFoundError,
    TsunamiAlertError,
)
from backend.app.core.logging_config import (
    JSONFormatter,
    PrettyFormatter,
    set_request_context,
)


def _make_record(msg="Dispatching step %d", args=(2,), **extra):
    record = logging.LogRecord(
        "backend.app.escalation.orchestrator", logging.INFO, __file__, 10,
        msg, args, None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJSONFormatter:

    def test_trace_tags_nested(self):
        line = JSONFormatter().format(_make_record(alert_id="ALR-1", step=2, channel="sms"))
        entry = json.loads(line)
        assert entry["msg"] == "Dispatching step 2"
        assert entry["trace"] == {"alert_id": "ALR-1", "step": 2, "channel": "sms"}
        assert entry["level"] == "INFO"

    def test_request_context_included(self):
        set_request_context(request_id="req-42", endpoint="/api/v1/monitor/tick")
        try:
            entry = json.loads(JSONFormatter().format(_make_record()))
        finally:
            set_request_context()
        assert entry["request"]["request_id"] == "req-42"
        assert "trace" not in entry


class TestPrettyFormatter:

    def test_tags_rendered_without_color(self):
        line = PrettyFormatter(use_color=False).format(
            _make_record(alert_id="ALR-9", vessel_id="V001")
        )
        assert "orchestrator: Dispatching step 2" in line
        assert "vessel=V001 alert=ALR-9" in line
        assert "\033[" not in line


class TestErrors:

    def test_coordinate_error_is_value_error(self):
        exc = InvalidCoordinate(latitude=91.0, longitude=0.0)
        assert isinstance(exc, ValueError)
        assert isinstance(exc, TsunamiAlertError)
        assert exc.status_code == 422
        assert exc.details == {"latitude": 91.0, "longitude": 0.0}

    def test_parameter_error(self):
        exc = InvalidParameter("magnitude", -1.0)
        assert exc.error_code == "INVALID_PARAMETER"
        assert "magnitude" in exc.message

    def test_not_found(self):
        exc = NotFoundError("Alert", alert_id="ALR-X")
        assert exc.status_code == 404
        assert exc.details == {"resource": "Alert", "alert_id": "ALR-X"}

    def test_delivery_failed(self):
        exc = DeliveryFailed("sms", "C-1", "gateway down")
        assert exc.status_code == 502
        assert "gateway down" in exc.message
