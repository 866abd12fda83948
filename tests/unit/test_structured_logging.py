"""Tests for structured logging."""
import json
import logging

from clinic_booking.logging_config import generate_operation_id, get_logger, setup_structured_logging


def _events(caplog):
    return [json.loads(record.getMessage()) for record in caplog.records]


def test_events_render_as_json_with_context(caplog):
    setup_structured_logging(log_level="INFO")
    caplog.set_level(logging.INFO)
    operation_id = generate_operation_id()

    log = get_logger("clinic_booking.tests").bind(operation_id=operation_id, user_id="usr-1")
    log.info("appointment_booked", appointment_id="apt-1")

    event = _events(caplog)[-1]
    assert event["event"] == "appointment_booked"
    assert event["operation_id"] == operation_id
    assert event["appointment_id"] == "apt-1"
    assert event["level"] == "info"
    assert "timestamp" in event


def test_exception_includes_traceback(caplog):
    setup_structured_logging(log_level="INFO")
    caplog.set_level(logging.INFO)
    log = get_logger("clinic_booking.tests")

    try:
        raise RuntimeError("view gone")
    except RuntimeError:
        log.exception("change_subscriber_failed")

    event = _events(caplog)[-1]
    assert event["level"] == "error"
    assert "RuntimeError: view gone" in event["exception"]


def test_generate_operation_id_format():
    """op- prefix plus 12 hex chars, unique per call."""
    operation_id = generate_operation_id()

    assert operation_id.startswith("op-")
    assert len(operation_id) == 15
    int(operation_id[3:], 16)
    assert operation_id != generate_operation_id()
