import json
from datetime import date
from typing import Any, List

import pytest
from visitcap.models import BookingStatus
from visitcap.utils import booking_log
from visitcap.utils.request_id import set_request_id


def test_emit_booking_log_outputs_json(monkeypatch) -> None:
    messages: List[str] = []

    class DummyLogger:
        def info(self, message: str) -> None:
            messages.append(message)

    monkeypatch.setattr(booking_log, "_booking_logger", DummyLogger())

    set_request_id("req-123")
    booking_log.emit_booking_log(
        action="booking.created",
        booking_id=1,
        time_slot_id=2,
        booking_date=date(2030, 1, 7),
        invitation_id=None,
        visitor_count=3,
        actor_id=4,
        status_from=None,
        status_to=BookingStatus.CONFIRMED,
    )
    set_request_id(None)

    assert len(messages) == 1
    payload = json.loads(messages[0])
    assert payload["action"] == "booking.created"
    assert payload["request_id"] == "req-123"
    assert payload["status_to"] == "confirmed"
    assert payload["booking_date"] == "2030-01-07"
    assert "invitation_id" not in payload
    assert "status_from" not in payload
    assert "timestamp" in payload


def test_emit_booking_log_raises_on_logger_failure(monkeypatch) -> None:
    class DummyLogger:
        def info(self, _: Any) -> None:
            raise ValueError("fail")

    monkeypatch.setattr(booking_log, "_booking_logger", DummyLogger())

    with pytest.raises(RuntimeError):
        booking_log.emit_booking_log(
            action="booking.cancelled",
            booking_id=1,
            time_slot_id=2,
            booking_date=date(2030, 1, 7),
            invitation_id=5,
            visitor_count=3,
            actor_id=4,
            status_from=BookingStatus.CONFIRMED,
            status_to=BookingStatus.CANCELLED,
            message="sick",
        )
