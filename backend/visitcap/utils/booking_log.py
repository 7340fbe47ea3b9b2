from __future__ import annotations

import json
import logging
from datetime import date, datetime, timezone
from typing import Any, Literal, Optional

from .request_id import get_request_id

BookingAction = Literal[
    "booking.created",
    "booking.cancelled",
]

_booking_logger = logging.getLogger("booking")
_booking_logger.setLevel(logging.INFO)
if not _booking_logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(message)s"))
    _booking_logger.addHandler(handler)
_booking_logger.propagate = False


def _to_json_value(value: Any) -> Any:
    if value is None:
        return None
    if hasattr(value, "value"):
        return str(value.value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value


def emit_booking_log(
    *,
    action: BookingAction,
    booking_id: int,
    time_slot_id: int,
    booking_date: date,
    invitation_id: Optional[int],
    visitor_count: int,
    actor_id: int,
    status_from: Optional[str],
    status_to: Optional[str],
    message: Optional[str] = None,
    extra: Optional[dict[str, Any]] = None,
) -> None:
    """Emit one JSON line describing a booking state change. Raises RuntimeError if logging fails."""
    payload: dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "level": "info",
        "action": action,
        "request_id": get_request_id(),
        "booking_id": booking_id,
        "time_slot_id": time_slot_id,
        "booking_date": booking_date,
        "invitation_id": invitation_id,
        "visitor_count": visitor_count,
        "actor_id": actor_id,
        "status_from": status_from,
        "status_to": status_to,
    }
    if message is not None:
        payload["message"] = message
    if extra:
        payload.update(extra)

    compact_payload = {k: _to_json_value(v) for k, v in payload.items() if v is not None}
    try:
        _booking_logger.info(json.dumps(compact_payload, ensure_ascii=True))
    except Exception as exc:
        raise RuntimeError("failed to emit booking log") from exc
