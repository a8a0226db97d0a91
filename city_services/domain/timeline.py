"""Structured lifecycle event helpers for supervision and governance diagnostics."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any


def domain_build_lifecycle_event(
    subject: str,
    event: str,
    details: dict[str, Any] | None = None,
    at: datetime | None = None,
) -> dict[str, object]:
    """Build one structured lifecycle event payload.

    Args:
        subject: Department or recommendation the event refers to.
        event: Event marker (for example `restarted` or `permanently_failed`).
        details: Optional structured details object.
        at: Optional event timestamp, defaults to current UTC time.

    Returns:
        dict[str, object]: Structured lifecycle event.

    Raises:
        RuntimeError: This helper does not raise runtime errors.
    """

    event_time = at or datetime.now(timezone.utc)
    event_payload: dict[str, object] = {
        "subject": subject,
        "event": event,
        "at_utc": event_time.isoformat(),
    }
    if details is not None:
        event_payload["details"] = details
    return event_payload
