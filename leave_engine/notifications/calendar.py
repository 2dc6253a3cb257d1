"""Calendar publishing of approved leave.

The calendar collaborator owns event creation; the engine hands it an
``ApprovedLeaveEvent`` and only records whether publishing worked.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import asdict, dataclass
from datetime import date
from typing import Any, Optional, Protocol

import httpx

from leave_engine.common.constants import CalendarSyncStatus
from leave_engine.common.exceptions import UpstreamUnavailable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ApprovedLeaveEvent:
    request_id: uuid.UUID
    employee_id: uuid.UUID
    leave_type: str
    amount: float
    unit: str
    start_date: date
    end_date: date
    reason: Optional[str] = None

    def to_payload(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["request_id"] = str(self.request_id)
        payload["employee_id"] = str(self.employee_id)
        payload["start_date"] = self.start_date.isoformat()
        payload["end_date"] = self.end_date.isoformat()
        return payload


class CalendarPublisher(Protocol):
    async def publish(self, event: ApprovedLeaveEvent) -> None:
        ...


# ── Adapters ────────────────────────────────────────────────────────

class NullCalendarPublisher:
    """Used when no calendar collaborator is configured."""

    enabled = False

    async def publish(self, event: ApprovedLeaveEvent) -> None:
        return None


class WebhookCalendarPublisher:
    """POSTs the approved leave as JSON to the calendar collaborator's webhook."""

    enabled = True

    def __init__(
        self,
        url: str,
        *,
        timeout: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.url = url
        self.timeout = timeout
        self._transport = transport

    async def publish(self, event: ApprovedLeaveEvent) -> None:
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport,
            ) as client:
                resp = await client.post(self.url, json=event.to_payload())
        except httpx.HTTPError as exc:
            raise UpstreamUnavailable("Calendar service", str(exc) or type(exc).__name__) from exc

        if resp.status_code >= 400:
            raise UpstreamUnavailable("Calendar service", f"HTTP {resp.status_code}")


# ── Dispatcher ──────────────────────────────────────────────────────

async def publish_approved_leave(
    publisher: CalendarPublisher,
    event: ApprovedLeaveEvent,
) -> CalendarSyncStatus:
    """Publish *event* and report the outcome. Never raises."""
    if not getattr(publisher, "enabled", True):
        return CalendarSyncStatus.skipped

    try:
        await publisher.publish(event)
    except Exception:
        logger.warning(
            "Calendar publish failed for leave request %s", event.request_id, exc_info=True,
        )
        return CalendarSyncStatus.failed

    logger.info("Published leave request %s to calendar", event.request_id)
    return CalendarSyncStatus.published
