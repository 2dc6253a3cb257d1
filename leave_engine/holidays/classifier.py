"""Holiday classification — the engine's view of the holiday-lookup collaborator.

The collaborator only answers "is this date a public holiday" (name or None).
``classify_day`` turns that answer into a ``DayClass`` and fails open: a slow,
broken or unreachable collaborator yields a plain weekday class and a
warning, never an error for the caller.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import date
from typing import Mapping, Optional, Protocol

import httpx

from leave_engine.common.constants import DayClass
from leave_engine.common.exceptions import UpstreamUnavailable

logger = logging.getLogger(__name__)

_SATURDAY = 5
_SUNDAY = 6


class HolidayClassifier(Protocol):
    """Anything that can tell whether a date is a public holiday."""

    async def is_holiday(self, day: date) -> Optional[str]:
        """Return the holiday name, or None for an ordinary day."""
        ...


# ── Adapters ────────────────────────────────────────────────────────

class StaticHolidayClassifier:
    """Holiday lookup backed by a fixed date → name mapping."""

    def __init__(self, holidays: Optional[Mapping[date, str]] = None) -> None:
        self._holidays = dict(holidays or {})

    async def is_holiday(self, day: date) -> Optional[str]:
        return self._holidays.get(day)


class HttpHolidayClassifier:
    """Holiday lookup against the holiday service's HTTP API.

    ``GET {base_url}?date=YYYY-MM-DD`` answers ``{"date": ..., "name": str | null}``.
    Transport errors and non-200 answers raise ``UpstreamUnavailable``.
    """

    def __init__(
        self,
        base_url: str,
        *,
        api_key: str = "",
        timeout: float = 3.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = base_url
        self.api_key = api_key
        self.timeout = timeout
        self._transport = transport

    async def is_holiday(self, day: date) -> Optional[str]:
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport,
            ) as client:
                resp = await client.get(
                    self.base_url,
                    params={"date": day.isoformat()},
                    headers=headers,
                )
        except httpx.HTTPError as exc:
            raise UpstreamUnavailable("Holiday service", str(exc) or type(exc).__name__) from exc

        if resp.status_code != 200:
            raise UpstreamUnavailable("Holiday service", f"HTTP {resp.status_code}")

        name = resp.json().get("name")
        return name or None


# ── Classification ──────────────────────────────────────────────────

@dataclass(frozen=True)
class DayClassification:
    day_class: DayClass
    holiday_name: Optional[str] = None


async def classify_day(
    day: date,
    classifier: HolidayClassifier,
    *,
    timeout: float,
) -> DayClassification:
    """Classify *day* as weekday, saturday or sunday-or-holiday.

    Weekends are classified without asking the collaborator: Sunday is
    sunday-or-holiday and Saturday stays saturday even on a public holiday.
    A Monday-Friday date the collaborator names as a public holiday is promoted
    to sunday-or-holiday. Timeouts and collaborator errors count as "not a holiday".
    """
    weekday = day.weekday()
    if weekday == _SUNDAY:
        return DayClassification(DayClass.sunday_or_holiday)
    if weekday == _SATURDAY:
        return DayClassification(DayClass.saturday)

    holiday_name: Optional[str] = None
    try:
        holiday_name = await asyncio.wait_for(classifier.is_holiday(day), timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning(
            "Holiday lookup for %s timed out after %.1fs; treating as a regular day",
            day, timeout,
        )
    except Exception:
        # fail open: the lookup must never abort a credit
        logger.warning(
            "Holiday lookup for %s failed; treating as a regular day", day, exc_info=True,
        )

    if holiday_name:
        return DayClassification(DayClass.sunday_or_holiday, holiday_name)
    return DayClassification(DayClass.weekday)
