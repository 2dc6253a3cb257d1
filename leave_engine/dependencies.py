"""Shared FastAPI dependencies — external collaborator adapters."""

from leave_engine.config import settings
from leave_engine.holidays.classifier import (
    HolidayClassifier,
    HttpHolidayClassifier,
    StaticHolidayClassifier,
)
from leave_engine.notifications.calendar import (
    CalendarPublisher,
    NullCalendarPublisher,
    WebhookCalendarPublisher,
)


def get_holiday_classifier() -> HolidayClassifier:
    """HTTP holiday service when configured, otherwise no holidays besides Sundays."""
    if settings.HOLIDAY_API_URL:
        return HttpHolidayClassifier(
            settings.HOLIDAY_API_URL,
            api_key=settings.HOLIDAY_API_KEY,
            timeout=settings.HOLIDAY_TIMEOUT_SECONDS,
        )
    return StaticHolidayClassifier()


def get_calendar_publisher() -> CalendarPublisher:
    if settings.CALENDAR_WEBHOOK_URL:
        return WebhookCalendarPublisher(
            settings.CALENDAR_WEBHOOK_URL,
            timeout=settings.CALENDAR_TIMEOUT_SECONDS,
        )
    return NullCalendarPublisher()
