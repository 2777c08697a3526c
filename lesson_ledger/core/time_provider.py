from __future__ import annotations

from datetime import date, datetime
from zoneinfo import ZoneInfo

from lesson_ledger.config import settings


APP_TIMEZONE = settings.app_timezone or 'Europe/Moscow'
APP_ZONEINFO = ZoneInfo(APP_TIMEZONE)


class TimeProvider:
    def now(self) -> datetime:
        return datetime.now(APP_ZONEINFO)

    def today(self) -> date:
        return self.now().date()

    def utcnow(self) -> datetime:
        return datetime.now(ZoneInfo('UTC')).replace(tzinfo=None)


def utcnow_naive() -> datetime:
    """Column default for ``created_at``/``updated_at`` (naive UTC, as stored)."""
    return default_time_provider.utcnow()


default_time_provider = TimeProvider()
