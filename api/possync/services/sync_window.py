"""Sync window resolution.

A scheduled run re-processes everything from ``last_sync_time − 25h`` up to
today. The 25 hours are a 24h tolerance for orders the POS corrects after the
fact plus 1h of margin around midnight. A connection that has never synced
gets a 90-day backfill.
"""
import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from collections.abc import Iterator

import pytz

from possync.core.config import settings
from possync.core.errors import WindowComputationError
from possync.models.connection import PosConnection

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SyncWindow:
    """Inclusive date range a scoped sync replaces."""
    start_date: date
    end_date: date

    def __post_init__(self):
        if self.start_date > self.end_date:
            raise ValueError(f"start_date {self.start_date} is after end_date {self.end_date}")

    def contains(self, d: date) -> bool:
        return self.start_date <= d <= self.end_date

    def dates(self) -> Iterator[date]:
        d = self.start_date
        while d <= self.end_date:
            yield d
            d += timedelta(days=1)

    def __str__(self) -> str:
        return f"[{self.start_date}, {self.end_date}]"


def tenant_tz(connection: PosConnection):
    tz_name = connection.tenant.timezone if connection.tenant else "UTC"
    try:
        return pytz.timezone(tz_name or "UTC")
    except pytz.UnknownTimeZoneError:
        logger.warning("Unknown timezone %r for tenant %s, using UTC", tz_name, connection.tenant_id)
        return pytz.utc


def tenant_today(connection: PosConnection) -> date:
    return datetime.now(tenant_tz(connection)).date()


def default_window(today: date) -> SyncWindow:
    return SyncWindow(today - timedelta(days=settings.initial_backfill_days), today)


def _lookback_start(last_sync_time, tz) -> date:
    if not isinstance(last_sync_time, datetime):
        raise WindowComputationError(f"last_sync_time is not a datetime: {last_sync_time!r}")
    if last_sync_time.tzinfo is None:
        # Stored as UTC; some drivers drop the offset on read
        last_sync_time = last_sync_time.replace(tzinfo=timezone.utc)
    if last_sync_time > datetime.now(timezone.utc):
        raise WindowComputationError(f"last_sync_time is in the future: {last_sync_time.isoformat()}")
    # Elapsed hours, not wall-clock: subtract in UTC, then localize
    start = last_sync_time.astimezone(timezone.utc) - timedelta(hours=settings.sync_lookback_hours)
    return start.astimezone(tz).date()


def resolve_window(connection: PosConnection, today: date | None = None) -> SyncWindow:
    """Return the window the next scheduled run for this connection should replace."""
    tz = tenant_tz(connection)
    if today is None:
        today = datetime.now(tz).date()

    if connection.last_sync_time is None:
        logger.info("Tenant %s has never synced, backfilling %d days",
                    connection.tenant_id, settings.initial_backfill_days)
        return default_window(today)

    try:
        start = _lookback_start(connection.last_sync_time, tz)
    except WindowComputationError as exc:
        logger.warning("Tenant %s: %s, falling back to %d-day window",
                       connection.tenant_id, exc, settings.initial_backfill_days)
        return default_window(today)

    return SyncWindow(min(start, today), today)
