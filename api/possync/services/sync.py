"""Incremental POS ledger sync, per tenant.

Every run for a tenant is the same three steps under the tenant's lock:

    1. replace the window in unified_sales       (executor, one transaction)
    2. categorize the inserted rows in one pass  (categorization)
    3. re-aggregate every touched date           (aggregation)

The beat task only ever runs scoped windows. Full-history rebuilds live in
``full_resync`` and are never started from here.
"""
import logging
import uuid
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timezone

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from possync.core.config import settings
from possync.core.database import sync_session_factory
from possync.core.errors import ConnectionNotFound, SyncInProgress
from possync.core.redis import tenant_lock
from possync.models.connection import PosConnection
from possync.services.aggregation import AggregationReport, aggregate_dates
from possync.services.categorization import apply_rules_to_sales
from possync.services.executor import SyncResult, replace_window
from possync.services.registry import active_connections, get_connection, mark_failed, mark_synced
from possync.services.sources import PosSource, get_source
from possync.services.sync_window import SyncWindow, resolve_window
from possync.worker import celery_app

logger = logging.getLogger(__name__)


@dataclass
class PipelineResult:
    sync: SyncResult
    categorized: int = 0
    aggregation: AggregationReport = field(default_factory=AggregationReport)

    def summary(self) -> dict:
        return {
            "tenant_id": str(self.sync.tenant_id),
            "window": str(self.sync.window) if self.sync.window else None,
            "rows_written": self.sync.rows_written,
            "rows_deleted": self.sync.rows_deleted,
            "skipped": self.sync.skipped,
            "dates_touched": len(self.sync.dates_touched),
            "categorized": self.categorized,
            "aggregated": self.aggregation.written,
            "mismatched_dates": [d.isoformat() for d in self.aggregation.failed],
        }


@dataclass
class BatchReport:
    total: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    rows: int = 0
    errors: dict[str, str] = field(default_factory=dict)


def run_tenant_pipeline(
    db: Session,
    connection: PosConnection,
    window: SyncWindow | None,
    source: PosSource | None = None,
    lock_timeout: int | None = None,
) -> PipelineResult:
    """Replace, categorize and aggregate one tenant's window under its lock.

    ``window=None`` rebuilds all history. Raises SyncInProgress if another run
    holds the lock, and lets executor errors propagate after rollback.
    """
    tenant_id = connection.tenant_id
    with tenant_lock(tenant_id, timeout=lock_timeout) as keepalive:
        result = replace_window(db, connection, window, source or get_source(), keepalive)
        keepalive()
        categorized = apply_rules_to_sales(db, tenant_id, result.sale_ids)
        keepalive()
        aggregation = aggregate_dates(db, tenant_id, result.dates_touched)
    return PipelineResult(sync=result, categorized=categorized, aggregation=aggregation)


def sync_connection_once(
    db: Session,
    tenant_id: uuid.UUID,
    source: PosSource | None = None,
    today: date | None = None,
) -> PipelineResult:
    """Scheduled sync for one tenant: resolve its window, run, then advance last_sync_time."""
    connection = get_connection(db, tenant_id)
    window = resolve_window(connection, today)
    started_at = datetime.now(timezone.utc)

    result = run_tenant_pipeline(db, connection, window, source)

    # Only reached once every step above has committed
    mark_synced(db, tenant_id, at=started_at)
    return result


def _record_failure(db: Session, tenant_id: uuid.UUID, exc: BaseException) -> None:
    db.rollback()
    try:
        mark_failed(db, tenant_id, f"{type(exc).__name__}: {exc}")
    except SQLAlchemyError as mark_exc:
        db.rollback()
        logger.error("Could not record failure for tenant %s: %s", tenant_id, mark_exc)


def _sync_isolated(
    factory: sessionmaker,
    tenant_id: uuid.UUID,
    report: BatchReport,
    source: PosSource | None = None,
    today: date | None = None,
) -> None:
    """Sync one tenant and fold the outcome into ``report``. Never raises."""
    with factory() as db:
        try:
            result = sync_connection_once(db, tenant_id, source, today)
            report.succeeded += 1
            report.rows += result.sync.rows_written
        except ConnectionNotFound:
            logger.debug("Tenant %s has no active connection, skipping", tenant_id)
            report.skipped += 1
        except SyncInProgress:
            logger.info("Tenant %s is already syncing, skipping this tick", tenant_id)
            report.skipped += 1
        except Exception as exc:
            # SoftTimeLimitExceeded lands here too
            logger.exception("Sync failed for tenant %s", tenant_id)
            _record_failure(db, tenant_id, exc)
            report.failed += 1
            report.errors[str(tenant_id)] = str(exc)


def run_scheduled_sync(
    session_factory: sessionmaker | None = None,
    source: PosSource | None = None,
    today: date | None = None,
) -> BatchReport:
    """Sync every active connection in-process, one tenant at a time.

    A failing tenant is logged and recorded on its connection; the others
    carry on regardless.
    """
    factory = session_factory or sync_session_factory()
    with factory() as db:
        tenant_ids = [c.tenant_id for c in active_connections(db)]

    report = BatchReport(total=len(tenant_ids))
    for tenant_id in tenant_ids:
        _sync_isolated(factory, tenant_id, report, source, today)

    logger.info(
        "Scheduled sync: %d tenants, %d ok, %d failed, %d skipped, %d rows",
        report.total, report.succeeded, report.failed, report.skipped, report.rows,
    )
    return report


def sync_window_for_tenant(
    db: Session,
    tenant_id: uuid.UUID,
    start_date: date,
    end_date: date,
    source: PosSource | None = None,
) -> PipelineResult:
    """Manually re-sync an explicit inclusive date range. Does not move last_sync_time."""
    connection = get_connection(db, tenant_id)
    return run_tenant_pipeline(db, connection, SyncWindow(start_date, end_date), source)


# ─── Celery tasks ─────────────────────────────────────────────────────────────

@celery_app.task(name="possync.services.sync.sync_all_connections")
def sync_all_connections() -> dict:
    """Beat entry point: one sync_connection task per active connection."""
    if not settings.sync_fan_out:
        return asdict(run_scheduled_sync())

    with sync_session_factory()() as db:
        tenant_ids = [c.tenant_id for c in active_connections(db)]

    for tenant_id in tenant_ids:
        sync_connection.delay(str(tenant_id))
    logger.info("Queued sync for %d tenants", len(tenant_ids))
    return {"queued": len(tenant_ids)}


@celery_app.task(
    name="possync.services.sync.sync_connection",
    soft_time_limit=settings.sync_soft_time_limit_seconds,
    time_limit=settings.sync_time_limit_seconds,
)
def sync_connection(tenant_id: str) -> dict:
    report = BatchReport(total=1)
    _sync_isolated(sync_session_factory(), uuid.UUID(tenant_id), report)
    return asdict(report)


@celery_app.task(
    name="possync.services.sync.sync_tenant",
    soft_time_limit=settings.sync_soft_time_limit_seconds,
    time_limit=settings.sync_time_limit_seconds,
)
def sync_tenant(tenant_id: str, start_date: str, end_date: str) -> dict:
    """Scoped sync of ``[start_date, end_date]`` (ISO dates, both inclusive)."""
    tid = uuid.UUID(str(tenant_id))
    start, end = date.fromisoformat(str(start_date)), date.fromisoformat(str(end_date))
    with sync_session_factory()() as db:
        try:
            return sync_window_for_tenant(db, tid, start, end).summary()
        except (ConnectionNotFound, SyncInProgress):
            raise
        except Exception as exc:
            logger.exception("Scoped sync %s..%s failed for tenant %s", start, end, tid)
            _record_failure(db, tid, exc)
            raise
