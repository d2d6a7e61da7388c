"""Full-history ledger rebuild for one tenant. Admin only.

Runs the same replace/categorize/aggregate pipeline as the scheduled sync,
with an unbounded window. It is never scheduled: callers are the admin HTTP
endpoint, the ``python -m possync.scripts.full_resync`` CLI and this task.
``last_sync_time`` is left alone.
"""
import logging
import uuid

from sqlalchemy.orm import Session

from possync.core.config import settings
from possync.core.database import sync_session_factory
from possync.services.registry import get_connection
from possync.services.sources import PosSource
from possync.services.sync import PipelineResult, run_tenant_pipeline
from possync.worker import celery_app

logger = logging.getLogger(__name__)


def resync(db: Session, tenant_id: uuid.UUID, source: PosSource | None = None) -> PipelineResult:
    connection = get_connection(db, tenant_id)
    logger.warning("Full resync of tenant %s (%s): rebuilding all history",
                   tenant_id, connection.pos_system)
    result = run_tenant_pipeline(
        db, connection, None, source,
        lock_timeout=settings.full_resync_lock_timeout_seconds,
    )
    logger.info("Full resync of tenant %s done: %s", tenant_id, result.summary())
    return result


@celery_app.task(
    name="possync.services.full_resync.resync_tenant",
    soft_time_limit=settings.full_resync_soft_time_limit_seconds,
    time_limit=settings.full_resync_time_limit_seconds,
)
def resync_tenant(tenant_id: str) -> dict:
    with sync_session_factory()() as db:
        return resync(db, uuid.UUID(str(tenant_id))).summary()
