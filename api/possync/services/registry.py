"""POS connection registry, one record per tenant.

``last_sync_time`` is advanced only by ``mark_synced`` after a run has fully
committed. Failures go through ``mark_failed``, which never touches it.
"""
import logging
import uuid
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from possync.core.errors import ConnectionNotFound
from possync.models.connection import STATUS_ACTIVE, PosConnection

logger = logging.getLogger(__name__)

_MAX_ERROR_LEN = 2000


def _find(db: Session, tenant_id: uuid.UUID) -> PosConnection | None:
    return db.execute(
        select(PosConnection)
        .options(selectinload(PosConnection.tenant))
        .where(PosConnection.tenant_id == tenant_id)
    ).scalar_one_or_none()


def get_connection(db: Session, tenant_id: uuid.UUID) -> PosConnection:
    """Return the tenant's active connection or raise ConnectionNotFound."""
    conn = _find(db, tenant_id)
    if conn is None or conn.status != STATUS_ACTIVE:
        raise ConnectionNotFound(tenant_id)
    return conn


def active_connections(db: Session) -> list[PosConnection]:
    return list(db.execute(
        select(PosConnection)
        .options(selectinload(PosConnection.tenant))
        .where(PosConnection.status == STATUS_ACTIVE)
        .order_by(PosConnection.created_at, PosConnection.id)
    ).scalars().all())


def mark_synced(db: Session, tenant_id: uuid.UUID, at: datetime | None = None) -> None:
    """Record a fully successful run. Call only after every write has committed."""
    conn = _find(db, tenant_id)
    if conn is None:
        raise ConnectionNotFound(tenant_id)
    conn.last_sync_time = at or datetime.now(timezone.utc)
    logger.debug("Tenant %s synced through %s", tenant_id, conn.last_sync_time.isoformat())
    conn.last_error = None
    conn.last_error_at = None
    db.commit()


def mark_failed(db: Session, tenant_id: uuid.UUID, error: str) -> None:
    conn = _find(db, tenant_id)
    if conn is None:
        return
    conn.last_error = error[:_MAX_ERROR_LEN]
    conn.last_error_at = datetime.now(timezone.utc)
    db.commit()
