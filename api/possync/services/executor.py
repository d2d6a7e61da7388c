"""Replace-on-sync for the unified sales ledger.

Scoped and full syncs are the same operation; the only difference is the
window, where ``None`` means all history. Everything between the delete and
the insert happens in one transaction, so no reader ever sees a window half
replaced.

Per-row categorization is NOT done here. Rows are bulk-inserted bare and the
categorization applier runs once over the returned ids afterwards.
"""
import logging
import uuid
from dataclasses import dataclass, field
from collections.abc import Callable
from datetime import date

from sqlalchemy import delete, insert, select, text
from sqlalchemy.orm import Session

from possync.core.config import settings
from possync.models.connection import PosConnection
from possync.models.sales import UnifiedSale
from possync.services.sources import PosSource
from possync.services.sync_window import SyncWindow
from possync.services.transform import SaleRow, transform_batch

logger = logging.getLogger(__name__)

# Individual TransformErrors logged per run before summarising the rest
_MAX_LOGGED_ERRORS = 20


@dataclass
class SyncResult:
    tenant_id: uuid.UUID
    window: SyncWindow | None
    rows_written: int = 0
    rows_deleted: int = 0
    skipped: int = 0
    dates_touched: set[date] = field(default_factory=set)
    sale_ids: list[uuid.UUID] = field(default_factory=list)


def _scope(connection: PosConnection, window: SyncWindow | None) -> list:
    clauses = [
        UnifiedSale.tenant_id == connection.tenant_id,
        UnifiedSale.pos_system == connection.pos_system,
    ]
    if window is not None:
        clauses += [
            UnifiedSale.sale_date >= window.start_date,
            UnifiedSale.sale_date <= window.end_date,
        ]
    return clauses


def _set_statement_timeout(db: Session) -> None:
    if db.get_bind().dialect.name == "postgresql":
        ms = int(settings.sync_statement_timeout_seconds) * 1000
        # SET LOCAL takes no bind parameters
        db.execute(text(f"SET LOCAL statement_timeout = {ms}"))


def _snapshot_categorization(db: Session, scope: list) -> dict[uuid.UUID, tuple]:
    """Categorization already on rows being replaced, keyed by (deterministic) id."""
    rows = db.execute(
        select(
            UnifiedSale.id,
            UnifiedSale.sale_date,
            UnifiedSale.suggested_category_id,
            UnifiedSale.category_id,
            UnifiedSale.is_categorized,
        ).where(*scope)
    ).all()
    return {r.id: (r.sale_date, r.suggested_category_id, r.category_id, r.is_categorized) for r in rows}


def _to_mapping(row: SaleRow, preserved: tuple | None) -> dict:
    suggested, approved, categorized = (None, None, False)
    if preserved is not None:
        _, suggested, approved, categorized = preserved
    return {
        "id": row.id,
        "tenant_id": row.tenant_id,
        "pos_system": row.pos_system,
        "external_order_id": row.external_order_id,
        "external_item_id": row.external_item_id,
        "sale_date": row.sale_date,
        "sale_time": row.sale_time,
        "item_name": row.item_name,
        "quantity": row.quantity,
        "unit_price": row.unit_price,
        "total_price": row.total_price,
        "pos_category": row.pos_category,
        "adjustment_type": row.adjustment_type,
        "suggested_category_id": suggested,
        "category_id": approved,
        "is_categorized": bool(categorized),
        "is_split": False,
        "parent_sale_id": None,
        "raw_data": row.raw_data,
    }


def replace_window(
    db: Session,
    connection: PosConnection,
    window: SyncWindow | None,
    source: PosSource,
    keepalive: Callable[[], None] | None = None,
) -> SyncResult:
    """Delete the tenant's ledger rows in ``window``, rebuild them from the source, commit.

    Raises TransientSourceError (after rolling back) if the source fetch fails.
    ``keepalive`` is called after the fetch and again before the commit; if it
    raises, nothing is committed.
    A TransformError only skips the offending row.
    """
    tenant_id = connection.tenant_id
    pos_system = connection.pos_system
    scope = _scope(connection, window)
    result = SyncResult(tenant_id=tenant_id, window=window)
    label = str(window) if window is not None else "[all history]"

    try:
        _set_statement_timeout(db)

        # 1. Delete this tenant/POS/window only
        preserved = _snapshot_categorization(db, scope)
        result.dates_touched.update(v[0] for v in preserved.values())
        result.rows_deleted = db.execute(delete(UnifiedSale).where(*scope)).rowcount or 0

        # 2. Fetch
        batch = source.fetch(db, connection, window)
        if keepalive:
            keepalive()

        # 3. Transform
        transformed = transform_batch(tenant_id, pos_system, batch)
        for i, err in enumerate(transformed.errors):
            if i < _MAX_LOGGED_ERRORS:
                logger.warning("Tenant %s: skipped row %s", tenant_id, err)
        if len(transformed.errors) > _MAX_LOGGED_ERRORS:
            logger.warning("Tenant %s: %d more rows skipped", tenant_id,
                           len(transformed.errors) - _MAX_LOGGED_ERRORS)
        if transformed.excluded_tips:
            logger.info("Tenant %s: excluded tips on %d unsettled payments",
                        tenant_id, transformed.excluded_tips)
        result.skipped = len(transformed.errors)

        rows = []
        for row in transformed.rows:
            if window is not None and not window.contains(row.sale_date):
                logger.warning("Tenant %s: row %s dated %s is outside %s, dropped",
                               tenant_id, row.external_item_id, row.sale_date, label)
                result.skipped += 1
                continue
            rows.append(row)

        # 4. Insert
        if rows:
            db.execute(insert(UnifiedSale), [_to_mapping(r, preserved.get(r.id)) for r in rows])
        result.rows_written = len(rows)
        result.sale_ids = [r.id for r in rows]
        result.dates_touched.update(r.sale_date for r in rows)

        # 5. Commit
        if keepalive:
            keepalive()
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(
        "Tenant %s %s: replaced %d rows with %d across %d dates (%d skipped)",
        tenant_id, label, result.rows_deleted, result.rows_written,
        len(result.dates_touched), result.skipped,
    )
    return result
