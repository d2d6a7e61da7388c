"""Daily sales aggregation.

Rebuilds ``daily_sales`` for a set of dates from ``unified_sales`` only. Each
date is summed in one grouped query and written in its own transaction, so a
bad date never blocks the others.
"""
import logging
import uuid
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from sqlalchemy import distinct, func, select
from sqlalchemy.orm import Session

from possync.core.errors import AggregationMismatch
from possync.models.sales import (
    ADJ_DISCOUNT, ADJ_REFUND, ADJ_REVENUE, ADJ_TAX, ADJ_TIP, ADJ_VOID, ADJUSTMENT_TYPES,
    DailySales, UnifiedSale,
)

logger = logging.getLogger(__name__)

_CENT = Decimal("0.01")


@dataclass
class AggregationReport:
    written: int = 0
    deleted: int = 0
    failed: list[date] = field(default_factory=list)


@dataclass
class DayTotals:
    gross_sales: Decimal = Decimal(0)
    discounts: Decimal = Decimal(0)
    voids: Decimal = Decimal(0)
    refunds: Decimal = Decimal(0)
    tax: Decimal = Decimal(0)
    tips: Decimal = Decimal(0)
    transaction_count: int = 0
    row_count: int = 0

    @property
    def net_sales(self) -> Decimal:
        # Voids are reported but never earned revenue, so they are not subtracted
        return self.gross_sales + self.discounts + self.refunds


_COLUMN_FOR_TYPE = {
    ADJ_REVENUE: "gross_sales",
    ADJ_DISCOUNT: "discounts",
    ADJ_VOID: "voids",
    ADJ_REFUND: "refunds",
    ADJ_TAX: "tax",
    ADJ_TIP: "tips",
}


def _money(value) -> Decimal:
    return Decimal(str(value or 0)).quantize(_CENT)


def compute_day(db: Session, tenant_id: uuid.UUID, sale_date: date) -> DayTotals:
    """Sum the ledger for one date. Raises AggregationMismatch if the sums disagree."""
    scope = (UnifiedSale.tenant_id == tenant_id, UnifiedSale.sale_date == sale_date)

    per_type = db.execute(
        select(
            UnifiedSale.adjustment_type,
            func.sum(UnifiedSale.total_price),
            func.count(),
        )
        .where(*scope)
        .group_by(UnifiedSale.adjustment_type)
    ).all()

    overall = _money(db.execute(select(func.sum(UnifiedSale.total_price)).where(*scope)).scalar())

    totals = DayTotals()
    running = Decimal(0)
    for adjustment_type, amount, count in per_type:
        if adjustment_type not in ADJUSTMENT_TYPES:
            raise AggregationMismatch(
                tenant_id, sale_date, f"{count} rows with unknown adjustment type {adjustment_type!r}"
            )
        amount = _money(amount)
        setattr(totals, _COLUMN_FOR_TYPE[adjustment_type], amount)
        running += amount
        totals.row_count += count

    if running != overall:
        raise AggregationMismatch(
            tenant_id, sale_date, f"per-type sums {running} != ledger total {overall}"
        )

    totals.transaction_count = db.execute(
        select(func.count(distinct(UnifiedSale.external_order_id)))
        .where(*scope, UnifiedSale.adjustment_type == ADJ_REVENUE)
    ).scalar() or 0
    return totals


def _write_day(db: Session, tenant_id: uuid.UUID, sale_date: date, totals: DayTotals) -> str | None:
    """Upsert (or delete, for an empty day) the aggregate row.

    Returns "written", "deleted", or None when an empty day had no row anyway.
    """
    existing = db.execute(
        select(DailySales).where(DailySales.tenant_id == tenant_id, DailySales.sale_date == sale_date)
    ).scalar_one_or_none()

    if totals.row_count == 0:
        if existing is None:
            return None
        db.delete(existing)
        return "deleted"

    if existing is None:
        existing = DailySales(tenant_id=tenant_id, sale_date=sale_date)
        db.add(existing)
    existing.gross_sales = totals.gross_sales
    existing.discounts = totals.discounts
    existing.voids = totals.voids
    existing.refunds = totals.refunds
    existing.net_sales = totals.net_sales
    existing.tax = totals.tax
    existing.tips = totals.tips
    existing.transaction_count = totals.transaction_count
    return "written"


def aggregate_dates(db: Session, tenant_id: uuid.UUID, dates: Iterable[date]) -> AggregationReport:
    """Recompute daily_sales for each date. Idempotent; call after the ledger has committed."""
    report = AggregationReport()

    for sale_date in sorted(set(dates)):
        try:
            totals = compute_day(db, tenant_id, sale_date)
            outcome = _write_day(db, tenant_id, sale_date, totals)
            if outcome == "written":
                report.written += 1
            elif outcome == "deleted":
                report.deleted += 1
            db.commit()
        except AggregationMismatch as exc:
            db.rollback()
            logger.error("%s; aggregate left unchanged", exc)
            report.failed.append(sale_date)
        except Exception:
            db.rollback()
            raise

    logger.info(
        "Tenant %s: aggregated %d dates (%d cleared, %d mismatched)",
        tenant_id, report.written, report.deleted, len(report.failed),
    )
    return report
