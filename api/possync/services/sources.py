"""Raw POS data as the sync core sees it.

The integration layer (OAuth, webhooks, order polling) owns the raw data; the
core only reads it through a ``PosSource``. Two sources exist:

    StagingTableSource   reads pos_orders / pos_order_items / pos_payments
    ToastApiSource       reads Toast's ordersBulk API directly (toast_client)
"""
import logging
from dataclasses import dataclass, field
from datetime import date, time
from decimal import Decimal
from typing import Any, Protocol

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from possync.core.config import settings
from possync.core.errors import TransientSourceError
from possync.models.connection import PosConnection
from possync.models.raw import PosOrder, PosOrderItem, PosPayment

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RawOrder:
    external_order_id: str
    order_date: date
    order_time: time | None = None
    tax_amount: Decimal | None = None
    raw_json: dict[str, Any] | None = None


@dataclass(frozen=True)
class RawOrderItem:
    external_item_id: str
    external_order_id: str
    item_name: str
    quantity: Decimal
    line_total: Decimal | None          # already quantity × unit price
    discount_amount: Decimal = Decimal(0)  # also a line total
    is_voided: bool = False
    menu_category: str | None = None
    raw_json: dict[str, Any] | None = None


@dataclass(frozen=True)
class RawPayment:
    external_payment_id: str
    external_order_id: str
    payment_date: date
    status: str | None = None
    payment_type: str | None = None
    tip_amount: Decimal | None = None
    refund_amount: Decimal | None = None
    refund_status: str | None = None    # Toast refundStatus: NONE, PARTIAL, FULL
    raw_json: dict[str, Any] | None = None


@dataclass
class RawBatch:
    orders: list[RawOrder] = field(default_factory=list)
    items: list[RawOrderItem] = field(default_factory=list)
    payments: list[RawPayment] = field(default_factory=list)


class PosSource(Protocol):
    def fetch(self, db: Session, connection: PosConnection, window) -> RawBatch:
        """Return raw data dated inside ``window`` (None = all history).

        Must raise TransientSourceError on any retryable failure.
        """
        ...


# ─── Staging tables ───────────────────────────────────────────────────────────

class StagingTableSource:
    """Reads the staging tables inside the caller's transaction."""

    def fetch(self, db: Session, connection: PosConnection, window) -> RawBatch:
        tenant_id = connection.tenant_id
        try:
            order_q = select(PosOrder).where(PosOrder.tenant_id == tenant_id)
            payment_q = select(PosPayment).where(PosPayment.tenant_id == tenant_id)
            if window is not None:
                order_q = order_q.where(
                    PosOrder.order_date >= window.start_date,
                    PosOrder.order_date <= window.end_date,
                )
                payment_q = payment_q.where(
                    PosPayment.payment_date >= window.start_date,
                    PosPayment.payment_date <= window.end_date,
                )
            orders = db.execute(order_q).scalars().all()

            items: list[PosOrderItem] = []
            order_ids = [o.external_order_id for o in orders]
            # Chunk the IN list; a 90-day backfill can hold tens of thousands of orders
            for i in range(0, len(order_ids), 1000):
                items.extend(db.execute(
                    select(PosOrderItem).where(
                        PosOrderItem.tenant_id == tenant_id,
                        PosOrderItem.external_order_id.in_(order_ids[i:i + 1000]),
                    )
                ).scalars().all())

            payments = db.execute(payment_q).scalars().all()
        except SQLAlchemyError as exc:
            raise TransientSourceError(f"Staging read failed for tenant {tenant_id}: {exc}") from exc

        return RawBatch(
            orders=[
                RawOrder(
                    external_order_id=o.external_order_id,
                    order_date=o.order_date,
                    order_time=o.order_time,
                    tax_amount=o.tax_amount,
                    raw_json=o.raw_json,
                )
                for o in orders
            ],
            items=[
                RawOrderItem(
                    external_item_id=i.external_item_id,
                    external_order_id=i.external_order_id,
                    item_name=i.item_name,
                    quantity=i.quantity,
                    line_total=i.line_total,
                    discount_amount=i.discount_amount or Decimal(0),
                    is_voided=bool(i.is_voided),
                    menu_category=i.menu_category,
                    raw_json=i.raw_json,
                )
                for i in items
            ],
            payments=[
                RawPayment(
                    external_payment_id=p.external_payment_id,
                    external_order_id=p.external_order_id,
                    payment_date=p.payment_date,
                    status=p.status,
                    payment_type=p.payment_type,
                    tip_amount=p.tip_amount,
                    refund_amount=p.refund_amount,
                    refund_status=(p.raw_json or {}).get("refundStatus"),
                    raw_json=p.raw_json,
                )
                for p in payments
            ],
        )


def get_source() -> PosSource:
    if settings.pos_source == "toast":
        from possync.services.toast_client import ToastApiSource
        return ToastApiSource()
    return StagingTableSource()
