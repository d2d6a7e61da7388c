"""Staging tables filled by the POS integration layer.

The sync core only ever reads these. Prices are stored in dollars exactly as
the POS reported them; ``line_total`` and ``discount_amount`` are already
multiplied by quantity.
"""
import uuid
from datetime import date, datetime, time
from decimal import Decimal

from sqlalchemy import (
    JSON, Boolean, Date, DateTime, ForeignKey, Index, Numeric, String, Time, Uuid,
    UniqueConstraint, func,
)
from sqlalchemy.orm import Mapped, mapped_column

from possync.core.database import Base


class PosOrder(Base):
    __tablename__ = "pos_orders"
    __table_args__ = (
        UniqueConstraint("tenant_id", "external_order_id"),
        Index("ix_pos_orders_tenant_date", "tenant_id", "order_date"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("tenants.id"))
    external_order_id: Mapped[str] = mapped_column(String(255))
    order_date: Mapped[date] = mapped_column(Date)
    order_time: Mapped[time | None] = mapped_column(Time)
    tax_amount: Mapped[Decimal | None] = mapped_column(Numeric(14, 2))
    raw_json: Mapped[dict | None] = mapped_column(JSON)
    synced_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class PosOrderItem(Base):
    __tablename__ = "pos_order_items"
    __table_args__ = (
        UniqueConstraint("tenant_id", "external_item_id", "external_order_id"),
        Index("ix_pos_order_items_tenant_order", "tenant_id", "external_order_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("tenants.id"))
    external_item_id: Mapped[str] = mapped_column(String(255))
    external_order_id: Mapped[str] = mapped_column(String(255))
    item_name: Mapped[str] = mapped_column(String(500))
    quantity: Mapped[Decimal] = mapped_column(Numeric(12, 3), default=1)
    line_total: Mapped[Decimal | None] = mapped_column(Numeric(14, 2))
    discount_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0)
    is_voided: Mapped[bool] = mapped_column(Boolean, default=False)
    menu_category: Mapped[str | None] = mapped_column(String(255))
    raw_json: Mapped[dict | None] = mapped_column(JSON)
    synced_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class PosPayment(Base):
    __tablename__ = "pos_payments"
    __table_args__ = (
        UniqueConstraint("tenant_id", "external_payment_id", "external_order_id"),
        # Payment lookups filter on tenant + settlement-date range
        Index("ix_pos_payments_tenant_date", "tenant_id", "payment_date"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("tenants.id"))
    external_payment_id: Mapped[str] = mapped_column(String(255))
    external_order_id: Mapped[str] = mapped_column(String(255))
    payment_type: Mapped[str | None] = mapped_column(String(50))
    status: Mapped[str | None] = mapped_column(String(50))
    tip_amount: Mapped[Decimal | None] = mapped_column(Numeric(14, 2))
    refund_amount: Mapped[Decimal | None] = mapped_column(Numeric(14, 2))
    payment_date: Mapped[date] = mapped_column(Date)
    raw_json: Mapped[dict | None] = mapped_column(JSON)
    synced_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
