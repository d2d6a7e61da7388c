import uuid
from datetime import date, datetime, time
from decimal import Decimal

from sqlalchemy import (
    JSON, Boolean, Date, DateTime, ForeignKey, Index, Integer, Numeric, String, Time, Uuid,
    UniqueConstraint, func,
)
from sqlalchemy.orm import Mapped, mapped_column

from possync.core.database import Base

ADJ_REVENUE = "revenue"
ADJ_DISCOUNT = "discount"
ADJ_VOID = "void"
ADJ_TAX = "tax"
ADJ_TIP = "tip"
ADJ_REFUND = "refund"
ADJUSTMENT_TYPES = (ADJ_REVENUE, ADJ_DISCOUNT, ADJ_VOID, ADJ_TAX, ADJ_TIP, ADJ_REFUND)


class UnifiedSale(Base):
    """One canonical ledger fact per POS line item or order-level adjustment.

    The primary key is derived from the external ids (see transform.sale_id),
    so replaying the same source data yields the same rows.
    """
    __tablename__ = "unified_sales"
    __table_args__ = (
        Index("ix_unified_sales_tenant_pos_date", "tenant_id", "pos_system", "sale_date"),
        Index("ix_unified_sales_tenant_date", "tenant_id", "sale_date"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True)
    tenant_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("tenants.id"))
    pos_system: Mapped[str] = mapped_column(String(50))
    external_order_id: Mapped[str] = mapped_column(String(255))
    external_item_id: Mapped[str] = mapped_column(String(255))
    sale_date: Mapped[date] = mapped_column(Date)
    sale_time: Mapped[time | None] = mapped_column(Time)
    item_name: Mapped[str] = mapped_column(String(500))
    quantity: Mapped[Decimal] = mapped_column(Numeric(12, 3))
    unit_price: Mapped[Decimal] = mapped_column(Numeric(14, 4))
    total_price: Mapped[Decimal] = mapped_column(Numeric(14, 2))
    pos_category: Mapped[str | None] = mapped_column(String(255))
    adjustment_type: Mapped[str] = mapped_column(String(20))

    # Categorization
    suggested_category_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("categories.id"), nullable=True
    )
    category_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("categories.id"), nullable=True
    )
    is_categorized: Mapped[bool] = mapped_column(Boolean, default=False)

    # Splits
    is_split: Mapped[bool] = mapped_column(Boolean, default=False)
    parent_sale_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("unified_sales.id", ondelete="CASCADE"), nullable=True
    )

    raw_data: Mapped[dict | None] = mapped_column(JSON)


class DailySales(Base):
    """Per-tenant, per-date rollup of unified_sales. Written only by aggregation.

    Offset columns (discounts, voids, refunds) are signed sums and so are <= 0.
    """
    __tablename__ = "daily_sales"
    __table_args__ = (UniqueConstraint("tenant_id", "sale_date"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("tenants.id"), index=True)
    sale_date: Mapped[date] = mapped_column(Date)
    gross_sales: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0)
    discounts: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0)
    voids: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0)
    refunds: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0)
    net_sales: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0)
    tax: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0)
    tips: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=0)
    transaction_count: Mapped[int] = mapped_column(Integer, default=0)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
