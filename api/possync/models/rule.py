import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean, DateTime, ForeignKey, Index, Integer, Numeric, String, Uuid, func,
)
from sqlalchemy.orm import Mapped, mapped_column

from possync.core.database import Base


class Category(Base):
    """Chart-of-accounts entry a sale can be booked to."""
    __tablename__ = "categories"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("tenants.id"), index=True)
    name: Mapped[str] = mapped_column(String(100))
    account_code: Mapped[str | None] = mapped_column(String(20))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


class CategorizationRule(Base):
    __tablename__ = "categorization_rules"
    __table_args__ = (
        Index("ix_categorization_rules_tenant_priority", "tenant_id", "priority"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("tenants.id"))
    category_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("categories.id"))
    name: Mapped[str] = mapped_column(String(255))
    applies_to: Mapped[str] = mapped_column(String(20), default="pos_sales")  # pos_sales, bank, both
    item_name_pattern: Mapped[str | None] = mapped_column(String(500))
    match_type: Mapped[str] = mapped_column(String(20), default="contains")  # exact, contains, starts_with, ends_with, regex
    pos_category: Mapped[str | None] = mapped_column(String(255))
    amount_min: Mapped[Decimal | None] = mapped_column(Numeric(14, 2))
    amount_max: Mapped[Decimal | None] = mapped_column(Numeric(14, 2))
    priority: Mapped[int] = mapped_column(Integer, default=0)
    auto_apply: Mapped[bool] = mapped_column(Boolean, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    apply_count: Mapped[int] = mapped_column(Integer, default=0)
    last_applied_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
