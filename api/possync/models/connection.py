import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from possync.core.database import Base

STATUS_ACTIVE = "active"
STATUS_INACTIVE = "inactive"
CONNECTION_STATUSES = (STATUS_ACTIVE, STATUS_INACTIVE)


class PosConnection(Base):
    """One POS integration per tenant.

    ``last_sync_time`` is written only after a scheduled run fully succeeds,
    so a failed or crashed run leaves it stale and the next tick re-covers
    the same window.
    """
    __tablename__ = "pos_connections"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("tenants.id"), unique=True, index=True
    )
    pos_system: Mapped[str] = mapped_column(String(50))       # toast, square, clover, shift4
    external_id: Mapped[str] = mapped_column(String(255))     # e.g. Toast restaurant GUID
    client_id: Mapped[str | None] = mapped_column(String(255))
    encrypted_client_secret: Mapped[str | None] = mapped_column(Text)
    status: Mapped[str] = mapped_column(String(20), default=STATUS_ACTIVE)
    last_sync_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    last_error: Mapped[str | None] = mapped_column(Text)
    last_error_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    tenant: Mapped["Tenant"] = relationship(back_populates="connection")
