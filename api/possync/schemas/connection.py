import uuid
from datetime import datetime

from pydantic import BaseModel, Field


class ConnectionCreate(BaseModel):
    tenant_id: uuid.UUID
    tenant_name: str | None = None      # creates the tenant if it doesn't exist yet
    timezone: str = "UTC"               # IANA name, only used for a new tenant
    pos_system: str = "toast"
    external_id: str                    # Toast restaurant GUID
    client_id: str | None = None
    client_secret: str | None = None    # encrypted before it is stored


class ConnectionUpdate(BaseModel):
    status: str = Field(pattern="^(active|inactive)$")


class ConnectionResponse(BaseModel):
    id: uuid.UUID
    tenant_id: uuid.UUID
    pos_system: str
    external_id: str
    client_id: str | None
    status: str
    last_sync_time: datetime | None
    last_error: str | None
    last_error_at: datetime | None
    created_at: datetime

    model_config = {"from_attributes": True}
