import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from possync.core.database import get_db
from possync.core.deps import require_admin
from possync.core.security import encrypt_value
from possync.models.connection import STATUS_ACTIVE, PosConnection
from possync.models.tenant import Tenant
from possync.schemas.connection import ConnectionCreate, ConnectionResponse, ConnectionUpdate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/connections", tags=["connections"])


@router.get("/", response_model=list[ConnectionResponse])
async def list_connections(
    _admin: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(select(PosConnection).order_by(PosConnection.created_at))
    return result.scalars().all()


@router.post("/", response_model=ConnectionResponse, status_code=201)
async def create_connection(
    payload: ConnectionCreate,
    _admin: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    tenant = await db.get(Tenant, payload.tenant_id)
    if tenant is None:
        if not payload.tenant_name:
            raise HTTPException(status_code=404, detail="Tenant not found")
        tenant = Tenant(id=payload.tenant_id, name=payload.tenant_name, timezone=payload.timezone)
        db.add(tenant)

    existing = await db.execute(
        select(PosConnection).where(PosConnection.tenant_id == payload.tenant_id)
    )
    if existing.scalar_one_or_none():
        raise HTTPException(status_code=409, detail="Tenant already has a POS connection")

    conn = PosConnection(
        tenant_id=payload.tenant_id,
        pos_system=payload.pos_system,
        external_id=payload.external_id,
        client_id=payload.client_id,
        encrypted_client_secret=encrypt_value(payload.client_secret) if payload.client_secret else None,
        status=STATUS_ACTIVE,
    )
    db.add(conn)
    await db.commit()
    await db.refresh(conn)
    logger.info("Created %s connection for tenant %s", conn.pos_system, conn.tenant_id)
    return conn


@router.patch("/{tenant_id}", response_model=ConnectionResponse)
async def update_connection(
    tenant_id: uuid.UUID,
    payload: ConnectionUpdate,
    _admin: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(select(PosConnection).where(PosConnection.tenant_id == tenant_id))
    conn = result.scalar_one_or_none()
    if not conn:
        raise HTTPException(status_code=404, detail="Connection not found")

    conn.status = payload.status
    await db.commit()
    await db.refresh(conn)
    logger.info("Connection for tenant %s is now %s", tenant_id, conn.status)
    return conn
