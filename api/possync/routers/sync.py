import uuid

from fastapi import APIRouter, Depends, HTTPException, Request
from slowapi import Limiter
from slowapi.util import get_remote_address
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from possync.core.database import get_db
from possync.core.deps import require_admin
from possync.models.connection import STATUS_ACTIVE, PosConnection
from possync.schemas.sales import SyncQueued, SyncRequest
from possync.services.full_resync import resync_tenant
from possync.services.sync import sync_tenant

limiter = Limiter(key_func=get_remote_address)

router = APIRouter(tags=["sync"])


async def _require_active(db: AsyncSession, tenant_id: uuid.UUID) -> None:
    result = await db.execute(
        select(PosConnection.id).where(
            PosConnection.tenant_id == tenant_id,
            PosConnection.status == STATUS_ACTIVE,
        )
    )
    if result.scalar_one_or_none() is None:
        raise HTTPException(status_code=404, detail="No active POS connection for tenant")


@router.post("/sync/{tenant_id}", response_model=SyncQueued, status_code=202)
@limiter.limit("30/minute")
async def trigger_sync(
    request: Request,
    tenant_id: uuid.UUID,
    payload: SyncRequest,
    _admin: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Queue a scoped re-sync of [start_date, end_date] for one tenant."""
    await _require_active(db, tenant_id)
    task = sync_tenant.delay(str(tenant_id), payload.start_date.isoformat(), payload.end_date.isoformat())
    return SyncQueued(task_id=task.id, tenant_id=tenant_id)


@router.post("/admin/resync/{tenant_id}", response_model=SyncQueued, status_code=202)
@limiter.limit("5/hour")
async def trigger_full_resync(
    request: Request,
    tenant_id: uuid.UUID,
    _admin: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Queue a full-history rebuild of one tenant's ledger and aggregates."""
    await _require_active(db, tenant_id)
    task = resync_tenant.delay(str(tenant_id))
    return SyncQueued(task_id=task.id, tenant_id=tenant_id)
