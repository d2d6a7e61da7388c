import uuid
from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from possync.core.database import get_db
from possync.core.deps import check_tenant_access, get_token_claims
from possync.models.sales import DailySales, UnifiedSale
from possync.schemas.sales import DailySalesResponse, SaleResponse

router = APIRouter(prefix="/sales", tags=["sales"])


def _check_range(start_date: date, end_date: date) -> None:
    if start_date > end_date:
        raise HTTPException(status_code=422, detail="start_date must be on or before end_date")


@router.get("/{tenant_id}", response_model=list[SaleResponse])
async def list_sales(
    tenant_id: uuid.UUID,
    start_date: date = Query(...),
    end_date: date = Query(...),
    adjustment_type: str | None = Query(None),
    limit: int = Query(1000, le=10000),
    offset: int = Query(0, ge=0),
    claims: dict = Depends(get_token_claims),
    db: AsyncSession = Depends(get_db),
):
    check_tenant_access(tenant_id, claims)
    _check_range(start_date, end_date)

    q = select(UnifiedSale).where(
        UnifiedSale.tenant_id == tenant_id,
        UnifiedSale.sale_date >= start_date,
        UnifiedSale.sale_date <= end_date,
    )
    if adjustment_type:
        q = q.where(UnifiedSale.adjustment_type == adjustment_type)
    q = q.order_by(UnifiedSale.sale_date, UnifiedSale.sale_time, UnifiedSale.id).limit(limit).offset(offset)
    result = await db.execute(q)
    return result.scalars().all()


@router.get("/{tenant_id}/daily", response_model=list[DailySalesResponse])
async def list_daily_sales(
    tenant_id: uuid.UUID,
    start_date: date = Query(...),
    end_date: date = Query(...),
    claims: dict = Depends(get_token_claims),
    db: AsyncSession = Depends(get_db),
):
    check_tenant_access(tenant_id, claims)
    _check_range(start_date, end_date)

    result = await db.execute(
        select(DailySales)
        .where(
            DailySales.tenant_id == tenant_id,
            DailySales.sale_date >= start_date,
            DailySales.sale_date <= end_date,
        )
        .order_by(DailySales.sale_date)
    )
    return result.scalars().all()
