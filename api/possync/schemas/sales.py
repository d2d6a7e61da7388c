import uuid
from datetime import date, time
from decimal import Decimal

from pydantic import BaseModel, model_validator


class SyncRequest(BaseModel):
    start_date: date
    end_date: date

    @model_validator(mode="after")
    def check_order(self):
        if self.start_date > self.end_date:
            raise ValueError("start_date must be on or before end_date")
        return self


class SyncQueued(BaseModel):
    task_id: str
    tenant_id: uuid.UUID
    status: str = "queued"


class SaleResponse(BaseModel):
    id: uuid.UUID
    pos_system: str
    external_order_id: str
    external_item_id: str
    sale_date: date
    sale_time: time | None
    item_name: str
    quantity: Decimal
    unit_price: Decimal
    total_price: Decimal
    pos_category: str | None
    adjustment_type: str
    suggested_category_id: uuid.UUID | None
    category_id: uuid.UUID | None
    is_categorized: bool
    is_split: bool

    model_config = {"from_attributes": True}


class DailySalesResponse(BaseModel):
    sale_date: date
    gross_sales: Decimal
    discounts: Decimal
    voids: Decimal
    refunds: Decimal
    net_sales: Decimal
    tax: Decimal
    tips: Decimal
    transaction_count: int

    model_config = {"from_attributes": True}
