"""
Shared fixtures: an in-memory SQLite database with every table created, plus
helpers to seed tenants, connections and staging rows.

Run with:
    pytest api/tests -v
"""
import uuid
from datetime import date, time
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import possync.models  # noqa: F401
from possync.core.database import Base
from possync.models.connection import PosConnection
from possync.models.raw import PosOrder, PosOrderItem, PosPayment
from possync.models.tenant import Tenant


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db(session_factory):
    with session_factory() as session:
        yield session


def add_connection(db, name="Bistro", tz="UTC", pos_system="toast", status="active",
                   last_sync_time=None) -> PosConnection:
    tenant = Tenant(id=uuid.uuid4(), name=name, timezone=tz)
    conn = PosConnection(
        tenant=tenant,
        pos_system=pos_system,
        external_id=f"rest-{name.lower()}",
        status=status,
        last_sync_time=last_sync_time,
    )
    db.add_all([tenant, conn])
    db.commit()
    return conn


@pytest.fixture
def connection(db):
    return add_connection(db)


def add_order(db, tenant_id, order_id, order_date: date, items=(), payments=(), tax=None):
    """Seed one staging order. ``items`` are (item_id, name, qty, line_total[, discount[, voided]])."""
    db.add(PosOrder(
        tenant_id=tenant_id,
        external_order_id=order_id,
        order_date=order_date,
        order_time=time(12, 30),
        tax_amount=Decimal(str(tax)) if tax is not None else None,
    ))
    for item in items:
        item_id, name, qty, line_total, *rest = item
        discount = rest[0] if len(rest) > 0 else 0
        voided = rest[1] if len(rest) > 1 else False
        db.add(PosOrderItem(
            tenant_id=tenant_id,
            external_item_id=item_id,
            external_order_id=order_id,
            item_name=name,
            quantity=Decimal(str(qty)),
            line_total=Decimal(str(line_total)),
            discount_amount=Decimal(str(discount)),
            is_voided=voided,
            menu_category="Food",
        ))
    for payment_id, status, tip in payments:
        db.add(PosPayment(
            tenant_id=tenant_id,
            external_payment_id=payment_id,
            external_order_id=order_id,
            payment_type="CREDIT",
            status=status,
            tip_amount=Decimal(str(tip)) if tip is not None else None,
            payment_date=order_date,
        ))
    db.commit()
