"""Raw POS records → unified_sales rows.

Pure functions, shared by the scoped and the full executor. Two rules matter
more than anything else here:

* POS item prices arrive as LINE TOTALS (quantity already applied). They are
  stored verbatim as total_price and divided by quantity for unit_price,
  never multiplied again.
* Only payments in an explicitly settled status contribute tips. Unknown
  statuses are excluded, not included.
"""
import uuid
from dataclasses import dataclass, field
from datetime import date, time
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from possync.core.errors import TransformError
from possync.models.sales import (
    ADJ_DISCOUNT, ADJ_REFUND, ADJ_REVENUE, ADJ_TAX, ADJ_TIP, ADJ_VOID,
)
from possync.services.sources import RawBatch, RawOrder, RawOrderItem, RawPayment

# Reviewed list; anything not here (DENIED, VOIDED, OPEN, typos...) earns no tips
SETTLED_PAYMENT_STATUSES: frozenset[str] = frozenset({
    "AUTHORIZED",
    "CAPTURED",
    "COMPLETED",
    "PAID",
})
EXCLUDED_PAYMENT_STATUSES: frozenset[str] = frozenset({"DENIED", "VOIDED"})
# Only these refundStatus values produce a refund row
REFUND_STATUSES: frozenset[str] = frozenset({"PARTIAL", "FULL"})

_UNIT_PRICE_EXP = Decimal("0.0001")
_SALE_ID_NAMESPACE = uuid.UUID("5b0c1f0e-8d2a-4e57-9a43-3f1f6c2d7e10")


@dataclass(frozen=True)
class SaleRow:
    id: uuid.UUID
    tenant_id: uuid.UUID
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
    raw_data: dict[str, Any] | None


@dataclass
class TransformResult:
    rows: list[SaleRow] = field(default_factory=list)
    errors: list[TransformError] = field(default_factory=list)
    excluded_tips: int = 0
    duplicates: int = 0


# ─── Primitives ──────────────────────────────────────────────────────────────

def _to_decimal(value: Any, what: str, external_id: str | None) -> Decimal:
    if value is None:
        raise TransformError(f"{what} is missing", external_id)
    try:
        d = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise TransformError(f"{what} is not a number: {value!r}", external_id)
    if not d.is_finite():
        raise TransformError(f"{what} is not finite: {value!r}", external_id)
    return d


def normalize_price(
    raw_line_total: Any, quantity: Any, external_id: str | None = None
) -> tuple[Decimal, Decimal]:
    """Return (unit_price, total_price) for a line-total price.

    total_price is the line total unchanged. Raises TransformError for a zero
    quantity or a price that is not a finite number.
    """
    total_price = _to_decimal(raw_line_total, "price", external_id)
    qty = _to_decimal(quantity, "quantity", external_id)
    if qty == 0:
        raise TransformError("quantity is zero", external_id)
    unit_price = (total_price / qty).quantize(_UNIT_PRICE_EXP, rounding=ROUND_HALF_UP)
    return unit_price, total_price


def is_settled_payment(status: str | None) -> bool:
    """True only for statuses in SETTLED_PAYMENT_STATUSES (case-insensitive)."""
    if not status:
        return False
    return status.strip().upper() in SETTLED_PAYMENT_STATUSES


def sale_id(tenant_id: uuid.UUID, pos_system: str, external_order_id: str, external_item_id: str) -> uuid.UUID:
    return uuid.uuid5(
        _SALE_ID_NAMESPACE, f"{tenant_id}/{pos_system}/{external_order_id}/{external_item_id}"
    )


def _nonzero(value: Any, what: str, external_id: str) -> bool:
    """None and 0 mean 'no row'; anything unparsable is an error."""
    if value is None:
        return False
    return _to_decimal(value, what, external_id) != 0


# ─── Row builders ────────────────────────────────────────────────────────────

def _row(
    tenant_id: uuid.UUID,
    pos_system: str,
    *,
    order_id: str,
    item_id: str,
    sale_date: date,
    sale_time: time | None,
    name: str,
    quantity: Any,
    line_total: Any,
    adjustment_type: str,
    pos_category: str | None = None,
    raw: dict | None = None,
) -> SaleRow:
    unit_price, total_price = normalize_price(line_total, quantity, item_id)
    return SaleRow(
        id=sale_id(tenant_id, pos_system, order_id, item_id),
        tenant_id=tenant_id,
        pos_system=pos_system,
        external_order_id=order_id,
        external_item_id=item_id,
        sale_date=sale_date,
        sale_time=sale_time,
        item_name=name,
        quantity=_to_decimal(quantity, "quantity", item_id),
        unit_price=unit_price,
        total_price=total_price,
        pos_category=pos_category,
        adjustment_type=adjustment_type,
        raw_data=raw,
    )


def _item_common(item: RawOrderItem, order: RawOrder) -> dict:
    return dict(
        order_id=item.external_order_id,
        sale_date=order.order_date,
        sale_time=order.order_time,
        quantity=item.quantity,
        pos_category=item.menu_category,
        raw=item.raw_json,
    )


def revenue_row(
    tenant_id: uuid.UUID, pos_system: str, item: RawOrderItem, order: RawOrder
) -> SaleRow | None:
    # Voided items never earn revenue, only a void offset
    if item.is_voided or not _nonzero(item.line_total, "price", item.external_item_id):
        return None
    return _row(
        tenant_id, pos_system, item_id=item.external_item_id, name=item.item_name,
        line_total=item.line_total, adjustment_type=ADJ_REVENUE, **_item_common(item, order),
    )


def discount_row(
    tenant_id: uuid.UUID, pos_system: str, item: RawOrderItem, order: RawOrder
) -> SaleRow | None:
    ext = f"{item.external_item_id}_discount"
    if item.is_voided:
        return None
    discount = _to_decimal(item.discount_amount or 0, "discount", ext)
    if discount <= 0:
        return None
    return _row(
        tenant_id, pos_system, item_id=ext, name=f"Discount - {item.item_name}",
        line_total=-discount, adjustment_type=ADJ_DISCOUNT, **_item_common(item, order),
    )


def void_row(
    tenant_id: uuid.UUID, pos_system: str, item: RawOrderItem, order: RawOrder
) -> SaleRow | None:
    ext = f"{item.external_item_id}_void"
    if not item.is_voided or not _nonzero(item.line_total, "price", ext):
        return None
    return _row(
        tenant_id, pos_system, item_id=ext, name=f"Void - {item.item_name}",
        line_total=-_to_decimal(item.line_total, "price", ext),
        adjustment_type=ADJ_VOID, **_item_common(item, order),
    )


_ITEM_BUILDERS = (revenue_row, discount_row, void_row)


def tax_row(tenant_id: uuid.UUID, pos_system: str, order: RawOrder) -> SaleRow | None:
    ext = f"{order.external_order_id}_tax"
    if not _nonzero(order.tax_amount, "tax", ext):
        return None
    return _row(
        tenant_id, pos_system, order_id=order.external_order_id, item_id=ext,
        sale_date=order.order_date, sale_time=order.order_time, name="Sales Tax",
        quantity=1, line_total=order.tax_amount, adjustment_type=ADJ_TAX, raw=order.raw_json,
    )


def tip_row(tenant_id: uuid.UUID, pos_system: str, payment: RawPayment) -> SaleRow | None:
    """Tip row for a settled payment; None when there is no tip or it doesn't count."""
    ext = f"{payment.external_payment_id}_tip"
    if not _nonzero(payment.tip_amount, "tip", ext):
        return None
    if not is_settled_payment(payment.status):
        return None
    return _row(
        tenant_id, pos_system, order_id=payment.external_order_id, item_id=ext,
        sale_date=payment.payment_date, sale_time=None,
        name=f"Tip - {payment.payment_type or 'Unknown'}",
        quantity=1, line_total=payment.tip_amount, adjustment_type=ADJ_TIP, raw=payment.raw_json,
    )


def refund_row(tenant_id: uuid.UUID, pos_system: str, payment: RawPayment) -> SaleRow | None:
    ext = f"{payment.external_payment_id}_refund"
    if payment.refund_amount is None:
        return None
    if (payment.refund_status or "").strip().upper() not in REFUND_STATUSES:
        return None
    amount = _to_decimal(payment.refund_amount, "refund", ext)
    if amount <= 0:
        return None
    return _row(
        tenant_id, pos_system, order_id=payment.external_order_id, item_id=ext,
        sale_date=payment.payment_date, sale_time=None,
        name=f"Refund - {payment.payment_type or 'Unknown'}",
        quantity=1, line_total=-abs(amount), adjustment_type=ADJ_REFUND, raw=payment.raw_json,
    )


# ─── Batch ───────────────────────────────────────────────────────────────────

def transform_batch(tenant_id: uuid.UUID, pos_system: str, batch: RawBatch) -> TransformResult:
    """Build every ledger row for a raw batch.

    A bad record only costs its own rows: the TransformError is collected and
    the rest of the batch continues. Rows are de-duplicated by id, last wins.
    """
    result = TransformResult()
    by_id: dict[uuid.UUID, SaleRow] = {}

    def _add(row: SaleRow | None):
        if row is None:
            return
        if row.id in by_id:
            result.duplicates += 1
        by_id[row.id] = row

    orders = {o.external_order_id: o for o in batch.orders}

    for item in batch.items:
        order = orders.get(item.external_order_id)
        if order is None:
            result.errors.append(TransformError("order not in batch", item.external_item_id))
            continue
        for build in _ITEM_BUILDERS:
            try:
                _add(build(tenant_id, pos_system, item, order))
            except TransformError as exc:
                result.errors.append(exc)

    for order in batch.orders:
        try:
            _add(tax_row(tenant_id, pos_system, order))
        except TransformError as exc:
            result.errors.append(exc)

    for payment in batch.payments:
        try:
            tip = tip_row(tenant_id, pos_system, payment)
            if tip is None and payment.tip_amount and not is_settled_payment(payment.status):
                result.excluded_tips += 1
            _add(tip)
        except TransformError as exc:
            result.errors.append(exc)
        try:
            _add(refund_row(tenant_id, pos_system, payment))
        except TransformError as exc:
            result.errors.append(exc)

    result.rows = list(by_id.values())
    return result
