"""Toast ordersBulk as a PosSource.

Logs in as a machine client with the connection's decrypted secret, then
pages through /orders/v2/ordersBulk for the window. Toast amounts are in
cents. Selection prices are line totals: ``preDiscountPrice`` is the gross
line, ``price`` the line after discounts.
"""
import logging
import time as time_mod
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any

import pytz
import requests as http_requests
from cryptography.fernet import InvalidToken
from sqlalchemy.orm import Session

from possync.core.config import settings
from possync.core.errors import TransientSourceError
from possync.core.security import decrypt_value
from possync.models.connection import PosConnection
from possync.services.sources import RawBatch, RawOrder, RawOrderItem, RawPayment
from possync.services.sync_window import tenant_tz

logger = logging.getLogger(__name__)

# Toast allows 5 requests/second per restaurant
_PAGE_DELAY_SECONDS = 0.25
# Refresh the cached token when less than this is left
_TOKEN_MARGIN = timedelta(hours=1)


def _cents(value: Any) -> Decimal | None:
    if value is None:
        return None
    return Decimal(str(value)) / 100


def _parse_ts(value: str | None) -> datetime | None:
    if not value:
        return None
    # Toast sends e.g. 2026-03-01T19:04:11.000+0000
    for fmt in ("%Y-%m-%dT%H:%M:%S.%f%z", "%Y-%m-%dT%H:%M:%S%z"):
        try:
            return datetime.strptime(value, fmt)
        except ValueError:
            continue
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def _toast_ts(d: datetime) -> str:
    return d.astimezone(pytz.utc).strftime("%Y-%m-%dT%H:%M:%S.000+0000")


def _sales_category(selection: dict) -> str | None:
    cat = selection.get("salesCategory")
    if isinstance(cat, dict):
        return cat.get("name")
    return cat


def parse_orders(orders: list[dict], tz=pytz.utc) -> RawBatch:
    """Flatten ordersBulk JSON into a RawBatch. Dates are local to ``tz``."""
    batch = RawBatch()

    for order in orders:
        order_guid = order.get("guid")
        stamp = _parse_ts(order.get("closedDate")) or _parse_ts(order.get("openedDate"))
        if not order_guid or stamp is None:
            logger.warning("Skipping Toast order without guid or date: %r", order_guid)
            continue
        local = stamp.astimezone(tz)
        order_date, order_time = local.date(), local.time().replace(microsecond=0)
        checks = order.get("checks") or []

        tax = order.get("taxAmount")
        if tax is None and any(c.get("taxAmount") is not None for c in checks):
            tax = sum(c.get("taxAmount") or 0 for c in checks)

        batch.orders.append(RawOrder(
            external_order_id=order_guid,
            order_date=order_date,
            order_time=order_time,
            tax_amount=_cents(tax),
            raw_json=order,
        ))

        for check in checks:
            for sel in check.get("selections") or []:
                gross = sel.get("preDiscountPrice")
                net = sel.get("price")
                line_total = _cents(gross if gross is not None else net)
                discount = Decimal(0)
                if gross is not None and net is not None:
                    discount = max(_cents(gross) - _cents(net), Decimal(0))
                batch.items.append(RawOrderItem(
                    external_item_id=sel.get("guid"),
                    external_order_id=order_guid,
                    item_name=sel.get("displayName") or sel.get("itemName") or sel.get("name") or "Unknown Item",
                    quantity=Decimal(str(sel.get("quantity") or 1)),
                    line_total=line_total,
                    discount_amount=discount,
                    is_voided=bool(sel.get("voided")),
                    menu_category=_sales_category(sel),
                    raw_json=sel,
                ))

            for pay in check.get("payments") or []:
                refund = pay.get("refund") or {}
                batch.payments.append(RawPayment(
                    external_payment_id=pay.get("guid"),
                    external_order_id=order_guid,
                    payment_date=order_date,
                    status=pay.get("paymentStatus") or pay.get("status"),
                    payment_type=pay.get("type"),
                    tip_amount=_cents(pay.get("tipAmount")),
                    refund_amount=_cents(refund.get("refundAmount")),
                    refund_status=pay.get("refundStatus"),
                    raw_json=pay,
                ))

    return batch


class ToastApiSource:
    """PosSource over the Toast REST API. One instance caches one token per connection."""

    def __init__(self, session: http_requests.Session | None = None):
        self.http = session or http_requests.Session()
        self._tokens: dict[str, tuple[str, datetime]] = {}

    def _login(self, connection: PosConnection) -> str:
        now = datetime.now(pytz.utc)
        cached = self._tokens.get(connection.external_id)
        if cached and cached[1] - now > _TOKEN_MARGIN:
            return cached[0]

        if not connection.client_id or not connection.encrypted_client_secret:
            raise TransientSourceError(f"Toast connection for tenant {connection.tenant_id} has no credentials")
        try:
            secret = decrypt_value(connection.encrypted_client_secret)
        except InvalidToken as exc:
            raise TransientSourceError(f"Cannot decrypt Toast secret for tenant {connection.tenant_id}") from exc

        try:
            r = self.http.post(
                f"{settings.toast_api_base_url}/authentication/v1/authentication/login",
                json={
                    "clientId": connection.client_id,
                    "clientSecret": secret,
                    "userAccessType": "TOAST_MACHINE_CLIENT",
                },
                timeout=settings.toast_request_timeout_seconds,
            )
            r.raise_for_status()
            token = r.json()["token"]
            access = token["accessToken"]
        except (http_requests.RequestException, ValueError, KeyError) as exc:
            raise TransientSourceError(f"Toast login failed for tenant {connection.tenant_id}: {exc}") from exc

        expires = now + timedelta(seconds=int(token.get("expiresIn") or 0))
        self._tokens[connection.external_id] = (access, expires)
        return access

    def _get_page(self, connection: PosConnection, token: str, start: datetime, end: datetime, page: int) -> list:
        try:
            r = self.http.get(
                f"{settings.toast_api_base_url}/orders/v2/ordersBulk",
                params={
                    "startDate": _toast_ts(start),
                    "endDate": _toast_ts(end),
                    "pageSize": settings.toast_page_size,
                    "page": page,
                },
                headers={
                    "Authorization": f"Bearer {token}",
                    "Toast-Restaurant-External-ID": connection.external_id,
                },
                timeout=settings.toast_request_timeout_seconds,
            )
            r.raise_for_status()
            return r.json() or []
        except (http_requests.RequestException, ValueError) as exc:
            raise TransientSourceError(
                f"Toast ordersBulk page {page} failed for tenant {connection.tenant_id}: {exc}"
            ) from exc

    def fetch(self, db: Session, connection: PosConnection, window) -> RawBatch:
        tz = tenant_tz(connection)

        if window is not None:
            first, last = window.start_date, window.end_date
        else:
            last = datetime.now(tz).date()
            first = last - timedelta(days=settings.toast_full_history_days)

        start = tz.localize(datetime.combine(first, datetime.min.time()))
        end = tz.localize(datetime.combine(last + timedelta(days=1), datetime.min.time()))

        token = self._login(connection)
        orders: list[dict] = []
        page = 1
        while True:
            chunk = self._get_page(connection, token, start, end, page)
            orders.extend(chunk)
            if len(chunk) < settings.toast_page_size:
                break
            page += 1
            time_mod.sleep(_PAGE_DELAY_SECONDS)

        logger.info("Tenant %s: fetched %d Toast orders over %d pages", connection.tenant_id, len(orders), page)
        batch = parse_orders(orders, tz)
        if window is not None:
            batch.orders = [o for o in batch.orders if window.contains(o.order_date)]
            kept = {o.external_order_id for o in batch.orders}
            batch.items = [i for i in batch.items if i.external_order_id in kept]
            batch.payments = [p for p in batch.payments if window.contains(p.payment_date)]
        return batch
