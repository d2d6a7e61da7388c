"""
Toast client tests: JSON parsing is pure; HTTP goes through a mocked
requests session.
"""
import uuid
from datetime import date
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest
import requests

from possync.core.errors import TransientSourceError
from possync.services import toast_client
from possync.services.sync_window import SyncWindow
from possync.services.toast_client import ToastApiSource, parse_orders
from possync.services.transform import transform_batch

ORDER = {
    "guid": "order-1",
    "closedDate": "2026-03-01T19:04:11.000+0000",
    "taxAmount": 160,
    "checks": [
        {
            "selections": [
                {"guid": "sel-1", "displayName": "Burger", "quantity": 2,
                 "preDiscountPrice": 2000, "price": 1800, "salesCategory": {"name": "Food"}},
                {"guid": "sel-2", "displayName": "Wine", "quantity": 1,
                 "preDiscountPrice": 900, "price": 900, "voided": True},
            ],
            "payments": [
                {"guid": "pay-1", "type": "CREDIT", "paymentStatus": "CAPTURED", "tipAmount": 250},
                {"guid": "pay-2", "type": "CREDIT", "paymentStatus": "DENIED", "tipAmount": 250},
                {"guid": "pay-3", "type": "CASH", "paymentStatus": "CAPTURED",
                 "refundStatus": "FULL", "refund": {"refundAmount": 400}},
                {"guid": "pay-4", "type": "CASH", "paymentStatus": "CAPTURED",
                 "refundStatus": "NONE", "refund": {"refundAmount": 300}},
            ],
        }
    ],
}


def _conn():
    return SimpleNamespace(
        tenant_id=uuid.uuid4(),
        external_id="rest-guid",
        client_id="client",
        encrypted_client_secret="secret-token",
        tenant=SimpleNamespace(timezone="UTC"),
    )


def _response(payload, status=200):
    r = MagicMock()
    r.status_code = status
    r.json.return_value = payload
    if status >= 400:
        r.raise_for_status.side_effect = requests.HTTPError(f"{status} error")
    return r


class TestParseOrders:
    def test_amounts_are_cents(self):
        batch = parse_orders([ORDER])
        (order,) = batch.orders
        assert order.order_date == date(2026, 3, 1)
        assert order.tax_amount == Decimal("1.60")

    def test_selection_line_totals_and_discount(self):
        burger, wine = parse_orders([ORDER]).items
        assert burger.line_total == Decimal("20")
        assert burger.discount_amount == Decimal("2")
        assert burger.quantity == Decimal("2")
        assert burger.menu_category == "Food"
        assert wine.is_voided is True

    def test_payments(self):
        p1, p2, p3, p4 = parse_orders([ORDER]).payments
        assert (p1.status, p1.tip_amount) == ("CAPTURED", Decimal("2.5"))
        assert p2.status == "DENIED"
        assert p3.refund_amount == Decimal("4")
        assert p3.refund_status == "FULL"
        assert p4.refund_status == "NONE"
        assert p3.tip_amount is None

    def test_local_date_uses_tenant_timezone(self):
        import pytz
        batch = parse_orders([ORDER], pytz.timezone("Asia/Tokyo"))
        assert batch.orders[0].order_date == date(2026, 3, 2)

    def test_order_without_date_skipped(self):
        assert parse_orders([{"guid": "x", "checks": []}]).orders == []

    def test_end_to_end_rows(self):
        result = transform_batch(uuid.uuid4(), "toast", parse_orders([ORDER]))
        totals = {}
        for row in result.rows:
            totals[row.adjustment_type] = totals.get(row.adjustment_type, 0) + row.total_price
        assert totals == {
            "revenue": Decimal("20"),
            "discount": Decimal("-2"),
            "void": Decimal("-9"),
            "tax": Decimal("1.6"),
            "tip": Decimal("2.5"),
            "refund": Decimal("-4"),
        }


class TestToastApiSource:
    @pytest.fixture(autouse=True)
    def plain_secret(self):
        with patch.object(toast_client, "decrypt_value", return_value="plain"), \
             patch.object(toast_client.time_mod, "sleep"):
            yield

    def test_login_then_paginate(self, monkeypatch):
        monkeypatch.setattr(toast_client.settings, "toast_page_size", 1)
        http = MagicMock()
        http.post.return_value = _response({"token": {"accessToken": "tok", "expiresIn": 86400}})
        http.get.side_effect = [_response([ORDER]), _response([])]

        batch = ToastApiSource(http).fetch(None, _conn(), SyncWindow(date(2026, 3, 1), date(2026, 3, 1)))

        assert len(batch.orders) == 1
        assert http.post.call_args.kwargs["json"]["clientSecret"] == "plain"
        pages = [c.kwargs["params"]["page"] for c in http.get.call_args_list]
        assert pages == [1, 2]
        headers = http.get.call_args.kwargs["headers"]
        assert headers["Authorization"] == "Bearer tok"
        assert headers["Toast-Restaurant-External-ID"] == "rest-guid"

    def test_orders_outside_window_dropped(self):
        http = MagicMock()
        http.post.return_value = _response({"token": {"accessToken": "tok", "expiresIn": 86400}})
        http.get.return_value = _response([ORDER])

        batch = ToastApiSource(http).fetch(None, _conn(), SyncWindow(date(2026, 3, 2), date(2026, 3, 3)))
        assert batch.orders == []
        assert batch.items == []
        assert batch.payments == []

    def test_token_is_cached(self):
        http = MagicMock()
        http.post.return_value = _response({"token": {"accessToken": "tok", "expiresIn": 86400}})
        http.get.return_value = _response([])
        source, conn = ToastApiSource(http), _conn()
        window = SyncWindow(date(2026, 3, 1), date(2026, 3, 1))

        source.fetch(None, conn, window)
        source.fetch(None, conn, window)
        assert http.post.call_count == 1

    def test_login_failure_is_transient(self):
        http = MagicMock()
        http.post.return_value = _response({}, status=401)
        with pytest.raises(TransientSourceError, match="login failed"):
            ToastApiSource(http).fetch(None, _conn(), SyncWindow(date(2026, 3, 1), date(2026, 3, 1)))

    def test_page_failure_is_transient(self):
        http = MagicMock()
        http.post.return_value = _response({"token": {"accessToken": "tok", "expiresIn": 86400}})
        http.get.side_effect = requests.ConnectionError("reset")
        with pytest.raises(TransientSourceError, match="ordersBulk"):
            ToastApiSource(http).fetch(None, _conn(), SyncWindow(date(2026, 3, 1), date(2026, 3, 1)))

    def test_missing_credentials(self):
        conn = _conn()
        conn.encrypted_client_secret = None
        with pytest.raises(TransientSourceError, match="no credentials"):
            ToastApiSource(MagicMock()).fetch(None, conn, SyncWindow(date(2026, 3, 1), date(2026, 3, 1)))
