"""
HTTP layer tests that stop before the database: auth, validation, health.
"""
import uuid
from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from possync.core.security import create_access_token
from possync.main import app
from possync.routers import sync as sync_router

TENANT = uuid.UUID("33333333-3333-3333-3333-333333333333")


@pytest.fixture
def client():
    return TestClient(app)


def _auth(role="admin", tenant_id=None):
    claims = {"sub": "ops@example.com", "role": role}
    if tenant_id:
        claims["tenant_id"] = str(tenant_id)
    return {"Authorization": f"Bearer {create_access_token(claims)}"}


class TestHealth:
    def test_health(self, client):
        r = client.get("/health")
        assert r.status_code == 200
        assert r.json() == {"status": "ok"}

    def test_redis_up(self, client):
        with patch("possync.routers.health.get_redis") as get_redis:
            r = client.get("/health/redis")
        assert r.status_code == 200
        get_redis.return_value.ping.assert_called_once()

    def test_redis_down_is_503(self, client):
        from redis.exceptions import ConnectionError as RedisConnectionError

        with patch("possync.routers.health.get_redis") as get_redis:
            get_redis.return_value.ping.side_effect = RedisConnectionError("refused")
            r = client.get("/health/redis")
        assert r.status_code == 503

    def test_security_headers(self, client):
        r = client.get("/health")
        assert r.headers["X-Content-Type-Options"] == "nosniff"
        assert r.headers["X-Frame-Options"] == "DENY"


class TestSyncTrigger:
    def test_requires_token(self, client):
        r = client.post(f"/api/v1/sync/{TENANT}", json={"start_date": "2026-03-01", "end_date": "2026-03-02"})
        assert r.status_code == 401

    def test_requires_admin(self, client):
        r = client.post(
            f"/api/v1/sync/{TENANT}",
            json={"start_date": "2026-03-01", "end_date": "2026-03-02"},
            headers=_auth(role="viewer", tenant_id=TENANT),
        )
        assert r.status_code == 403

    def test_rejects_inverted_range(self, client):
        r = client.post(
            f"/api/v1/sync/{TENANT}",
            json={"start_date": "2026-03-05", "end_date": "2026-03-01"},
            headers=_auth(),
        )
        assert r.status_code == 422

    def test_enqueues_scoped_sync(self, client):
        task = MagicMock(id="task-1")
        with patch.object(sync_router, "_require_active", return_value=None) as active, \
             patch.object(sync_router.sync_tenant, "delay", return_value=task) as delay:
            r = client.post(
                f"/api/v1/sync/{TENANT}",
                json={"start_date": "2026-03-01", "end_date": "2026-03-02"},
                headers=_auth(),
            )
        assert r.status_code == 202
        assert r.json()["task_id"] == "task-1"
        active.assert_called_once()
        delay.assert_called_once_with(str(TENANT), "2026-03-01", "2026-03-02")

    def test_full_resync_requires_admin(self, client):
        r = client.post(f"/api/v1/admin/resync/{TENANT}", headers=_auth(role="viewer"))
        assert r.status_code == 403


class TestSalesAccess:
    def test_other_tenant_forbidden(self, client):
        r = client.get(
            f"/api/v1/sales/{TENANT}/daily",
            params={"start_date": "2026-03-01", "end_date": "2026-03-02"},
            headers=_auth(role="viewer", tenant_id=uuid.uuid4()),
        )
        assert r.status_code == 403

    def test_invalid_token(self, client):
        r = client.get(
            f"/api/v1/sales/{TENANT}",
            params={"start_date": "2026-03-01", "end_date": "2026-03-02"},
            headers={"Authorization": "Bearer not-a-token"},
        )
        assert r.status_code == 401
