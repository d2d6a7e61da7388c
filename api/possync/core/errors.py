"""Sync error taxonomy.

Every failure is isolated at the smallest scope that makes sense:

    TransformError          one ledger row   (row skipped)
    AggregationMismatch     one date         (aggregate left untouched)
    TransientSourceError    one tenant run   (rolled back, retried next tick)
    SyncInProgress          one tenant run   (skipped this tick)
    ConnectionNotFound      one tenant       (skipped silently)
    WindowComputationError  window only      (90-day default used)
"""
import uuid
from datetime import date


class SyncError(Exception):
    """Base class for sync pipeline failures."""


class ConnectionNotFound(SyncError):
    def __init__(self, tenant_id: uuid.UUID):
        super().__init__(f"No active POS connection for tenant {tenant_id}")
        self.tenant_id = tenant_id


class TransientSourceError(SyncError):
    """Raw data could not be fetched from the POS source."""


class WindowComputationError(SyncError):
    """last_sync_time is missing or unusable."""


class TransformError(SyncError):
    def __init__(self, reason: str, external_id: str | None = None):
        msg = f"{external_id}: {reason}" if external_id else reason
        super().__init__(msg)
        self.reason = reason
        self.external_id = external_id


class AggregationMismatch(SyncError):
    def __init__(self, tenant_id: uuid.UUID, sale_date: date, reason: str):
        super().__init__(f"Aggregate mismatch for tenant {tenant_id} on {sale_date}: {reason}")
        self.tenant_id = tenant_id
        self.sale_date = sale_date
        self.reason = reason


class SyncInProgress(SyncError):
    def __init__(self, tenant_id: uuid.UUID):
        super().__init__(f"A sync is already running for tenant {tenant_id}")
        self.tenant_id = tenant_id
