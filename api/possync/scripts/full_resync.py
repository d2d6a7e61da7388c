"""
Rebuild one tenant's ledger and daily aggregates from all POS history.

Admin use only; it replaces every unified_sales row for the tenant's POS
system, so run it off-hours:

    python -m possync.scripts.full_resync <tenant_id>

Exits 0 on success, 1 on failure, 2 if a sync is already running for the tenant.
"""
import argparse
import logging
import sys
import uuid

from possync.core.database import sync_session_factory
from possync.core.errors import ConnectionNotFound, SyncInProgress
from possync.services.full_resync import resync

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger("full_resync")


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description=__doc__.strip().splitlines()[0])
    parser.add_argument("tenant_id", type=uuid.UUID)
    args = parser.parse_args(argv)

    with sync_session_factory()() as db:
        try:
            result = resync(db, args.tenant_id)
        except ConnectionNotFound as exc:
            logger.error("%s", exc)
            return 1
        except SyncInProgress as exc:
            logger.error("%s; try again once it finishes", exc)
            return 2
        except Exception:
            logger.exception("Full resync of tenant %s failed", args.tenant_id)
            return 1

    for key, value in result.summary().items():
        logger.info("  %-18s %s", key, value)
    return 0


if __name__ == "__main__":
    sys.exit(main())
