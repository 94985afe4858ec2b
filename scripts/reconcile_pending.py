"""
Re-run reconciliation for every PENDING order against the Midtrans status API.
Usage: python scripts/reconcile_pending.py [--dry-run]
"""
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from app.core.errors import ProviderError  # noqa: E402
from app.core.logging import configure_logging  # noqa: E402
from app.db.session import SessionLocal  # noqa: E402
from app.models.enums import OrderStatus  # noqa: E402
from app.repositories.payment_log_repository import PaymentLogRepository  # noqa: E402
from app.schemas.payment import MidtransStatus  # noqa: E402
from app.services.midtrans_service import MidtransClient  # noqa: E402
from app.services.reconciliation_service import ReconciliationService  # noqa: E402
from app.utils.order_ids import is_valid_order_id  # noqa: E402

logger = logging.getLogger("reconcile_pending")


def reconcile_pending(db, client, dry_run: bool = False) -> dict:
    """Poll each pending order once. Returns counters per outcome."""
    counters = {"checked": 0, "skipped": 0, "failed": 0}
    pending = PaymentLogRepository(db).list_by_status(OrderStatus.PENDING)
    logger.info(f"Found {len(pending)} pending payments")

    order_ids = [p.order_id for p in pending]
    for order_id in order_ids:
        # invoice orders are reconciled by webhook only
        if not is_valid_order_id(order_id) or not order_id.startswith(f"{client.order_prefix}-"):
            logger.info(f"Skipping non-midtrans order: {order_id}")
            counters["skipped"] += 1
            continue
        if dry_run:
            logger.info(f"[dry-run] would check {order_id}")
            counters["checked"] += 1
            continue
        try:
            doc = MidtransStatus.from_payload(client.fetch_status(order_id))
            result = ReconciliationService(db).reconcile(doc)
        except ProviderError as e:
            logger.error(f"Failed to check {order_id}: {e.kind}")
            counters["failed"] += 1
            continue
        except Exception as e:
            # reconcile has already rolled back; move on to the next order
            logger.error(f"Failed to reconcile {order_id}: {e}", exc_info=True)
            counters["failed"] += 1
            continue
        counters["checked"] += 1
        counters[result.outcome] = counters.get(result.outcome, 0) + 1
        logger.info(f"Result for {order_id}: {result.status} ({result.outcome})")
    return counters


if __name__ == "__main__":
    configure_logging()
    dry_run = "--dry-run" in sys.argv[1:]
    session = SessionLocal()
    try:
        summary = reconcile_pending(session, MidtransClient(), dry_run=dry_run)
    finally:
        session.close()
    print(summary)
    sys.exit(1 if summary["failed"] else 0)
