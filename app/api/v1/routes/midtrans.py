import logging
from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, Request
from sqlalchemy.orm import Session

from app.api.v1.dependencies import get_current_user, get_midtrans_client, get_notifier
from app.core.config import settings
from app.core.errors import PaymentError
from app.db.session import get_db
from app.models.user import User
from app.repositories.payment_log_repository import PaymentLogRepository
from app.repositories.webhook_log_repository import WebhookLogRepository
from app.schemas.payment import CheckoutRequest, MidtransCheckResponse, MidtransCheckoutResponse, MidtransStatus, StatusResponse
from app.services.checkout_service import CheckoutService
from app.services.midtrans_service import MidtransClient
from app.services.notification_service import NotificationService
from app.services.reconciliation_service import ReconcileResult, ReconciliationService
from app.services.webhook_log_service import WebhookLogService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["midtrans"])


@router.post("/create", response_model=MidtransCheckoutResponse)
def create_transaction(
    body: CheckoutRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    client: MidtransClient = Depends(get_midtrans_client),
):
    """Create a Snap transaction for a plan (IDR) and a PENDING order."""
    service = CheckoutService(db, client, settings.MIDTRANS_MIN_AMOUNT)
    created = service.create_order(current_user, body.plan, body.email, body.coupon_code)
    extra = created.session.extra
    return MidtransCheckoutResponse(
        redirect_url=created.session.checkout_url,
        token=created.session.token,
        client_key=extra.get("clientKey", ""),
        is_production=bool(extra.get("isProduction", False)),
    )


def _poll(order_id: str, db: Session, client: MidtransClient, notifier: NotificationService) -> ReconcileResult:
    doc = MidtransStatus.from_payload(client.fetch_status(order_id))
    return ReconciliationService(db, notifier=notifier).reconcile(doc)


@router.post("/webhook")
def midtrans_webhook(
    request: Request,
    payload: Dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
    client: MidtransClient = Depends(get_midtrans_client),
    notifier: NotificationService = Depends(get_notifier),
):
    """HTTP notification. The signature is checked, then the canonical status is fetched."""
    if not client.verify_webhook(request.headers, payload):
        logger.warning(f"Midtrans notification rejected: bad signature for order {payload.get('order_id')}")
        raise PaymentError("unauthorized", 401)

    notification = MidtransStatus.from_payload(payload)
    WebhookLogService(WebhookLogRepository(db)).record(notification.event_name, payload)

    try:
        result = _poll(notification.order_id, db, client, notifier)
    except Exception:
        logger.error(f"Midtrans notification for {notification.order_id} failed", exc_info=True)
        raise PaymentError("midtrans_webhook_error", 500)

    logger.info(f"Midtrans notification {notification.order_id} -> {result.outcome}")
    return {"ok": True}


@router.get("/status/{order_id}", response_model=StatusResponse)
def midtrans_status(
    order_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    client: MidtransClient = Depends(get_midtrans_client),
    notifier: NotificationService = Depends(get_notifier),
):
    """On-demand poll: query Midtrans and reconcile exactly like a webhook."""
    result = _poll(order_id, db, client, notifier)
    return StatusResponse(status=result.status or result.target.value)


@router.get("/check/{order_id}", response_model=MidtransCheckResponse)
def midtrans_check(
    order_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    client: MidtransClient = Depends(get_midtrans_client),
    notifier: NotificationService = Depends(get_notifier),
):
    """Poll and reconcile, then report the stored status next to the raw Midtrans one."""
    doc = MidtransStatus.from_payload(client.fetch_status(order_id))
    ReconciliationService(db, notifier=notifier).reconcile(doc)
    order = PaymentLogRepository(db).get(order_id)
    return MidtransCheckResponse(
        ok=True,
        status=order.status if order is not None else None,
        midtrans_status=doc.transaction_status or None,
    )
