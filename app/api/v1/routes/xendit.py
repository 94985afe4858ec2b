import logging
from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, Request
from sqlalchemy.orm import Session

from app.api.v1.dependencies import get_current_user, get_notifier, get_xendit_client
from app.core.config import settings
from app.core.errors import PaymentError
from app.db.session import get_db
from app.models.user import User
from app.repositories.webhook_log_repository import WebhookLogRepository
from app.schemas.payment import CheckoutRequest, XenditCallback, XenditCheckoutResponse
from app.services.checkout_service import CheckoutService
from app.services.notification_service import NotificationService
from app.services.reconciliation_service import ReconciliationService
from app.services.webhook_log_service import WebhookLogService
from app.services.xendit_service import XenditClient

logger = logging.getLogger(__name__)

router = APIRouter(tags=["xendit"])


@router.post("/create", response_model=XenditCheckoutResponse)
def create_invoice(
    body: CheckoutRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    client: XenditClient = Depends(get_xendit_client),
):
    """Create a Xendit invoice for a plan (IDR) and a PENDING order."""
    service = CheckoutService(db, client, settings.XENDIT_MIN_AMOUNT)
    created = service.create_order(current_user, body.plan, body.email, body.coupon_code)
    return XenditCheckoutResponse(invoice_url=created.session.checkout_url)


@router.post("/webhook")
def xendit_webhook(
    request: Request,
    payload: Dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
    client: XenditClient = Depends(get_xendit_client),
    notifier: NotificationService = Depends(get_notifier),
):
    """Invoice callback. Authenticated by the x-callback-token header."""
    if not client.verify_webhook(request.headers, payload):
        logger.warning("Xendit callback rejected: invalid callback token")
        raise PaymentError("unauthorized", 401)

    callback = XenditCallback.from_payload(payload)
    WebhookLogService(WebhookLogRepository(db)).record(callback.event_name, payload)

    try:
        result = ReconciliationService(db, notifier=notifier).reconcile(callback)
    except Exception:
        raise PaymentError("xendit_webhook_error", 500)

    logger.info(f"Xendit callback {callback.order_id or '-'} -> {result.outcome}")
    return {"ok": True}
