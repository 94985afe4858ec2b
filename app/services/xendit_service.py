import hmac
import logging
from typing import Any, Dict, Mapping

import requests

from app.core.config import settings
from app.core.errors import ProviderError
from app.models.enums import ORDER_PREFIXES, Provider
from app.services.provider_client import CheckoutRequest, CheckoutSession, ProviderClient

logger = logging.getLogger(__name__)


class XenditClient(ProviderClient):
    """Xendit invoices. Reconciliation for this provider is webhook-only."""

    name = Provider.XENDIT.value
    order_prefix = ORDER_PREFIXES[Provider.XENDIT]
    error_kind = "xendit_error"

    def __init__(self, config=settings):
        self.config = config

    def create_checkout(self, request: CheckoutRequest) -> CheckoutSession:
        secret = self.config.XENDIT_SECRET_KEY
        if not secret:
            logger.error("XENDIT_SECRET_KEY is not configured")
            raise ProviderError("xendit_config_error", 500)

        url = f"{self.config.XENDIT_API_BASE}/v2/invoices"
        payload = {
            "external_id": request.order_id,
            "amount": request.amount,
            "payer_email": request.email,
            "description": request.description,
            "should_send_email": True,
        }
        logger.info(f"Creating Xendit invoice {request.order_id} amount={request.amount}")
        try:
            resp = requests.post(
                url,
                json=payload,
                auth=(secret, ""),
                timeout=self.config.PROVIDER_TIMEOUT_SECONDS,
            )
        except requests.RequestException as e:
            logger.error(f"Xendit invoice request failed for {request.order_id}: {e}")
            raise ProviderError(self.error_kind)

        if resp.status_code >= 400:
            logger.error(f"Xendit invoice error {resp.status_code} for {request.order_id}: {resp.text[:500]}")
            raise ProviderError(self.error_kind)

        data = resp.json() if resp.content else {}
        invoice_url = data.get("invoice_url")
        if not invoice_url:
            logger.error(f"Xendit response for {request.order_id} has no invoice_url")
            raise ProviderError(self.error_kind)
        return CheckoutSession(checkout_url=invoice_url, token=data.get("id"))

    def verify_webhook(self, headers: Mapping[str, str], body: Dict[str, Any]) -> bool:
        expected = self.config.XENDIT_CALLBACK_TOKEN or ""
        received = headers.get("x-callback-token") or ""
        if not expected:
            logger.error("XENDIT_CALLBACK_TOKEN is not configured, rejecting callback")
            return False
        return hmac.compare_digest(str(received), expected)
