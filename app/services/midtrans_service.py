import hashlib
import hmac
import logging
from typing import Any, Dict, Mapping

import requests

from app.core.config import settings
from app.core.errors import ProviderError
from app.models.enums import ORDER_PREFIXES, Provider
from app.services.provider_client import CheckoutRequest, CheckoutSession, ProviderClient

logger = logging.getLogger(__name__)


def notification_signature(order_id: str, status_code: str, gross_amount: str, server_key: str) -> str:
    """SHA-512 over order_id + status_code + gross_amount + server_key, hex encoded."""
    raw = f"{order_id}{status_code}{gross_amount}{server_key}"
    return hashlib.sha512(raw.encode("utf-8")).hexdigest()


class MidtransClient(ProviderClient):
    """Midtrans Snap checkout plus the core API status endpoint."""

    name = Provider.MIDTRANS.value
    order_prefix = ORDER_PREFIXES[Provider.MIDTRANS]
    error_kind = "midtrans_error"

    def __init__(self, config=settings):
        self.config = config

    def _server_key(self) -> str:
        key = self.config.MIDTRANS_SERVER_KEY
        if not key:
            logger.error("MIDTRANS_SERVER_KEY is not configured")
            raise ProviderError("midtrans_config_error", 500)
        return key

    def create_checkout(self, request: CheckoutRequest) -> CheckoutSession:
        server_key = self._server_key()
        payload = {
            "transaction_details": {
                "order_id": request.order_id,
                "gross_amount": int(round(request.amount)),
            },
            "credit_card": {"secure": True},
            "customer_details": {"email": request.email},
        }
        logger.info(f"Creating Midtrans transaction {request.order_id} amount={request.amount}")
        try:
            resp = requests.post(
                f"{self.config.midtrans_snap_base}/transactions",
                json=payload,
                auth=(server_key, ""),
                headers={"Accept": "application/json"},
                timeout=self.config.PROVIDER_TIMEOUT_SECONDS,
            )
        except requests.RequestException as e:
            logger.error(f"Midtrans create failed for {request.order_id}: {e}")
            raise ProviderError(self.error_kind)

        if resp.status_code >= 400:
            logger.error(f"Midtrans create error {resp.status_code} for {request.order_id}: {resp.text[:500]}")
            raise ProviderError(self.error_kind)

        data = resp.json() if resp.content else {}
        token = data.get("token")
        redirect_url = data.get("redirect_url")
        if not token or not redirect_url:
            logger.error(f"Midtrans response for {request.order_id} missing token/redirect_url")
            raise ProviderError(self.error_kind)
        return CheckoutSession(
            checkout_url=redirect_url,
            token=token,
            extra={
                "clientKey": self.config.MIDTRANS_CLIENT_KEY or "",
                "isProduction": self.config.MIDTRANS_IS_PRODUCTION,
            },
        )

    def verify_webhook(self, headers: Mapping[str, str], body: Dict[str, Any]) -> bool:
        server_key = self.config.MIDTRANS_SERVER_KEY or ""
        if not server_key:
            logger.error("MIDTRANS_SERVER_KEY is not configured, rejecting notification")
            return False
        received = str(body.get("signature_key") or "")
        if not received:
            return False
        expected = notification_signature(
            str(body.get("order_id") or ""),
            str(body.get("status_code") or ""),
            str(body.get("gross_amount") or ""),
            server_key,
        )
        return hmac.compare_digest(received, expected)

    def fetch_status(self, order_id: str) -> Dict[str, Any]:
        server_key = self._server_key()
        try:
            resp = requests.get(
                f"{self.config.midtrans_api_base}/{order_id}/status",
                auth=(server_key, ""),
                headers={"Accept": "application/json"},
                timeout=self.config.PROVIDER_TIMEOUT_SECONDS,
            )
        except requests.RequestException as e:
            logger.error(f"Midtrans status request failed for {order_id}: {e}")
            raise ProviderError(self.error_kind)

        if resp.status_code >= 400:
            logger.error(f"Midtrans status error {resp.status_code} for {order_id}: {resp.text[:500]}")
            raise ProviderError(self.error_kind)
        data = resp.json() if resp.content else {}
        if not isinstance(data, dict) or not data.get("order_id"):
            # Midtrans answers 200 with a status_code field for unknown orders
            logger.warning(f"Midtrans status for {order_id} has no order_id: {data}")
            raise ProviderError(self.error_kind)
        return data
