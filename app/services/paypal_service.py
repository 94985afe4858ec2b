import logging
from typing import Any, Dict, Optional

import requests

from app.core.config import settings
from app.core.errors import ProviderError

logger = logging.getLogger(__name__)


def _get_token(config) -> str:
    if not config.PAYPAL_CLIENT_ID or not config.PAYPAL_CLIENT_SECRET:
        logger.error("PayPal credentials not configured")
        raise ProviderError("paypal_auth_failed", 500)

    resp = requests.post(
        f"{config.PAYPAL_BASE_URL}/v1/oauth2/token",
        data={"grant_type": "client_credentials"},
        auth=(config.PAYPAL_CLIENT_ID, config.PAYPAL_CLIENT_SECRET),
        timeout=config.PROVIDER_TIMEOUT_SECONDS,
    )
    if resp.status_code >= 400:
        logger.error(f"PayPal token error: {resp.status_code}")
        raise ProviderError("paypal_auth_failed", 500)

    data = resp.json() if resp.content else {}
    token = data.get("access_token")
    if not token:
        raise ProviderError("paypal_auth_failed", 500)
    return token


def _approve_link(order: Dict[str, Any]) -> Optional[str]:
    for link in order.get("links") or []:
        if isinstance(link, dict) and link.get("rel") == "approve":
            return link.get("href")
    return None


def create_order(amount: float, currency: str = "USD", description: str = "Subscription", config=settings) -> Dict[str, Any]:
    """Create a CAPTURE order and return {id, approve_url}."""
    try:
        token = _get_token(config)
        resp = requests.post(
            f"{config.PAYPAL_BASE_URL}/v2/checkout/orders",
            json={
                "intent": "CAPTURE",
                "purchase_units": [
                    {
                        "amount": {"currency_code": str(currency), "value": f"{amount:.2f}"},
                        "description": description,
                    }
                ],
                "application_context": {
                    "return_url": config.PAYPAL_RETURN_URL,
                    "cancel_url": config.PAYPAL_CANCEL_URL,
                },
            },
            headers={"Authorization": f"Bearer {token}"},
            timeout=config.PROVIDER_TIMEOUT_SECONDS,
        )
    except requests.RequestException as e:
        logger.error(f"PayPal request failed: {e}")
        raise ProviderError("paypal_error", 500)

    order = resp.json() if resp.content else {}
    if resp.status_code >= 400:
        logger.error(f"PayPal create error {resp.status_code}: {order}")
        raise ProviderError("paypal_create_failed", 500)
    return {"id": order.get("id"), "approve_url": _approve_link(order)}
