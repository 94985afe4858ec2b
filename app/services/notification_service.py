import logging
from typing import Dict, Optional

import requests

from app.core.config import settings

logger = logging.getLogger(__name__)


def format_idr(amount: Optional[float]) -> str:
    """30000 -> 'Rp 30.000' (id-ID grouping)."""
    return "Rp " + f"{int(round(amount or 0)):,}".replace(",", ".")


class NotificationService:
    """Posts one audit line per reconciliation to a Discord-compatible webhook.

    Never raises: reconciliation has already committed when this runs.
    """

    def __init__(self, webhook_url: Optional[str] = None, timeout: Optional[float] = None):
        self.webhook_url = webhook_url if webhook_url is not None else settings.DISCORD_WEBHOOK_URL
        self.timeout = timeout or settings.PROVIDER_TIMEOUT_SECONDS

    @property
    def enabled(self) -> bool:
        return bool(self.webhook_url)

    def build_content(
        self,
        provider: str,
        order_id: str,
        status: str,
        amount: Optional[float],
        email: str = "",
        metadata: Optional[Dict[str, str]] = None,
    ) -> str:
        lines = [
            f"{provider.capitalize()} Update: {order_id or '-'}",
            f"Status: {status or '-'}",
            f"Amount: {format_idr(amount)}",
            f"Payer: {email or '-'}",
        ]
        for label, value in (metadata or {}).items():
            if value:
                lines.append(f"{label}: {value}")
        return "\n".join(lines)

    def send(self, content: str) -> bool:
        if not self.enabled:
            return False
        try:
            resp = requests.post(self.webhook_url, json={"content": content}, timeout=self.timeout)
        except requests.RequestException as e:
            logger.error(f"Audit webhook error: {e}")
            return False
        if resp.status_code >= 400:
            logger.error(f"Audit webhook failed: status={resp.status_code} body={resp.text[:200]}")
            return False
        logger.info(f"Audit webhook sent: status={resp.status_code}")
        return True
