import json
import logging
from typing import Any, Optional

from app.models.webhook_log import WebhookLog
from app.repositories.webhook_log_repository import WebhookLogRepository

logger = logging.getLogger(__name__)


class WebhookLogService:
    def __init__(self, repo: WebhookLogRepository):
        self.repo = repo

    def record(self, event: str, payload: Any) -> Optional[WebhookLog]:
        """Persist the raw callback in its own commit. Failures are logged, never raised."""
        try:
            raw = payload if isinstance(payload, str) else json.dumps(payload, ensure_ascii=False, default=str)
            entry = self.repo.append(event or "", raw)
            self.repo.db.commit()
            return entry
        except Exception as e:
            self.repo.db.rollback()
            logger.error(f"Failed to persist webhook log (event={event}): {e}")
            return None
