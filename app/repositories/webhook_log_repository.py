from sqlalchemy.orm import Session

from app.models.webhook_log import WebhookLog


class WebhookLogRepository:
    def __init__(self, db: Session):
        self.db = db

    def append(self, event: str, payload: str) -> WebhookLog:
        entry = WebhookLog(event=event, payload=payload)
        self.db.add(entry)
        self.db.flush()
        return entry
