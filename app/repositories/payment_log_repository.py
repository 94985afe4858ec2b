from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from app.models.enums import OrderStatus
from app.models.payment_log import PaymentLog


class PaymentLogRepository:
    def __init__(self, db: Session):
        self.db = db

    def get(self, order_id: str) -> Optional[PaymentLog]:
        return self.db.query(PaymentLog).filter(PaymentLog.order_id == order_id).first()

    def get_for_update(self, order_id: str) -> Optional[PaymentLog]:
        """Row-locking read; the lock lives until the session commits or rolls back."""
        return (
            self.db.query(PaymentLog)
            .filter(PaymentLog.order_id == order_id)
            .with_for_update()
            .first()
        )

    def create(self, log: PaymentLog) -> PaymentLog:
        self.db.add(log)
        self.db.flush()
        return log

    def list_unpaid_since(self, since: datetime) -> List[PaymentLog]:
        return (
            self.db.query(PaymentLog)
            .filter(PaymentLog.status != OrderStatus.PAID.value, PaymentLog.created_at > since)
            .order_by(PaymentLog.created_at)
            .with_for_update()
            .all()
        )

    def find_open_with_coupon(self, user_id: int, coupon_code: str, since: Optional[datetime] = None) -> Optional[PaymentLog]:
        """Unpaid (PENDING or CHALLENGE) order of user_id that carries coupon_code."""
        query = self.db.query(PaymentLog).filter(
            PaymentLog.user_id == user_id,
            PaymentLog.coupon_code == coupon_code,
            PaymentLog.status.in_([OrderStatus.PENDING.value, OrderStatus.CHALLENGE.value]),
        )
        if since is not None:
            query = query.filter(PaymentLog.created_at >= since)
        return query.first()

    def list_by_status(self, status: OrderStatus) -> List[PaymentLog]:
        return (
            self.db.query(PaymentLog)
            .filter(PaymentLog.status == status.value)
            .order_by(PaymentLog.created_at)
            .all()
        )

    def list_rescued(self, limit: int = 100) -> List[PaymentLog]:
        return (
            self.db.query(PaymentLog)
            .filter(PaymentLog.rescued_from.isnot(None))
            .order_by(PaymentLog.created_at.desc())
            .limit(limit)
            .all()
        )
