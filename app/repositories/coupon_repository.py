from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import and_, func
from sqlalchemy.orm import Session

from app.models.coupon import Coupon, CouponUsage


class CouponRepository:
    def __init__(self, db: Session):
        self.db = db

    def get(self, code: str) -> Optional[Coupon]:
        return self.db.query(Coupon).filter(Coupon.code == code).first()

    def add(self, coupon: Coupon) -> Coupon:
        self.db.add(coupon)
        self.db.flush()
        return coupon

    def delete(self, coupon: Coupon) -> None:
        """Delete a coupon; the ORM cascade removes its usages."""
        self.db.delete(coupon)
        self.db.flush()

    def list_active_with_usage_count(self, now: datetime) -> List[Tuple[Coupon, int]]:
        usage_count = (
            self.db.query(CouponUsage.code, func.count(CouponUsage.id).label("used"))
            .filter(CouponUsage.expires_at > now)
            .group_by(CouponUsage.code)
            .subquery()
        )
        rows = (
            self.db.query(Coupon, func.coalesce(usage_count.c.used, 0))
            .outerjoin(usage_count, usage_count.c.code == Coupon.code)
            .filter(Coupon.expires_at > now)
            .order_by(Coupon.created_at.desc())
            .all()
        )
        return [(coupon, int(used)) for coupon, used in rows]

    def get_active_usage(self, code: str, user_id: int, now: datetime) -> Optional[CouponUsage]:
        return (
            self.db.query(CouponUsage)
            .filter(
                and_(
                    CouponUsage.code == code,
                    CouponUsage.user_id == user_id,
                    CouponUsage.expires_at > now,
                )
            )
            .first()
        )

    def add_usage(self, usage: CouponUsage) -> CouponUsage:
        self.db.add(usage)
        self.db.flush()
        return usage
