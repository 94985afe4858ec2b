import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

from fastapi import status

from app.core.config import settings
from app.core.errors import PaymentError
from app.core.security import can_manage_coupons
from app.models.coupon import Coupon, CouponUsage
from app.repositories.coupon_repository import CouponRepository
from app.services.pricing_service import PricingService
from app.utils.dates import as_utc, utcnow

logger = logging.getLogger(__name__)

MIN_PERCENT = 1
MAX_PERCENT = 20
MIN_DURATION_DAYS = 1
MAX_DURATION_DAYS = 14


@dataclass(frozen=True)
class Quote:
    final: float
    percent: float
    amount_off: float


def normalize_code(code) -> str:
    return str(code or "").strip().upper()


def apply_discount(base: float, percent: float = 0, amount_off: float = 0) -> float:
    """Percent first, then a flat amount, clamped at zero."""
    amount = float(base)
    if percent:
        amount = max(0.0, amount * (1 - float(percent) / 100))
    if amount_off:
        amount = max(0.0, amount - float(amount_off))
    return amount


class CouponService:
    def __init__(self, repo: CouponRepository, pricing: PricingService, config=settings):
        self.repo = repo
        self.pricing = pricing
        self.config = config

    def _active_coupon(self, code: str, now: datetime) -> Optional[Coupon]:
        coupon = self.repo.get(code) if code else None
        if coupon is None or as_utc(coupon.expires_at) <= now:
            return None
        return coupon

    def resolve(self, user_id: int, code) -> Coupon:
        """Return the usable coupon for this user or raise invalid_code / already_used."""
        now = utcnow()
        key = normalize_code(code)
        coupon = self._active_coupon(key, now)
        if coupon is None:
            raise PaymentError("invalid_code")
        if self.repo.get_active_usage(key, user_id, now) is not None:
            raise PaymentError("already_used")
        return coupon

    def quote(self, user_id: int, plan, code) -> Quote:
        """USD quote for plan with code applied, rounded to cents."""
        coupon = self.resolve(user_id, code)
        percent = float(coupon.percent or 0)
        amount_off = float(coupon.amount_off or 0)
        final = apply_discount(self.pricing.current_usd(plan), percent, amount_off)
        return Quote(final=round(final, 2), percent=percent, amount_off=amount_off)

    def quote_idr(self, user_id: int, plan, code) -> Quote:
        """IDR charge for plan. amountOff is USD and converted at the fixed IDR_PER_USD rate."""
        base = self.pricing.current_idr(plan)
        if not normalize_code(code):
            return Quote(final=float(round(base)), percent=0, amount_off=0)
        coupon = self.resolve(user_id, code)
        percent = float(coupon.percent or 0)
        amount_off = float(coupon.amount_off or 0)
        final = apply_discount(base, percent, amount_off * self.config.IDR_PER_USD)
        # rupiah has no minor unit on either gateway
        return Quote(final=float(round(final)), percent=percent, amount_off=amount_off)

    def upsert(self, requester, code, percent=None, amount_off=None, duration_days=None) -> Coupon:
        if not can_manage_coupons(requester):
            raise PaymentError("forbidden_user", status.HTTP_403_FORBIDDEN)

        key = normalize_code(code)
        if not key:
            raise PaymentError("invalid_code")
        if percent is None and amount_off is None:
            raise PaymentError("missing_fields")
        if percent is not None and amount_off is not None:
            raise PaymentError("invalid_payload")
        if percent is not None:
            if not _is_whole_number(percent) or percent < MIN_PERCENT or percent > MAX_PERCENT:
                raise PaymentError("invalid_percent")
        if amount_off is not None:
            if not _is_number(amount_off) or amount_off <= 0:
                raise PaymentError("invalid_amount_off")
        if (
            duration_days is None
            or not _is_whole_number(duration_days)
            or duration_days < MIN_DURATION_DAYS
            or duration_days > MAX_DURATION_DAYS
        ):
            raise PaymentError("invalid_duration")

        try:
            # Re-creating a code purges the old row and every usage recorded against it.
            existing = self.repo.get(key)
            if existing is not None:
                self.repo.delete(existing)
                logger.info(f"Coupon {key} replaced, previous usages purged")

            now = utcnow()
            days = int(duration_days)
            coupon = self.repo.add(
                Coupon(
                    code=key,
                    percent=int(percent) if percent is not None else None,
                    amount_off=float(amount_off) if amount_off is not None else None,
                    duration=days,
                    expires_at=now + timedelta(days=days),
                    created_at=now,
                )
            )
            self.repo.db.commit()
        except Exception:
            self.repo.db.rollback()
            raise
        logger.info(f"Coupon {key} created by user {requester.id}, expires {coupon.expires_at}")
        return coupon

    def delete(self, requester, code) -> None:
        if not can_manage_coupons(requester):
            raise PaymentError("forbidden_user", status.HTTP_403_FORBIDDEN)
        key = normalize_code(code)
        if not key:
            raise PaymentError("invalid_code")
        coupon = self.repo.get(key)
        if coupon is None:
            return
        self.repo.delete(coupon)
        self.repo.db.commit()
        logger.info(f"Coupon {key} deleted by user {requester.id}")

    def list_active(self, requester) -> List[Tuple[Coupon, int]]:
        if not can_manage_coupons(requester):
            raise PaymentError("forbidden_user", status.HTTP_403_FORBIDDEN)
        return self.repo.list_active_with_usage_count(utcnow())

    def record_usage(self, user_id: int, code, expires_at: Optional[datetime] = None) -> Optional[CouponUsage]:
        """Mark code as used by user_id. Does not commit; the caller owns the transaction."""
        key = normalize_code(code)
        now = utcnow()
        coupon = self.repo.get(key) if key else None
        if coupon is None:
            logger.warning(f"Coupon usage for unknown code '{key}' (user {user_id}) not recorded")
            return None
        if self.repo.get_active_usage(key, user_id, now) is not None:
            return None
        return self.repo.add_usage(
            CouponUsage(code=key, user_id=user_id, expires_at=expires_at or coupon.expires_at)
        )


def _is_number(value) -> bool:
    try:
        return not math.isnan(float(value))
    except (TypeError, ValueError):
        return False


def _is_whole_number(value) -> bool:
    return _is_number(value) and math.isfinite(float(value)) and float(value).is_integer()
