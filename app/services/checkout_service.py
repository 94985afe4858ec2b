import logging
from dataclasses import dataclass

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import PaymentError
from app.models.enums import OrderStatus, Plan
from app.models.payment_log import PaymentLog
from app.models.user import User
from app.repositories.coupon_repository import CouponRepository
from app.repositories.payment_log_repository import PaymentLogRepository
from app.repositories.pricing_repository import PricingRepository
from app.repositories.user_repository import UserRepository
from app.services.coupon_service import CouponService, normalize_code
from app.services.pricing_service import PricingService
from app.services.provider_client import CheckoutRequest, CheckoutSession, ProviderClient
from app.utils.order_ids import build_order_id

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CreatedOrder:
    order: PaymentLog
    session: CheckoutSession


class CheckoutService:
    def __init__(self, db: Session, provider: ProviderClient, min_amount: float, config=settings):
        self.db = db
        self.provider = provider
        self.min_amount = min_amount
        self.config = config
        self.orders = PaymentLogRepository(db)
        self.users = UserRepository(db)
        self.pricing = PricingService(PricingRepository(db))
        self.coupons = CouponService(CouponRepository(db), self.pricing, config)

    def _ensure_no_open_order_with(self, user_id: int, code: str) -> None:
        # usage is only recorded on PAID; an unpaid order already holds the code
        coupon = self.coupons.repo.get(code)
        since = coupon.created_at if coupon is not None else None
        existing = self.orders.find_open_with_coupon(user_id, code, since=since)
        if existing is not None:
            logger.info(f"Coupon {code} already held by open order {existing.order_id} (user {user_id})")
            raise PaymentError("already_used")

    def create_order(self, requester: User, plan, email, coupon_code=None) -> CreatedOrder:
        """Price the plan, open a hosted checkout, then persist a PENDING order.

        The order row is only written after the provider accepted the
        checkout, so provider failures leave nothing behind.
        """
        if not plan or not email:
            raise PaymentError("missing_fields")
        parsed = Plan.parse(plan)
        if parsed is None:
            raise PaymentError("invalid_plan")
        email = str(email).strip().lower()

        # The order belongs to the account of the payer email when it exists.
        owner = self.users.get_by_email(email) or requester
        code = normalize_code(coupon_code) or None
        quote = self.coupons.quote_idr(owner.id, parsed, code)
        if code:
            self._ensure_no_open_order_with(owner.id, code)
        if quote.final < self.min_amount:
            logger.info(f"Rejected {self.provider.name} order for {parsed.value}: amount {quote.final} below minimum")
            raise PaymentError("invalid_amount")

        order_id = build_order_id(self.provider.order_prefix, parsed.value)
        session = self.provider.create_checkout(
            CheckoutRequest(
                order_id=order_id,
                amount=quote.final,
                email=email,
                description=f"Subscription Plan: {parsed.value}",
            )
        )

        try:
            order = self.orders.create(
                PaymentLog(
                    order_id=order_id,
                    user_id=owner.id,
                    plan=parsed.value,
                    amount=quote.final,
                    coupon_code=code,
                    status=OrderStatus.PENDING.value,
                )
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            logger.error(f"Checkout {order_id} created at {self.provider.name} but order row failed", exc_info=True)
            raise
        logger.info(
            f"Order {order_id} created: user={owner.id} plan={parsed.value} amount={quote.final} coupon={code or '-'}"
        )
        return CreatedOrder(order=order, session=session)
