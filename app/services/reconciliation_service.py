"""Provider notification -> PaymentLog state machine.

Every decision for one order id is taken inside a single session
transaction that holds a row lock on the PaymentLog (SELECT ... FOR UPDATE),
so concurrent webhook deliveries and status polls for the same order
serialize on the database and only the first PAID transition grants
anything.
"""
import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional, Tuple

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.security import has_paid_role
from app.models.enums import OrderStatus
from app.models.payment_log import PaymentLog
from app.models.user import User
from app.repositories.coupon_repository import CouponRepository
from app.repositories.payment_log_repository import PaymentLogRepository
from app.repositories.pricing_repository import PricingRepository
from app.repositories.user_repository import UserRepository
from app.repositories.webhook_log_repository import WebhookLogRepository
from app.schemas.payment import MidtransStatus, ProviderNotification, XenditCallback
from app.services.coupon_service import CouponService
from app.services.notification_service import NotificationService
from app.services.pricing_service import PricingService
from app.services.subscription_service import apply_roles, compute_subscription_change
from app.services.webhook_log_service import WebhookLogService
from app.utils.dates import utcnow
from app.utils.order_ids import decode_plan

logger = logging.getLogger(__name__)

Notification = ProviderNotification

XENDIT_PAID_STATUSES = {"PAID", "SETTLED", "SUCCEEDED", "SUCCESS"}

# outcomes
PAID = "paid"
RECOVERED = "recovered"
DUPLICATE = "duplicate"
AMOUNT_MISMATCH = "amount_mismatch"
UPDATED = "updated"
UNCHANGED = "unchanged"
IGNORED = "ignored"
AMBIGUOUS = "ambiguous"

_SILENT_OUTCOMES = {DUPLICATE, UNCHANGED}


@dataclass(frozen=True)
class ReconcileResult:
    order_id: str
    target: OrderStatus
    status: Optional[str]  # row status after reconciliation; None when no row was touched
    outcome: str
    rescued: bool = False


def classify_xendit(callback: XenditCallback) -> OrderStatus:
    event = callback.event.lower()
    status = callback.status.upper()
    if event == "invoice.paid" or status in XENDIT_PAID_STATUSES:
        return OrderStatus.PAID
    if event == "invoice.expired" or status == "EXPIRED":
        return OrderStatus.EXPIRED
    return OrderStatus.PENDING


def classify_midtrans(doc: MidtransStatus) -> OrderStatus:
    transaction_status = doc.transaction_status
    if transaction_status == "capture":
        if doc.fraud_status == "challenge":
            return OrderStatus.CHALLENGE
        if doc.fraud_status == "accept":
            return OrderStatus.PAID
        return OrderStatus.PENDING
    if transaction_status == "settlement":
        return OrderStatus.PAID
    if transaction_status == "expire":
        return OrderStatus.EXPIRED
    if transaction_status in ("cancel", "deny"):
        return OrderStatus.FAILED
    return OrderStatus.PENDING


def classify(notification: Notification) -> OrderStatus:
    if isinstance(notification, XenditCallback):
        return classify_xendit(notification)
    return classify_midtrans(notification)


class ReconciliationService:
    def __init__(self, db: Session, notifier: Optional[NotificationService] = None, config=settings):
        self.db = db
        self.config = config
        self.orders = PaymentLogRepository(db)
        self.users = UserRepository(db)
        self.pricing = PricingService(PricingRepository(db))
        self.coupons = CouponService(CouponRepository(db), self.pricing, config)
        self.webhook_logs = WebhookLogService(WebhookLogRepository(db))
        self.notifier = notifier or NotificationService()

    def reconcile(self, notification: Notification) -> ReconcileResult:
        target = classify(notification)
        logger.info(
            f"Reconciling {notification.provider} order={notification.order_id or '-'} "
            f"target={target.value} amount={notification.amount}"
        )
        # seeding commits on its own; keep it out of the locked section
        self.pricing.ensure_defaults()

        try:
            result = self._reconcile_locked(notification, target)
            self.db.commit()
        except Exception:
            self.db.rollback()
            logger.error(f"Reconciliation failed for order {notification.order_id}", exc_info=True)
            raise

        if result.outcome == AMBIGUOUS:
            self.webhook_logs.record(
                "rescue.ambiguous",
                {"provider": notification.provider, "order_id": notification.order_id, "amount": notification.amount},
            )
        if result.outcome not in _SILENT_OUTCOMES:
            self._notify(notification, result)
        return result

    def _reconcile_locked(self, notification: Notification, target: OrderStatus) -> ReconcileResult:
        order_id = notification.order_id
        order = self.orders.get_for_update(order_id) if order_id else None
        rescued = False
        if order is None:
            order, outcome = self._adopt_or_create(notification)
            if order is None:
                return ReconcileResult(order_id, target, None, outcome)
            rescued = order.rescued_from is not None
        result = self._transition(order, notification, target)
        if rescued:
            return ReconcileResult(result.order_id, target, result.status, result.outcome, rescued=True)
        return result

    def _adopt_or_create(self, notification: Notification) -> Tuple[Optional[PaymentLog], str]:
        user = self.users.get_by_email(notification.email) if notification.email else None
        if user is not None and notification.order_id:
            order = self.orders.create(
                PaymentLog(
                    order_id=notification.order_id,
                    user_id=user.id,
                    plan=decode_plan(notification.order_id),
                    amount=notification.amount or 0,
                    status=OrderStatus.PENDING.value,
                )
            )
            logger.info(f"Created missing order {order.order_id} for user {user.id} from callback")
            return order, UPDATED
        return self._fuzzy_rescue(notification, user)

    def _fuzzy_rescue(self, notification: Notification, user: Optional[User]) -> Tuple[Optional[PaymentLog], str]:
        """Match an unknown callback onto the single unpaid recent order with a close amount.

        More than one candidate means nothing is adopted; the callback is
        logged as rescue.ambiguous for manual review.
        """
        amount = notification.amount
        if amount is None:
            logger.warning(f"Unmatched callback without amount ignored (order={notification.order_id or '-'})")
            return None, IGNORED

        since = utcnow() - timedelta(hours=self.config.RESCUE_WINDOW_HOURS)
        candidates = [
            c
            for c in self.orders.list_unpaid_since(since)
            if abs(float(c.amount or 0) - amount) <= self.config.AMOUNT_TOLERANCE
            and (user is None or c.user_id == user.id)
        ]
        if len(candidates) == 1:
            order = candidates[0]
            order.rescued_from = notification.order_id or "-"
            logger.warning(
                f"FUZZY RESCUE: callback order={notification.order_id or '-'} amount={amount} "
                f"adopted by {order.order_id} (user {order.user_id}); review required"
            )
            return order, UPDATED
        if len(candidates) > 1:
            logger.warning(
                f"FUZZY RESCUE AMBIGUOUS: callback order={notification.order_id or '-'} amount={amount} "
                f"matches {[c.order_id for c in candidates]}; no transition"
            )
            return None, AMBIGUOUS
        logger.info(f"Unmatched callback order={notification.order_id or '-'} amount={amount} ignored")
        return None, IGNORED

    def _amount_matches(self, stored, received: Optional[float]) -> bool:
        if received is None:
            return False
        stored = float(stored or 0)
        return stored == received or abs(stored - received) <= self.config.AMOUNT_TOLERANCE

    def _transition(self, order: PaymentLog, notification: Notification, target: OrderStatus) -> ReconcileResult:
        current = OrderStatus.parse(order.status)

        if target is OrderStatus.PAID:
            if current is not OrderStatus.PAID:
                if not self._amount_matches(order.amount, notification.amount):
                    logger.error(
                        f"Amount mismatch on {order.order_id}: expected={order.amount} "
                        f"got={notification.amount}; staying {current.value}"
                    )
                    return ReconcileResult(order.order_id, target, order.status, AMOUNT_MISMATCH)
                if current.is_terminal:
                    logger.warning(f"Order {order.order_id} paid after {current.value}")
                order.status = OrderStatus.PAID.value
                self._grant(order, notification, extend=True)
                return ReconcileResult(order.order_id, target, order.status, PAID)

            user = self.users.get_for_update(order.user_id)
            if user is not None and not has_paid_role(user.roles):
                logger.warning(f"Recovery: order {order.order_id} is PAID but user {user.id} has no paid role")
                self._grant(order, notification, extend=False, user=user)
                return ReconcileResult(order.order_id, target, order.status, RECOVERED)
            return ReconcileResult(order.order_id, target, order.status, DUPLICATE)

        if current.is_terminal or target.rank < current.rank:
            logger.info(f"Order {order.order_id} stays {current.value} (ignoring {target.value})")
            return ReconcileResult(order.order_id, target, order.status, UNCHANGED)

        changed = False
        if target is not current:
            order.status = target.value
            changed = True
        if not order.amount and notification.amount:
            order.amount = notification.amount
            changed = True
        if changed:
            logger.info(f"Order {order.order_id}: {current.value} -> {order.status}")
        return ReconcileResult(order.order_id, target, order.status, UPDATED if changed else UNCHANGED)

    def _resolve_plan(self, order: PaymentLog, notification: Notification) -> str:
        plan = (order.plan or "").strip().lower() or decode_plan(order.order_id)
        if not plan and order.rescued_from is not None and notification.amount is not None:
            plan = self.pricing.nearest_plan_by_idr(notification.amount)
            logger.info(f"Plan for rescued order {order.order_id} inferred from amount: {plan}")
        if plan and not order.plan:
            order.plan = plan
        return plan or ""

    def _grant(self, order: PaymentLog, notification: Notification, extend: bool, user: Optional[User] = None) -> None:
        """Role grant and, when extend, expiry extension plus coupon usage."""
        user = user or self.users.get_for_update(order.user_id)
        if user is None:
            logger.warning(f"Order {order.order_id} references missing user {order.user_id}")
            return

        plan = self._resolve_plan(order, notification)
        change = compute_subscription_change(user.subscription_expires_at, plan)
        user.roles = apply_roles(user.roles, change)
        if extend:
            user.subscription_expires_at = change.expires_at
            if order.coupon_code:
                self.coupons.record_usage(user.id, order.coupon_code)
        logger.info(
            f"Granted {sorted(change.grant)} to user {user.id} for order {order.order_id} "
            f"plan={plan or '-'} extend={extend} expires={user.subscription_expires_at}"
        )

    def _notify(self, notification: Notification, result: ReconcileResult) -> None:
        if not self.notifier.enabled:
            return
        try:
            content = self.notifier.build_content(
                provider=notification.provider,
                order_id=result.order_id,
                status=result.status or result.target.value,
                amount=notification.amount,
                email=notification.email,
                metadata={"Outcome": result.outcome, **notification.metadata()},
            )
            self.notifier.send(content)
        except Exception as e:
            logger.error(f"Audit notification failed for {result.order_id}: {e}")
