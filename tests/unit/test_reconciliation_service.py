"""
Unit tests for provider notification reconciliation.
Run: pytest tests/unit/test_reconciliation_service.py -v
"""
from datetime import timedelta
from unittest.mock import Mock, patch

import pytest

from app.models.coupon import Coupon, CouponUsage
from app.models.enums import OrderStatus
from app.models.payment_log import PaymentLog
from app.models.user import User
from app.models.webhook_log import WebhookLog
from app.schemas.payment import MidtransStatus, XenditCallback
from app.services import reconciliation_service as rs
from app.services.notification_service import NotificationService
from app.services.reconciliation_service import ReconciliationService, classify_midtrans, classify_xendit
from app.utils.dates import add_months, as_utc, utcnow

INVOICE_ID = "invoice-monthly-1760000000000-1"
MIDTRANS_ID = "midtrans-monthly-1760000000000-2"


def xendit(order_id=INVOICE_ID, status="PAID", amount=30000, email="", **extra):
    body = {"external_id": order_id, "status": status, "amount": amount, "payer_email": email}
    body.update(extra)
    return XenditCallback.from_payload(body)


def midtrans(order_id=MIDTRANS_ID, transaction_status="settlement", gross_amount="30000.00", fraud_status=""):
    return MidtransStatus.from_payload(
        {
            "order_id": order_id,
            "transaction_status": transaction_status,
            "fraud_status": fraud_status,
            "status_code": "200",
            "gross_amount": gross_amount,
        }
    )


@pytest.fixture
def service(db, notifier):
    return ReconciliationService(db, notifier=notifier)


def _reload(db, model, key):
    db.expire_all()
    return db.get(model, key)


def _order(db, order_id):
    db.expire_all()
    return db.query(PaymentLog).filter(PaymentLog.order_id == order_id).one()


def test_paid_callback_grants_trader_and_extends(service, db, make_user, make_order, notifier):
    """A matching PAID callback moves the order to PAID and grants one month."""
    user = make_user()
    make_order(user, INVOICE_ID)
    before = utcnow()

    result = service.reconcile(xendit())
    after = utcnow()

    assert result.outcome == rs.PAID
    assert _order(db, INVOICE_ID).status == "PAID"
    user = _reload(db, User, user.id)
    assert user.roles == ["User", "Trader"]
    expiry = as_utc(user.subscription_expires_at)
    assert add_months(before, 1) - timedelta(seconds=1) <= expiry <= add_months(after, 1)
    assert len(notifier.sent) == 1
    assert "Status: PAID" in notifier.sent[0]


def test_replayed_paid_callback_is_idempotent(service, db, make_user, make_order, notifier):
    # Sequential replays only: SQLite ignores FOR UPDATE. Parallel deliveries are
    # covered in test_reconciliation_concurrency.py against PostgreSQL.
    user = make_user()
    make_order(user, INVOICE_ID)

    service.reconcile(xendit())
    first_expiry = _reload(db, User, user.id).subscription_expires_at
    outcomes = [service.reconcile(xendit()).outcome for _ in range(3)]

    assert outcomes == [rs.DUPLICATE] * 3
    user = _reload(db, User, user.id)
    assert user.subscription_expires_at == first_expiry
    assert user.roles == ["User", "Trader"]
    assert len(notifier.sent) == 1


def test_paid_with_wrong_amount_is_rejected(service, db, make_user, make_order):
    user = make_user()
    make_order(user, INVOICE_ID, amount=30000)

    result = service.reconcile(xendit(amount=5000))

    assert result.outcome == rs.AMOUNT_MISMATCH
    assert _order(db, INVOICE_ID).status == "PENDING"
    user = _reload(db, User, user.id)
    assert user.roles == ["User"]
    assert user.subscription_expires_at is None


def test_amount_within_tolerance_is_accepted(service, db, make_user, make_order):
    user = make_user()
    make_order(user, INVOICE_ID, amount=30000)
    assert service.reconcile(xendit(amount=30999)).outcome == rs.PAID


def test_paid_without_amount_is_rejected(service, db, make_user, make_order):
    user = make_user()
    make_order(user, INVOICE_ID)
    assert service.reconcile(xendit(amount=None)).outcome == rs.AMOUNT_MISMATCH


def test_recovery_regrants_roles_without_extending(service, db, make_user, make_order):
    """A PAID order whose user lost the paid role gets the role back and nothing else."""
    expiry = utcnow() + timedelta(days=20)
    user = make_user(roles=["User", "Whitelist"], expires_at=expiry)
    make_order(user, MIDTRANS_ID, status=OrderStatus.PAID)

    result = service.reconcile(midtrans())

    assert result.outcome == rs.RECOVERED
    user = _reload(db, User, user.id)
    assert "Trader" in user.roles
    assert "Whitelist" not in user.roles
    assert as_utc(user.subscription_expires_at) == as_utc(expiry)


def test_creator_plan_is_lifetime(service, db, make_user, make_order):
    user = make_user(expires_at=utcnow() + timedelta(days=60))
    order_id = "midtrans-creator-1760000000000-3"
    make_order(user, order_id, amount=3000000, plan="creator")

    result = service.reconcile(midtrans(order_id=order_id, gross_amount="3000000.00"))

    assert result.outcome == rs.PAID
    user = _reload(db, User, user.id)
    assert "Creator" in user.roles
    assert user.subscription_expires_at is None


def test_purchase_extends_from_current_expiry(service, db, make_user, make_order):
    current = utcnow() + timedelta(days=180)
    user = make_user(roles=["User", "Trader"], expires_at=current)
    make_order(user, INVOICE_ID)

    service.reconcile(xendit())

    assert as_utc(_reload(db, User, user.id).subscription_expires_at) == add_months(as_utc(current), 1)


def test_trader_without_expiry_gets_monthly_expiry(service, db, make_user, make_order):
    user = make_user(roles=["User", "Trader"])
    make_order(user, INVOICE_ID)
    before = utcnow()

    service.reconcile(xendit())

    expiry = as_utc(_reload(db, User, user.id).subscription_expires_at)
    assert expiry is not None
    assert expiry >= add_months(before, 1) - timedelta(seconds=1)


def test_coupon_usage_recorded_once(service, db, make_user, make_order):
    user = make_user()
    db.add(Coupon(code="SAVE10", percent=10, duration=7, expires_at=utcnow() + timedelta(days=7)))
    db.commit()
    make_order(user, INVOICE_ID, amount=27000, coupon_code="SAVE10")

    service.reconcile(xendit(amount=27000))
    service.reconcile(xendit(amount=27000))

    usages = db.query(CouponUsage).filter(CouponUsage.user_id == user.id).all()
    assert len(usages) == 1
    assert usages[0].code == "SAVE10"


def test_expired_then_pending_stays_expired(service, db, make_user, make_order):
    user = make_user()
    make_order(user, INVOICE_ID)

    assert service.reconcile(xendit(status="EXPIRED")).outcome == rs.UPDATED
    assert service.reconcile(xendit(status="PENDING")).outcome == rs.UNCHANGED
    assert _order(db, INVOICE_ID).status == "EXPIRED"


def test_paid_is_never_downgraded(service, db, make_user, make_order):
    user = make_user()
    make_order(user, INVOICE_ID)
    service.reconcile(xendit())

    result = service.reconcile(xendit(status="EXPIRED", event="invoice.expired"))

    assert result.outcome == rs.UNCHANGED
    assert _order(db, INVOICE_ID).status == "PAID"


def test_paid_after_expired_is_accepted(service, db, make_user, make_order):
    user = make_user()
    make_order(user, INVOICE_ID, status=OrderStatus.EXPIRED)
    assert service.reconcile(xendit()).outcome == rs.PAID
    assert _order(db, INVOICE_ID).status == "PAID"


def test_challenge_does_not_go_back_to_pending(service, db, make_user, make_order):
    user = make_user()
    make_order(user, MIDTRANS_ID)

    assert service.reconcile(midtrans(transaction_status="capture", fraud_status="challenge")).outcome == rs.UPDATED
    assert service.reconcile(midtrans(transaction_status="pending")).outcome == rs.UNCHANGED
    assert _order(db, MIDTRANS_ID).status == "CHALLENGE"


def test_failed_midtrans_transaction(service, db, make_user, make_order):
    user = make_user()
    make_order(user, MIDTRANS_ID)
    service.reconcile(midtrans(transaction_status="deny"))
    assert _order(db, MIDTRANS_ID).status == "FAILED"
    assert _reload(db, User, user.id).roles == ["User"]


def test_missing_amount_is_filled_from_notification(service, db, make_user, make_order):
    user = make_user()
    make_order(user, MIDTRANS_ID, amount=0)
    service.reconcile(midtrans(transaction_status="pending"))
    assert _order(db, MIDTRANS_ID).amount == 30000


def test_unknown_order_is_created_for_known_email(service, db, make_user):
    user = make_user(email="buyer@example.com")
    order_id = "invoice-quarterly-1760000000000-9"

    result = service.reconcile(xendit(order_id=order_id, amount=75000, email="Buyer@Example.com"))

    assert result.outcome == rs.PAID
    order = _order(db, order_id)
    assert order.user_id == user.id
    assert order.plan == "quarterly"
    assert order.status == "PAID"
    expiry = as_utc(_reload(db, User, user.id).subscription_expires_at)
    assert expiry > add_months(utcnow(), 2)


def test_fuzzy_rescue_adopts_single_candidate(service, db, make_user, make_order):
    user = make_user()
    make_order(user, INVOICE_ID, amount=30000)

    result = service.reconcile(xendit(order_id="inv-from-dashboard", amount=30500))

    assert result.rescued
    assert result.outcome == rs.PAID
    order = _order(db, INVOICE_ID)
    assert order.status == "PAID"
    assert order.rescued_from == "inv-from-dashboard"
    assert "Trader" in _reload(db, User, user.id).roles


def test_fuzzy_rescue_infers_plan_from_amount(service, db, make_user, make_order):
    user = make_user()
    make_order(user, "legacy-order-1", amount=270000, plan=None)

    result = service.reconcile(xendit(order_id="", amount=270000))

    assert result.rescued
    order = _order(db, "legacy-order-1")
    assert order.plan == "yearly"
    assert order.rescued_from == "-"


def test_fuzzy_rescue_ambiguous_is_logged(service, db, make_user, make_order, notifier):
    first, second = make_user(), make_user()
    make_order(first, "invoice-monthly-1760000000000-11", amount=30000)
    make_order(second, "invoice-monthly-1760000000000-12", amount=30200)

    result = service.reconcile(xendit(order_id="unknown-1", amount=30100))

    assert result.outcome == rs.AMBIGUOUS
    assert result.status is None
    db.expire_all()
    assert {o.status for o in db.query(PaymentLog).all()} == {"PENDING"}
    assert db.query(WebhookLog).filter(WebhookLog.event == "rescue.ambiguous").count() == 1


def test_fuzzy_rescue_ignores_old_orders(service, db, make_user, make_order):
    user = make_user()
    make_order(user, INVOICE_ID, amount=30000, age=timedelta(hours=72))

    result = service.reconcile(xendit(order_id="unknown-2", amount=30000))

    assert result.outcome == rs.IGNORED
    assert _order(db, INVOICE_ID).status == "PENDING"


def test_notifier_failure_does_not_undo_reconciliation(db, make_user, make_order):
    notifier = Mock(spec=NotificationService)
    notifier.enabled = True
    notifier.build_content.return_value = "content"
    notifier.send.side_effect = RuntimeError("discord down")
    user = make_user()
    make_order(user, INVOICE_ID)

    result = ReconciliationService(db, notifier=notifier).reconcile(xendit())

    assert result.outcome == rs.PAID
    assert _order(db, INVOICE_ID).status == "PAID"


def test_failure_rolls_back_everything(service, db, make_user, make_order):
    user = make_user()
    make_order(user, INVOICE_ID)

    with patch.object(ReconciliationService, "_grant", side_effect=RuntimeError("boom")):
        with pytest.raises(RuntimeError):
            service.reconcile(xendit())

    assert _order(db, INVOICE_ID).status == "PENDING"


@pytest.mark.parametrize(
    "event,status,expected",
    [
        ("invoice.paid", "", OrderStatus.PAID),
        ("", "PAID", OrderStatus.PAID),
        ("", "settled", OrderStatus.PAID),
        ("", "SUCCEEDED", OrderStatus.PAID),
        ("invoice.expired", "", OrderStatus.EXPIRED),
        ("", "EXPIRED", OrderStatus.EXPIRED),
        ("", "PENDING", OrderStatus.PENDING),
        ("", "", OrderStatus.PENDING),
    ],
)
def test_classify_xendit(event, status, expected):
    assert classify_xendit(XenditCallback(event=event, status=status)) == expected


@pytest.mark.parametrize(
    "transaction_status,fraud_status,expected",
    [
        ("capture", "accept", OrderStatus.PAID),
        ("capture", "challenge", OrderStatus.CHALLENGE),
        ("settlement", "", OrderStatus.PAID),
        ("pending", "", OrderStatus.PENDING),
        ("expire", "", OrderStatus.EXPIRED),
        ("cancel", "", OrderStatus.FAILED),
        ("deny", "", OrderStatus.FAILED),
        ("refund", "", OrderStatus.PENDING),
    ],
)
def test_classify_midtrans(transaction_status, fraud_status, expected):
    doc = MidtransStatus(transaction_status=transaction_status, fraud_status=fraud_status)
    assert classify_midtrans(doc) == expected
