"""
Unit tests for coupon validation, quoting and administration.
Run: pytest tests/unit/test_coupon_service.py -v
"""
from datetime import timedelta

import pytest

from app.core.config import settings
from app.core.errors import PaymentError
from app.models.coupon import CouponUsage
from app.repositories.coupon_repository import CouponRepository
from app.repositories.pricing_repository import PricingRepository
from app.services.coupon_service import CouponService, apply_discount, normalize_code
from app.services.pricing_service import PricingService
from app.utils.dates import utcnow


@pytest.fixture
def coupons(db):
    return CouponService(CouponRepository(db), PricingService(PricingRepository(db)))


@pytest.fixture
def developer(make_user):
    return make_user(roles=["User", "Developer"])


def test_normalize_code():
    assert normalize_code("  save10 ") == "SAVE10"
    assert normalize_code(None) == ""


def test_apply_discount_percent_then_amount_clamped():
    assert apply_discount(100, percent=10) == pytest.approx(90)
    assert apply_discount(100, percent=10, amount_off=5) == pytest.approx(85)
    assert apply_discount(2, amount_off=5) == 0


def test_quote_yearly_with_ten_percent(coupons, developer, make_user):
    """yearly at 18 USD with 10% off quotes 16.20."""
    buyer = make_user()
    coupons.upsert(developer, "save10", percent=10, duration_days=7)
    quote = coupons.quote(buyer.id, "yearly", "SAVE10")
    assert quote.final == pytest.approx(16.20)
    assert quote.percent == 10
    assert quote.amount_off == 0


def test_quote_with_amount_off(coupons, developer, make_user):
    buyer = make_user()
    coupons.upsert(developer, "FLAT5", amount_off=5, duration_days=3)
    assert coupons.quote(buyer.id, "yearly", "flat5").final == pytest.approx(13)


def test_quote_unknown_code(coupons, make_user):
    buyer = make_user()
    with pytest.raises(PaymentError) as exc:
        coupons.quote(buyer.id, "monthly", "NOPE")
    assert exc.value.kind == "invalid_code"


def test_quote_expired_code(coupons, developer, make_user, db):
    buyer = make_user()
    coupon = coupons.upsert(developer, "OLD", percent=5, duration_days=1)
    coupon.expires_at = utcnow() - timedelta(minutes=1)
    db.commit()
    with pytest.raises(PaymentError) as exc:
        coupons.quote(buyer.id, "monthly", "OLD")
    assert exc.value.kind == "invalid_code"


def test_quote_already_used(coupons, developer, make_user, db):
    buyer = make_user()
    coupons.upsert(developer, "ONCE", percent=5, duration_days=2)
    coupons.record_usage(buyer.id, "once")
    db.commit()
    with pytest.raises(PaymentError) as exc:
        coupons.quote(buyer.id, "monthly", "ONCE")
    assert exc.value.kind == "already_used"


def test_quote_idr_without_code_is_base_price(coupons, make_user):
    buyer = make_user()
    assert coupons.quote_idr(buyer.id, "monthly", None).final == 30000


def test_quote_idr_converts_amount_off(coupons, developer, make_user):
    buyer = make_user()
    coupons.upsert(developer, "USD1", amount_off=1, duration_days=5)
    quote = coupons.quote_idr(buyer.id, "monthly", "USD1")
    assert quote.final == 30000 - settings.IDR_PER_USD


def test_quote_idr_rounds_to_whole_rupiah(coupons, developer, make_user, db):
    buyer = make_user()
    row = coupons.pricing.get("monthly")
    row.current_idr = 30001
    db.commit()
    coupons.upsert(developer, "P3", percent=3, duration_days=5)
    assert coupons.quote_idr(buyer.id, "monthly", "P3").final == 29101


@pytest.mark.parametrize(
    "kwargs,kind",
    [
        ({"duration_days": 5}, "missing_fields"),
        ({"percent": 10, "amount_off": 2, "duration_days": 5}, "invalid_payload"),
        ({"percent": 0, "duration_days": 5}, "invalid_percent"),
        ({"percent": 21, "duration_days": 5}, "invalid_percent"),
        ({"amount_off": 0, "duration_days": 5}, "invalid_amount_off"),
        ({"amount_off": -3, "duration_days": 5}, "invalid_amount_off"),
        ({"percent": 10}, "invalid_duration"),
        ({"percent": 10, "duration_days": 15}, "invalid_duration"),
        ({"percent": 10, "duration_days": 0}, "invalid_duration"),
        ({"percent": 10.5, "duration_days": 5}, "invalid_percent"),
        ({"percent": 10, "duration_days": 1.5}, "invalid_duration"),
    ],
)
def test_upsert_validation(coupons, developer, kwargs, kind):
    with pytest.raises(PaymentError) as exc:
        coupons.upsert(developer, "CODE", **kwargs)
    assert exc.value.kind == kind


def test_upsert_requires_coupon_role(coupons, make_user):
    trader = make_user(roles=["User", "Trader"])
    with pytest.raises(PaymentError) as exc:
        coupons.upsert(trader, "CODE", percent=10, duration_days=3)
    assert exc.value.status_code == 403


def test_creator_can_manage_coupons(coupons, make_user):
    creator = make_user(roles=["User", "Creator"])
    coupon = coupons.upsert(creator, "creator5", percent=5, duration_days=14)
    assert coupon.code == "CREATOR5"
    assert coupon.duration == 14


def test_recreate_purges_usages(coupons, developer, make_user, db):
    buyer = make_user()
    coupons.upsert(developer, "AGAIN", percent=5, duration_days=2)
    coupons.record_usage(buyer.id, "AGAIN")
    db.commit()

    coupons.upsert(developer, "AGAIN", percent=15, duration_days=2)

    assert db.query(CouponUsage).filter(CouponUsage.code == "AGAIN").count() == 0
    assert coupons.quote(buyer.id, "monthly", "AGAIN").percent == 15


def test_record_usage_is_once_per_user(coupons, developer, make_user, db):
    buyer = make_user()
    coupons.upsert(developer, "TWICE", percent=5, duration_days=2)
    assert coupons.record_usage(buyer.id, "TWICE") is not None
    assert coupons.record_usage(buyer.id, "twice") is None
    db.commit()
    assert db.query(CouponUsage).count() == 1


def test_record_usage_unknown_code(coupons, make_user):
    buyer = make_user()
    assert coupons.record_usage(buyer.id, "GHOST") is None


def test_list_active_with_usage_count(coupons, developer, make_user, db):
    first, second = make_user(), make_user()
    coupons.upsert(developer, "POPULAR", percent=5, duration_days=3)
    coupons.upsert(developer, "UNUSED", percent=5, duration_days=3)
    expired = coupons.upsert(developer, "GONE", percent=5, duration_days=3)
    expired.expires_at = utcnow() - timedelta(days=1)
    coupons.record_usage(first.id, "POPULAR")
    coupons.record_usage(second.id, "POPULAR")
    db.commit()

    counts = {coupon.code: used for coupon, used in coupons.list_active(developer)}
    assert counts == {"POPULAR": 2, "UNUSED": 0}


def test_delete_is_idempotent(coupons, developer, make_user, db):
    buyer = make_user()
    coupons.upsert(developer, "BYE", percent=5, duration_days=3)
    coupons.record_usage(buyer.id, "BYE")
    db.commit()

    coupons.delete(developer, "bye")
    coupons.delete(developer, "bye")

    assert coupons.repo.get("BYE") is None
    assert db.query(CouponUsage).count() == 0
