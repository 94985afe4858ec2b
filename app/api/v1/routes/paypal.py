from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.api.v1.dependencies import get_optional_user
from app.core.errors import PaymentError
from app.db.session import get_db
from app.models.enums import Plan
from app.models.user import User
from app.repositories.coupon_repository import CouponRepository
from app.repositories.pricing_repository import PricingRepository
from app.schemas.payment import PaypalCreateRequest, PaypalCreateResponse
from app.services import paypal_service
from app.services.coupon_service import CouponService, normalize_code
from app.services.pricing_service import PricingService

router = APIRouter(tags=["paypal"])


@router.post("/create", response_model=PaypalCreateResponse)
def create_paypal_order(
    body: PaypalCreateRequest,
    current_user: Optional[User] = Depends(get_optional_user),
    db: Session = Depends(get_db),
):
    """USD checkout. PayPal orders are not reconciled and create no order row."""
    plan = Plan.parse(body.plan)
    if plan is None:
        raise PaymentError("missing_fields")

    pricing = PricingService(PricingRepository(db))
    amount = round(pricing.current_usd(plan), 2)
    if normalize_code(body.coupon_code):
        if current_user is None:
            raise PaymentError("login_required", 401)
        amount = CouponService(CouponRepository(db), pricing).quote(current_user.id, plan, body.coupon_code).final

    order = paypal_service.create_order(amount, currency=body.currency, description=body.description)
    return PaypalCreateResponse(**order)


@router.post("/webhook")
def paypal_webhook():
    return {"ok": True}
