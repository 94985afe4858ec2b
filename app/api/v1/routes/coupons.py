from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.api.v1.dependencies import get_current_user, get_optional_user
from app.core.errors import PaymentError
from app.db.session import get_db
from app.models.user import User
from app.repositories.coupon_repository import CouponRepository
from app.repositories.pricing_repository import PricingRepository
from app.schemas.coupon import CouponCreateRequest, CouponResponse, RedeemValidateRequest, RedeemValidateResponse
from app.schemas.pricing import OkResponse
from app.services.coupon_service import CouponService
from app.services.pricing_service import PricingService

router = APIRouter(tags=["coupons"])


def _service(db: Session) -> CouponService:
    return CouponService(CouponRepository(db), PricingService(PricingRepository(db)))


@router.post("/redeem/validate", response_model=RedeemValidateResponse)
def validate_redeem_code(
    body: RedeemValidateRequest,
    current_user: Optional[User] = Depends(get_optional_user),
    db: Session = Depends(get_db),
):
    """Quote the USD price of a plan with a coupon applied."""
    if current_user is None:
        raise PaymentError("login_required", 401)
    quote = _service(db).quote(current_user.id, body.plan, body.code)
    return RedeemValidateResponse(ok=True, percent=quote.percent, amount_off=quote.amount_off, final=quote.final)


@router.get("/coupons", response_model=List[CouponResponse])
def list_coupons(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return [
        CouponResponse(
            code=coupon.code,
            percent=coupon.percent,
            amount_off=coupon.amount_off,
            duration=coupon.duration,
            expires_at=coupon.expires_at,
            created_at=coupon.created_at,
            usage_count=used,
        )
        for coupon, used in _service(db).list_active(current_user)
    ]


@router.post("/coupons", response_model=OkResponse)
def create_coupon(
    body: CouponCreateRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Create a coupon. An existing code is replaced and its usages are purged."""
    _service(db).upsert(
        current_user,
        body.code,
        percent=body.percent,
        amount_off=body.amount_off,
        duration_days=body.duration_days,
    )
    return OkResponse()


@router.delete("/coupons/{code}", response_model=OkResponse)
def delete_coupon(
    code: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    _service(db).delete(current_user, code)
    return OkResponse()
