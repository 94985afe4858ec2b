from fastapi import APIRouter

from app.api.v1.routes import coupons, midtrans, payments, paypal, pricing, xendit

router = APIRouter()
router.include_router(pricing.router)
router.include_router(coupons.router)
router.include_router(payments.router)
router.include_router(xendit.router, prefix="/xendit")
router.include_router(midtrans.router, prefix="/midtrans")
router.include_router(paypal.router, prefix="/paypal")
