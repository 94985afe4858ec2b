# Import all models so create_all can detect them
from app.models.user import User
from app.models.pricing import Pricing
from app.models.coupon import Coupon, CouponUsage
from app.models.payment_log import PaymentLog
from app.models.webhook_log import WebhookLog

__all__ = ["User", "Pricing", "Coupon", "CouponUsage", "PaymentLog", "WebhookLog"]
