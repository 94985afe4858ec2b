from sqlalchemy import Column, Integer, String, Float, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.db.base import Base
from app.utils.dates import utcnow


class Coupon(Base):
    __tablename__ = "coupons"

    code = Column(String(64), primary_key=True)  # stored uppercased
    percent = Column(Integer, nullable=True)  # 1..20
    amount_off = Column(Float, nullable=True)  # USD
    duration = Column(Integer, nullable=False)  # days, 1..14
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())

    # Relationships
    usages = relationship("CouponUsage", back_populates="coupon", cascade="all, delete-orphan")


class CouponUsage(Base):
    __tablename__ = "coupon_usages"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(64), ForeignKey("coupons.code", ondelete="CASCADE"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())

    # Relationships
    coupon = relationship("Coupon", back_populates="usages")

    __table_args__ = (
        Index("idx_coupon_usage_code_user", "code", "user_id"),
    )
