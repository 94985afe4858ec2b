from sqlalchemy import Column, Integer, String, Float, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.db.base import Base
from app.models.enums import OrderStatus
from app.utils.dates import utcnow


class PaymentLog(Base):
    __tablename__ = "payment_logs"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(String(128), unique=True, index=True, nullable=False)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    plan = Column(String(32), nullable=True)
    amount = Column(Float, nullable=False, default=0)  # provider currency (IDR)
    coupon_code = Column(String(64), nullable=True)
    status = Column(String(16), nullable=False, default=OrderStatus.PENDING.value)
    # External id of the callback that was matched onto this row by amount (manual review)
    rescued_from = Column(String(128), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relationships
    user = relationship("User", back_populates="payment_logs")

    __table_args__ = (
        Index("idx_payment_logs_status_created", "status", "created_at"),
    )
