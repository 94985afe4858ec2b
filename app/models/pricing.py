from sqlalchemy import Column, Integer, String, Float, DateTime
from sqlalchemy.sql import func
from app.db.base import Base


class Pricing(Base):
    __tablename__ = "pricing"

    id = Column(Integer, primary_key=True, index=True)
    plan = Column(String(32), unique=True, index=True, nullable=False)
    current_usd = Column(Float, nullable=False, default=0)
    original_usd = Column(Float, nullable=False, default=0)
    current_idr = Column(Float, nullable=False, default=0)
    original_idr = Column(Float, nullable=False, default=0)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
