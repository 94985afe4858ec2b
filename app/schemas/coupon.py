from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class RedeemValidateRequest(BaseModel):
    plan: Optional[str] = None
    code: Optional[str] = None


class RedeemValidateResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    ok: bool = True
    percent: float
    amount_off: float = Field(alias="amountOff")
    final: float


class CouponCreateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    code: Optional[str] = None
    percent: Optional[float] = None
    amount_off: Optional[float] = Field(None, alias="amountOff")
    duration_days: Optional[float] = Field(None, alias="durationDays")


class CouponResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    code: str
    percent: Optional[int] = None
    amount_off: Optional[float] = Field(None, alias="amountOff")
    duration: int
    expires_at: datetime = Field(alias="expiresAt")
    created_at: Optional[datetime] = Field(None, alias="createdAt")
    usage_count: int = Field(0, alias="usageCount")
