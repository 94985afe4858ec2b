from typing import List

from pydantic import BaseModel, ConfigDict, Field


class PricingItem(BaseModel):
    model_config = ConfigDict(populate_by_name=True, from_attributes=True)

    plan: str
    current_usd: float = Field(0, alias="currentUsd", ge=0)
    original_usd: float = Field(0, alias="originalUsd", ge=0)
    current_idr: float = Field(0, alias="currentIdr", ge=0)
    original_idr: float = Field(0, alias="originalIdr", ge=0)


class PricingUpdateRequest(BaseModel):
    items: List[PricingItem] = []


class PricingUpdateResponse(BaseModel):
    ok: bool = True
    items: List[PricingItem]


class OkResponse(BaseModel):
    ok: bool = True
