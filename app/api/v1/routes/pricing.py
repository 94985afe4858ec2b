from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.api.v1.dependencies import get_current_user
from app.db.session import get_db
from app.models.user import User
from app.repositories.pricing_repository import PricingRepository
from app.schemas.pricing import OkResponse, PricingItem, PricingUpdateRequest, PricingUpdateResponse
from app.services.pricing_service import PricingService

router = APIRouter(tags=["pricing"])


@router.get("/pricing", response_model=List[PricingItem])
def list_pricing(db: Session = Depends(get_db)):
    """Full price table, seeded with defaults on first read."""
    return PricingService(PricingRepository(db)).list()


@router.patch("/pricing", response_model=PricingUpdateResponse)
def update_pricing(
    body: PricingUpdateRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    items = PricingService(PricingRepository(db)).update_many(current_user, body.items)
    return PricingUpdateResponse(ok=True, items=[PricingItem.model_validate(row) for row in items])


@router.post("/pricing/reset", response_model=OkResponse)
def reset_pricing(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Set every plan's current price back to its original price."""
    PricingService(PricingRepository(db)).reset_current_to_original(current_user)
    return OkResponse()
