from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.api.v1.dependencies import get_current_user
from app.core.errors import PaymentError
from app.core.security import is_developer
from app.db.session import get_db
from app.models.user import User
from app.repositories.payment_log_repository import PaymentLogRepository
from app.schemas.payment import RescuedOrderResponse

router = APIRouter(tags=["payments"])


@router.get("/payments/rescued", response_model=List[RescuedOrderResponse])
def list_rescued_orders(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Orders matched to a callback by amount only; these need a manual check."""
    if not is_developer(current_user):
        raise PaymentError("forbidden_user", status.HTTP_403_FORBIDDEN)
    return PaymentLogRepository(db).list_rescued()
