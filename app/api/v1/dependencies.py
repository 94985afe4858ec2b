from typing import Optional
import logging
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from app.core.security import decode_access_token
from app.db.session import get_db
from app.repositories.user_repository import UserRepository
from app.models.user import User
from app.services.midtrans_service import MidtransClient
from app.services.notification_service import NotificationService
from app.services.xendit_service import XenditClient

logger = logging.getLogger(__name__)
security = HTTPBearer(auto_error=False)


def _user_from_credentials(credentials: Optional[HTTPAuthorizationCredentials], db: Session) -> Optional[User]:
    if credentials is None or not (credentials.credentials or "").strip():
        return None
    payload = decode_access_token(credentials.credentials.strip())
    if payload is None:
        return None

    user_id_raw = payload.get("sub")
    try:
        user_id = int(user_id_raw)
    except (ValueError, TypeError):
        logger.warning(f"Token subject is not a user id: {user_id_raw!r}")
        return None

    user = UserRepository(db).get_by_id(user_id)
    if user is None:
        logger.warning(f"Token for unknown user {user_id}")
        return None
    return user


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    user = _user_from_credentials(credentials, db)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="unauthorized",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="forbidden_user")
    return user


def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
) -> Optional[User]:
    """Like get_current_user but returns None instead of raising."""
    user = _user_from_credentials(credentials, db)
    if user is not None and not user.is_active:
        return None
    return user


def get_xendit_client() -> XenditClient:
    return XenditClient()


def get_midtrans_client() -> MidtransClient:
    return MidtransClient()


def get_notifier() -> NotificationService:
    return NotificationService()
