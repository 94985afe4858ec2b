import logging
from datetime import datetime, timedelta
from typing import Iterable, Optional

from jose import JWTError, jwt

from app.core.config import settings
from app.models.enums import Role

logger = logging.getLogger(__name__)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create a JWT access token."""
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.utcnow() + expires_delta
    else:
        expire = datetime.utcnow() + timedelta(hours=settings.JWT_EXPIRATION_HOURS)

    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: str) -> Optional[dict]:
    """Decode and verify a JWT token. Returns None when invalid or expired."""
    try:
        return jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
            options={"verify_signature": True, "verify_exp": True, "verify_sub": False},
        )
    except JWTError as e:
        logger.info(f"Rejected bearer token: {e}")
        return None


def _normalized(roles: Optional[Iterable[str]]) -> set:
    return {str(r).strip().lower() for r in (roles or [])}


def is_developer(requester) -> bool:
    if requester is None:
        return False
    return Role.DEVELOPER.value.lower() in _normalized(requester.roles)


def can_manage_coupons(requester) -> bool:
    if requester is None:
        return False
    roles = _normalized(requester.roles)
    return Role.DEVELOPER.value.lower() in roles or Role.CREATOR.value.lower() in roles


def has_paid_role(roles: Optional[Iterable[str]]) -> bool:
    normalized = _normalized(roles)
    return Role.TRADER.value.lower() in normalized or Role.CREATOR.value.lower() in normalized
