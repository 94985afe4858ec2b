from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.models.user import User


class UserRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_by_email(self, email: str) -> Optional[User]:
        if not email:
            return None
        normalized = email.strip().lower()
        return (
            self.db.query(User)
            .filter(func.lower(User.email) == normalized)
            .first()
        )

    def get_by_id(self, user_id: int) -> Optional[User]:
        return self.db.query(User).filter(User.id == user_id).first()

    def get_for_update(self, user_id: int) -> Optional[User]:
        return self.db.query(User).filter(User.id == user_id).with_for_update().first()

    def create(self, user: User) -> User:
        self.db.add(user)
        self.db.flush()
        return user
