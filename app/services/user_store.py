"""User-record store used by the auth service, and its SQLAlchemy implementation."""

from typing import Protocol

from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.models.user import User


class UserStore(Protocol):
    """Persistence port for user accounts."""

    def get_by_id(self, user_id: int) -> User | None: ...

    def get_active_by_identifier(self, identifier: str) -> User | None: ...

    def get_by_email(self, email: str) -> User | None: ...

    def get_by_username(self, username: str) -> User | None: ...

    def get_by_reset_token(self, token: str) -> User | None: ...

    def list_all(self) -> list[User]: ...

    def count_active_admins(self) -> int: ...

    def add(self, user: User) -> User: ...

    def save(self, user: User) -> None: ...


class SqlUserStore:
    """UserStore over a SQLAlchemy session; every save commits."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def get_by_id(self, user_id: int) -> User | None:
        return self.db.get(User, user_id)

    def get_active_by_identifier(self, identifier: str) -> User | None:
        return (
            self.db.query(User)
            .filter(
                or_(User.username == identifier, User.email == identifier),
                User.is_active.is_(True),
            )
            .first()
        )

    def get_by_email(self, email: str) -> User | None:
        return self.db.query(User).filter(User.email == email).first()

    def get_by_username(self, username: str) -> User | None:
        return self.db.query(User).filter(User.username == username).first()

    def get_by_reset_token(self, token: str) -> User | None:
        return self.db.query(User).filter(User.password_reset_token == token).first()

    def list_all(self) -> list[User]:
        return self.db.query(User).order_by(User.id).all()

    def count_active_admins(self) -> int:
        return (
            self.db.query(User)
            .filter(User.role == "admin", User.is_active.is_(True))
            .count()
        )

    def add(self, user: User) -> User:
        self.db.add(user)
        self.db.commit()
        self.db.refresh(user)
        return user

    def save(self, user: User) -> None:
        self.db.add(user)
        self.db.commit()
