"""ORM model for dashboard user accounts (auth, lockout, 2FA and password reset state)."""

from sqlalchemy import JSON, Boolean, Column, DateTime, Integer, String, func

from app.models.base import Base


class User(Base):
    """
    User account for JWT authentication and role-based access control.

    role: 'admin' or 'user'. Accounts are provisioned by administrators and
    deactivated through is_active rather than deleted.
    """

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(255), nullable=False, unique=True, index=True)
    email = Column(String(320), nullable=False, unique=True, index=True)
    password_hash = Column(String(255), nullable=False)
    full_name = Column(String(255), nullable=False, default="")
    role = Column(String(32), nullable=False, default="user")
    is_active = Column(Boolean, nullable=False, default=True)

    failed_login_attempts = Column(Integer, nullable=False, default=0)
    locked_until = Column(DateTime(timezone=True), nullable=True)
    last_login = Column(DateTime(timezone=True), nullable=True)

    totp_secret = Column(String(64), nullable=True)
    totp_enabled = Column(Boolean, nullable=False, default=False)
    # Ordered list of unused single-use backup codes
    backup_codes = Column(JSON, nullable=True)
    last_two_factor_at = Column(DateTime(timezone=True), nullable=True)

    password_reset_token = Column(String(128), nullable=True, index=True)
    password_reset_expires_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )
