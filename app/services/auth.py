"""
Authentication engine: credential checks, account lockout, session tokens,
TOTP two-factor setup/verification, backup codes and password reset tokens.

Persistence goes through a UserStore so the engine can run against the
relational store or an in-memory fake. Time comes from an injectable clock.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any

import jwt

from app.core.security import (
    PURPOSE_SESSION,
    PURPOSE_TWO_FACTOR_PENDING,
    create_access_token,
    decode_access_token,
    generate_reset_token,
    hash_password,
    verify_password,
)
from app.models.user import User
from app.schemas.auth import (
    GENERIC_LOGIN_FAILURE,
    LoginResult,
    PasswordResetTicket,
    PublicUser,
    TwoFactorResult,
    TwoFactorSetup,
)
from app.services import totp

if TYPE_CHECKING:
    from app.core.config import Settings
    from app.services.user_store import UserStore

logger = logging.getLogger(__name__)

ACCOUNT_LOCKED_MESSAGE = "Account is temporarily locked. Please try again later."
ROLES = frozenset({"admin", "user"})


class AuthError(Exception):
    """Base class for auth engine errors; message is safe to show to the caller."""

    default_message = "Authentication failed."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidTwoFactorCodeError(AuthError):
    default_message = "Invalid verification code."


class SetupNotFoundError(AuthError):
    default_message = "Two-factor setup not found."


class TwoFactorAlreadyEnabledError(AuthError):
    default_message = "Two-factor authentication is already enabled."


class InvalidOrExpiredTokenError(AuthError):
    default_message = "Invalid or expired reset token."


class WeakPasswordError(AuthError):
    default_message = "Password is too short."


class UserAlreadyExistsError(AuthError):
    default_message = "User with this username or email already exists."


class LastAdminError(AuthError):
    default_message = "Cannot demote or deactivate the last active admin."


class UserNotFoundError(AuthError):
    """Raised when an id that was already validated no longer resolves to a user."""

    default_message = "User not found."


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _aware(value: datetime | None) -> datetime | None:
    """Treat naive datetimes read back from the store as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def public_user(user: User) -> PublicUser:
    """Public projection of a user record (no password hash, no 2FA material)."""
    return PublicUser(
        id=user.id,
        username=user.username,
        email=user.email,
        full_name=user.full_name or "",
        role=user.role,
    )


class AuthService:
    """Auth/2FA engine over a UserStore."""

    def __init__(
        self,
        users: UserStore,
        settings: Settings | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        if settings is None:
            from app.core.config import get_settings

            settings = get_settings()
        self.users = users
        self.settings = settings
        self.clock = clock or _utcnow

    # --- tokens -----------------------------------------------------------

    def issue_token(self, user: User) -> str:
        """Signed session token with id, username, email and role claims; always JWT_EXPIRE_MINUTES."""
        claims = {
            "sub": str(user.id),
            "user_id": user.id,
            "username": user.username,
            "email": user.email,
            "role": user.role,
        }
        return create_access_token(
            claims,
            expires_minutes=self.settings.JWT_EXPIRE_MINUTES,
            purpose=PURPOSE_SESSION,
            now=self.clock(),
        )

    def issue_pending_token(self, user_id: int) -> str:
        """Short-lived token that only allows completing the 2FA step for user_id."""
        return create_access_token(
            {"sub": str(user_id), "user_id": user_id},
            expires_minutes=self.settings.TWO_FACTOR_PENDING_MINUTES,
            purpose=PURPOSE_TWO_FACTOR_PENDING,
            now=self.clock(),
        )

    def verify_token(self, token: str, purpose: str = PURPOSE_SESSION) -> dict[str, Any] | None:
        """Decoded claims, or None for an expired, tampered or wrong-purpose token."""
        if not token:
            return None
        try:
            return decode_access_token(token, purpose=purpose)
        except jwt.PyJWTError:
            return None

    # --- lockout ----------------------------------------------------------

    def is_account_locked(self, user: User) -> bool:
        """
        Lazy lockout expiry: an elapsed lockout is cleared (counter reset)
        as a side effect of the check, so no background sweep is needed.
        """
        locked_until = _aware(user.locked_until)
        if locked_until is None:
            return False
        if self.clock() >= locked_until:
            user.failed_login_attempts = 0
            user.locked_until = None
            self.users.save(user)
            return False
        return True

    def handle_failed_login(self, user: User) -> bool:
        """Count a failed password attempt; returns True if the account is now locked."""
        attempts = (user.failed_login_attempts or 0) + 1
        user.failed_login_attempts = attempts
        locked = attempts >= self.settings.MAX_FAILED_LOGINS
        if locked:
            user.locked_until = self.clock() + timedelta(minutes=self.settings.LOCKOUT_MINUTES)
            logger.warning(
                "Account locked after %s failed attempts: user_id=%s", attempts, user.id
            )
        self.users.save(user)
        return locked

    def _reset_failed_attempts(self, user: User) -> None:
        user.failed_login_attempts = 0
        user.locked_until = None

    # --- login ------------------------------------------------------------

    def authenticate(
        self, identifier: str, password: str
    ) -> LoginResult:
        """
        Password step of a login. Unknown, inactive and wrong-password cases
        share one generic message. Lockout is checked before the password.
        """
        identifier = (identifier or "").strip()
        user = self.users.get_active_by_identifier(identifier) if identifier else None
        if user is None:
            return LoginResult(
                success=False, reason="invalid_credentials", message=GENERIC_LOGIN_FAILURE
            )

        if self.is_account_locked(user):
            return LoginResult(
                success=False, reason="account_locked", message=ACCOUNT_LOCKED_MESSAGE
            )

        if not verify_password(password or "", user.password_hash):
            self.handle_failed_login(user)
            return LoginResult(
                success=False, reason="invalid_credentials", message=GENERIC_LOGIN_FAILURE
            )

        if user.totp_enabled:
            return LoginResult(
                success=False,
                requires_two_factor=True,
                user_id=user.id,
                message="Two-factor verification required.",
            )

        self._reset_failed_attempts(user)
        user.last_login = self.clock()
        self.users.save(user)
        logger.info("Login succeeded: user_id=%s", user.id)
        return LoginResult(
            success=True,
            token=self.issue_token(user),
            user=public_user(user),
            message="Login successful.",
        )

    def _consume_backup_code(self, user: User, code: str) -> bool:
        codes = list(user.backup_codes or [])
        candidate = (code or "").strip().upper()
        if candidate not in codes:
            return False
        codes.remove(candidate)
        # Assign a new list so the JSON column change is detected
        user.backup_codes = codes
        return True

    def complete_two_factor(
        self,
        user_id: int,
        code: str,
        is_backup_code: bool = False,
    ) -> TwoFactorResult:
        """Second login step with a TOTP code or a single-use backup code."""
        user = self._require_user(user_id)
        if is_backup_code:
            valid = self._consume_backup_code(user, code)
        else:
            valid = totp.verify_code(
                user.totp_secret, code, self.clock(), self.settings.TOTP_VALID_WINDOW
            )
        if not valid:
            logger.info("2FA verification failed: user_id=%s", user_id)
            raise InvalidTwoFactorCodeError("Invalid 2FA code.")

        now = self.clock()
        self._reset_failed_attempts(user)
        user.last_two_factor_at = now
        user.last_login = now
        self.users.save(user)
        return TwoFactorResult(
            token=self.issue_token(user), user=public_user(user)
        )

    # --- 2FA management ---------------------------------------------------

    def setup_two_factor(self, user_id: int) -> TwoFactorSetup:
        """Store a new unconfirmed secret and backup codes; 2FA stays off until enabled."""
        user = self._require_user(user_id)
        if user.totp_enabled:
            raise TwoFactorAlreadyEnabledError()
        secret = totp.generate_secret()
        uri = totp.provisioning_uri(secret, user.username, self.settings.TOTP_ISSUER)
        codes = totp.generate_backup_codes(
            self.settings.BACKUP_CODE_COUNT, self.settings.BACKUP_CODE_LENGTH
        )
        user.totp_secret = secret
        user.backup_codes = list(codes)
        user.totp_enabled = False
        self.users.save(user)
        return TwoFactorSetup(
            secret=secret,
            provisioning_uri=uri,
            qr_code_data_uri=totp.qr_code_data_uri(uri),
            backup_codes=codes,
        )

    def enable_two_factor(self, user_id: int, code: str) -> None:
        """Confirm a pending setup with a code from the authenticator app."""
        user = self._require_user(user_id)
        if not user.totp_secret:
            raise SetupNotFoundError("2FA setup not found.")
        if not totp.verify_code(
            user.totp_secret, code, self.clock(), self.settings.TOTP_VALID_WINDOW
        ):
            raise InvalidTwoFactorCodeError()
        user.totp_enabled = True
        user.last_two_factor_at = self.clock()
        self.users.save(user)
        logger.info("2FA enabled: user_id=%s", user_id)

    def disable_two_factor(self, user_id: int, code: str) -> None:
        """Turn 2FA off; requires a currently valid TOTP code."""
        user = self._require_user(user_id)
        if not user.totp_secret:
            raise SetupNotFoundError("2FA is not set up.")
        if not totp.verify_code(
            user.totp_secret, code, self.clock(), self.settings.TOTP_VALID_WINDOW
        ):
            raise InvalidTwoFactorCodeError()
        user.totp_secret = None
        user.backup_codes = None
        user.totp_enabled = False
        user.last_two_factor_at = None
        self.users.save(user)
        logger.info("2FA disabled: user_id=%s", user_id)

    # --- password reset ---------------------------------------------------

    def generate_password_reset_token(self, email: str) -> PasswordResetTicket:
        """
        Same generic response whether or not the email exists; the token is
        only generated (and returned for delivery) for an active account.
        """
        user = self.users.get_by_email((email or "").strip())
        if user is None or not user.is_active:
            return PasswordResetTicket()
        token = generate_reset_token()
        expires_at = self.clock() + timedelta(
            minutes=self.settings.PASSWORD_RESET_EXPIRE_MINUTES
        )
        user.password_reset_token = token
        user.password_reset_expires_at = expires_at
        self.users.save(user)
        logger.info("Password reset token issued: user_id=%s", user.id)
        return PasswordResetTicket(
            token=token,
            expires_at=expires_at,
            email=user.email,
            full_name=user.full_name,
        )

    def _user_for_reset_token(self, token: str) -> User:
        user = self.users.get_by_reset_token(token) if token else None
        if user is None or not user.is_active:
            raise InvalidOrExpiredTokenError()
        expires_at = _aware(user.password_reset_expires_at)
        if expires_at is None or self.clock() >= expires_at:
            raise InvalidOrExpiredTokenError()
        return user

    def validate_reset_token(self, token: str) -> tuple[PublicUser, datetime]:
        """Owner and expiry of a still-valid reset token."""
        user = self._user_for_reset_token(token)
        return public_user(user), _aware(user.password_reset_expires_at)  # type: ignore[return-value]

    def reset_password(self, token: str, new_password: str) -> None:
        """Consume a reset token: new hash, token cleared, lockout cleared."""
        if not new_password or len(new_password) < self.settings.PASSWORD_MIN_LENGTH:
            raise WeakPasswordError(
                f"Password must be at least {self.settings.PASSWORD_MIN_LENGTH} characters long."
            )
        user = self._user_for_reset_token(token)
        user.password_hash = hash_password(new_password)
        user.password_reset_token = None
        user.password_reset_expires_at = None
        self._reset_failed_attempts(user)
        self.users.save(user)
        logger.info("Password reset completed: user_id=%s", user.id)

    # --- administration ---------------------------------------------------

    def create_user(
        self,
        username: str,
        email: str,
        password: str,
        full_name: str = "",
        role: str = "user",
    ) -> PublicUser:
        """Provision an account (self-registration is disabled)."""
        username = username.strip()
        email = email.strip()
        if role not in ROLES:
            raise ValueError(f"role must be one of {sorted(ROLES)}")
        if len(password) < self.settings.PASSWORD_MIN_LENGTH:
            raise WeakPasswordError(
                f"Password must be at least {self.settings.PASSWORD_MIN_LENGTH} characters long."
            )
        if self.users.get_by_username(username) or self.users.get_by_email(email):
            raise UserAlreadyExistsError()
        user = User(
            username=username,
            email=email,
            password_hash=hash_password(password),
            full_name=full_name.strip(),
            role=role,
            is_active=True,
            failed_login_attempts=0,
            totp_enabled=False,
        )
        user = self.users.add(user)
        logger.info("User created: user_id=%s role=%s", user.id, role)
        return public_user(user)

    def _guard_last_admin(self, user: User) -> None:
        if user.role == "admin" and user.is_active and self.users.count_active_admins() <= 1:
            raise LastAdminError()

    def toggle_role(self, user_id: int) -> PublicUser:
        """Switch a user between admin and user."""
        user = self._require_user(user_id)
        if user.role == "admin":
            self._guard_last_admin(user)
        user.role = "user" if user.role == "admin" else "admin"
        self.users.save(user)
        return public_user(user)

    def toggle_active(self, user_id: int) -> bool:
        """Activate or deactivate an account; returns the new is_active value."""
        user = self._require_user(user_id)
        if user.is_active:
            self._guard_last_admin(user)
        user.is_active = not user.is_active
        self.users.save(user)
        return bool(user.is_active)

    def get_public_user(self, user_id: int) -> PublicUser:
        return public_user(self._require_user(user_id))

    def list_users(self) -> list[User]:
        return self.users.list_all()

    def _require_user(self, user_id: int) -> User:
        user = self.users.get_by_id(user_id)
        if user is None:
            raise UserNotFoundError()
        return user
