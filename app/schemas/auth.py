"""Request/response schemas for auth endpoints and auth service outcomes."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from app.core.security import PASSWORD_MAX_LEN, USERNAME_MAX_LEN, USERNAME_MIN_LEN

LoginFailureReason = Literal["invalid_credentials", "account_locked"]

GENERIC_LOGIN_FAILURE = "Invalid username/email or password."
GENERIC_RESET_MESSAGE = (
    "If an account with that email exists, a password reset link has been sent."
)


class PublicUser(BaseModel):
    """Public projection of a user account (never includes the password hash)."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str
    email: str
    full_name: str = ""
    role: str


class CurrentUser(BaseModel):
    """Authenticated user (id, username, email, role) for dependency injection."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str
    email: str
    role: str


class UserListItem(PublicUser):
    """User entry for admin list (no password)."""

    is_active: bool
    totp_enabled: bool
    last_login: datetime | None = None


class UsersListResponse(BaseModel):
    """Response for GET /users (admin only)."""

    users: list[UserListItem]


class LoginRequest(BaseModel):
    """Credentials for login; identifier matches username or email."""

    identifier: str = Field(..., min_length=1, max_length=320, description="Username or email")
    password: str = Field(..., min_length=1, max_length=128, description="Password")
    remember_me: bool = Field(default=False, description="Keep the session cookie for longer")


class LoginResult(BaseModel):
    """Outcome of the password step of a login."""

    success: bool
    requires_two_factor: bool = False
    user_id: int | None = None
    token: str | None = None
    user: PublicUser | None = None
    reason: LoginFailureReason | None = None
    message: str


class LoginResponse(BaseModel):
    """Response body for POST /auth/login."""

    success: bool
    requires_two_factor: bool = False
    pending_token: str | None = Field(
        default=None,
        description="Short-lived token to present with the 2FA code.",
    )
    token: str | None = None
    user: PublicUser | None = None
    message: str


class TwoFactorVerifyRequest(BaseModel):
    """Second login step: TOTP or backup code for a pending login."""

    pending_token: str = Field(..., min_length=1)
    code: str = Field(..., min_length=1, max_length=64)
    is_backup_code: bool = False
    remember_me: bool = False


class TwoFactorResult(BaseModel):
    """Successful completion of the 2FA step."""

    success: bool = True
    token: str
    user: PublicUser


class TwoFactorSetup(BaseModel):
    """Material shown to the user once when 2FA is being set up."""

    secret: str
    provisioning_uri: str
    qr_code_data_uri: str
    backup_codes: list[str]


class TwoFactorCodeRequest(BaseModel):
    """A TOTP code for enabling or disabling 2FA."""

    code: str = Field(..., min_length=1, max_length=16)


class ForgotPasswordRequest(BaseModel):
    """Request a password reset email."""

    email: str = Field(..., min_length=3, max_length=320)


class PasswordResetTicket(BaseModel):
    """
    Result of a reset request. message is always the generic one; token,
    expires_at, email and full_name are set only when an active user matched.
    """

    success: bool = True
    message: str = GENERIC_RESET_MESSAGE
    token: str | None = None
    expires_at: datetime | None = None
    email: str | None = None
    full_name: str | None = None


class ResetPasswordRequest(BaseModel):
    """Set a new password with a reset token."""

    token: str = Field(..., min_length=1, max_length=128)
    password: str = Field(..., min_length=1, max_length=128)
    confirm_password: str = Field(..., min_length=1, max_length=128)


class ResetTokenStatus(BaseModel):
    """Response for reset token validation."""

    valid: bool
    user: PublicUser | None = None
    expires_at: datetime | None = None


class CreateUserRequest(BaseModel):
    """Administrative provisioning of a new account."""

    username: str = Field(..., min_length=USERNAME_MIN_LEN, max_length=USERNAME_MAX_LEN)
    email: str = Field(..., min_length=3, max_length=320)
    password: str = Field(..., min_length=1, max_length=PASSWORD_MAX_LEN)
    full_name: str = Field(default="", max_length=255)
    role: Literal["admin", "user"] = "user"


class MessageResponse(BaseModel):
    """Generic success message."""

    success: bool = True
    message: str
