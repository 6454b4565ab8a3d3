"""Login, 2FA, password reset and user administration; auth dependencies (get_current_user, require_admin)."""

from typing import Annotated

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request, Response, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from app.core.config import Settings, get_settings
from app.core.database import get_db
from app.core.security import PURPOSE_TWO_FACTOR_PENDING
from app.schemas.auth import (
    GENERIC_LOGIN_FAILURE,
    CreateUserRequest,
    CurrentUser,
    ForgotPasswordRequest,
    LoginRequest,
    LoginResponse,
    MessageResponse,
    PublicUser,
    ResetPasswordRequest,
    ResetTokenStatus,
    TwoFactorCodeRequest,
    TwoFactorSetup,
    TwoFactorVerifyRequest,
    UserListItem,
    UsersListResponse,
)
from app.services.auth import (
    AuthService,
    InvalidOrExpiredTokenError,
    InvalidTwoFactorCodeError,
    LastAdminError,
    SetupNotFoundError,
    TwoFactorAlreadyEnabledError,
    UserAlreadyExistsError,
    UserNotFoundError,
    WeakPasswordError,
)
from app.services.email import PasswordResetMailer
from app.services.user_store import SqlUserStore

router = APIRouter()
security = HTTPBearer(auto_error=False)


def get_auth_service(
    db: Annotated[Session, Depends(get_db)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> AuthService:
    """Dependency: auth engine bound to the request's DB session."""
    return AuthService(SqlUserStore(db), settings=settings)


def get_mailer(settings: Annotated[Settings, Depends(get_settings)]) -> PasswordResetMailer:
    return PasswordResetMailer(settings)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def _set_auth_cookie(response: Response, token: str, remember_me: bool, settings: Settings) -> None:
    if remember_me:
        max_age = settings.REMEMBER_ME_DAYS * 24 * 60 * 60
    else:
        max_age = settings.JWT_EXPIRE_MINUTES * 60
    response.set_cookie(
        key=settings.AUTH_COOKIE_NAME,
        value=token,
        max_age=max_age,
        httponly=True,
        secure=settings.APP_ENV == "prod",
        samesite="lax",
    )


def get_current_user(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    auth: Annotated[AuthService, Depends(get_auth_service)],
) -> CurrentUser:
    """Dependency: require a valid session JWT (Bearer header or auth cookie). Raises 401 otherwise."""
    if credentials is not None:
        token = credentials.credentials
    else:
        token = request.cookies.get(auth.settings.AUTH_COOKIE_NAME)
    if not token:
        raise _unauthorized("Not authenticated")
    payload = auth.verify_token(token)
    if payload is None:
        raise _unauthorized("Invalid or expired token")
    try:
        user_id = int(payload.get("sub"))
    except (TypeError, ValueError):
        raise _unauthorized("Invalid token payload")
    user = auth.users.get_by_id(user_id)
    if user is None or not user.is_active:
        raise _unauthorized("User not found")
    return CurrentUser(id=user.id, username=user.username, email=user.email, role=user.role)


def require_admin(
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
) -> CurrentUser:
    """Dependency: require authenticated user with role 'admin'. Raises 403 for non-admin."""
    if current_user.role != "admin":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return current_user


@router.post("/login", response_model=LoginResponse)
def login(
    body: LoginRequest,
    response: Response,
    auth: Annotated[AuthService, Depends(get_auth_service)],
) -> LoginResponse:
    """
    Password step of the login. Sets the auth cookie and returns the token,
    or returns a short-lived pending_token when the account has 2FA enabled.
    """
    result = auth.authenticate(body.identifier, body.password)
    if result.reason == "account_locked":
        raise HTTPException(status_code=status.HTTP_423_LOCKED, detail=result.message)
    if result.requires_two_factor:
        return LoginResponse(
            success=False,
            requires_two_factor=True,
            pending_token=auth.issue_pending_token(result.user_id),
            message=result.message,
        )
    if not result.success or result.token is None:
        raise _unauthorized(GENERIC_LOGIN_FAILURE)
    _set_auth_cookie(response, result.token, body.remember_me, auth.settings)
    return LoginResponse(success=True, token=result.token, user=result.user, message=result.message)


@router.post("/2fa/verify", response_model=LoginResponse)
def verify_two_factor(
    body: TwoFactorVerifyRequest,
    response: Response,
    auth: Annotated[AuthService, Depends(get_auth_service)],
) -> LoginResponse:
    """Second login step: TOTP code or backup code for a pending login."""
    claims = auth.verify_token(body.pending_token, purpose=PURPOSE_TWO_FACTOR_PENDING)
    if claims is None:
        raise _unauthorized("Two-factor session expired. Please log in again.")
    try:
        result = auth.complete_two_factor(
            int(claims["user_id"]),
            body.code,
            is_backup_code=body.is_backup_code,
        )
    except (InvalidTwoFactorCodeError, UserNotFoundError) as e:
        raise _unauthorized(e.message)
    _set_auth_cookie(response, result.token, body.remember_me, auth.settings)
    return LoginResponse(success=True, token=result.token, user=result.user, message="Login successful.")


@router.post("/logout", response_model=MessageResponse)
def logout(response: Response, settings: Annotated[Settings, Depends(get_settings)]) -> MessageResponse:
    response.delete_cookie(settings.AUTH_COOKIE_NAME)
    return MessageResponse(message="Logged out.")


@router.get("/me", response_model=PublicUser)
def me(
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    auth: Annotated[AuthService, Depends(get_auth_service)],
) -> PublicUser:
    return auth.get_public_user(current_user.id)


@router.post("/2fa/setup", response_model=TwoFactorSetup)
def setup_two_factor(
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    auth: Annotated[AuthService, Depends(get_auth_service)],
) -> TwoFactorSetup:
    """Generate a secret, QR code and backup codes; 2FA stays off until /2fa/enable."""
    try:
        return auth.setup_two_factor(current_user.id)
    except TwoFactorAlreadyEnabledError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)


@router.post("/2fa/enable", response_model=MessageResponse)
def enable_two_factor(
    body: TwoFactorCodeRequest,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    auth: Annotated[AuthService, Depends(get_auth_service)],
) -> MessageResponse:
    try:
        auth.enable_two_factor(current_user.id, body.code)
    except (SetupNotFoundError, InvalidTwoFactorCodeError) as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)
    return MessageResponse(message="Two-factor authentication enabled.")


@router.post("/2fa/disable", response_model=MessageResponse)
def disable_two_factor(
    body: TwoFactorCodeRequest,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    auth: Annotated[AuthService, Depends(get_auth_service)],
) -> MessageResponse:
    try:
        auth.disable_two_factor(current_user.id, body.code)
    except (SetupNotFoundError, InvalidTwoFactorCodeError) as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)
    return MessageResponse(message="Two-factor authentication disabled.")


@router.post("/password/forgot", response_model=MessageResponse)
def forgot_password(
    body: ForgotPasswordRequest,
    background_tasks: BackgroundTasks,
    auth: Annotated[AuthService, Depends(get_auth_service)],
    mailer: Annotated[PasswordResetMailer, Depends(get_mailer)],
) -> MessageResponse:
    """Always answers with the same message, whether or not the email is known."""
    ticket = auth.generate_password_reset_token(body.email)
    if ticket.token:
        background_tasks.add_task(mailer.send_quietly, ticket)
    return MessageResponse(message=ticket.message)


@router.get("/password/reset/{token}", response_model=ResetTokenStatus)
def check_reset_token(
    token: str,
    auth: Annotated[AuthService, Depends(get_auth_service)],
) -> ResetTokenStatus:
    try:
        user, expires_at = auth.validate_reset_token(token)
    except InvalidOrExpiredTokenError:
        return ResetTokenStatus(valid=False)
    return ResetTokenStatus(valid=True, user=user, expires_at=expires_at)


@router.post("/password/reset", response_model=MessageResponse)
def reset_password(
    body: ResetPasswordRequest,
    auth: Annotated[AuthService, Depends(get_auth_service)],
) -> MessageResponse:
    if body.password != body.confirm_password:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Passwords do not match.",
        )
    try:
        auth.reset_password(body.token, body.password)
    except WeakPasswordError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=e.message)
    except InvalidOrExpiredTokenError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)
    return MessageResponse(message="Password has been reset. You can now log in.")


@router.get("/users", response_model=UsersListResponse)
def list_users(
    _admin: Annotated[CurrentUser, Depends(require_admin)],
    auth: Annotated[AuthService, Depends(get_auth_service)],
) -> UsersListResponse:
    """List all users (admin only)."""
    return UsersListResponse(
        users=[
            UserListItem(
                id=u.id,
                username=u.username,
                email=u.email,
                full_name=u.full_name or "",
                role=u.role,
                is_active=bool(u.is_active),
                totp_enabled=bool(u.totp_enabled),
                last_login=u.last_login,
            )
            for u in auth.list_users()
        ]
    )


@router.post("/users", response_model=PublicUser, status_code=status.HTTP_201_CREATED)
def create_user(
    body: CreateUserRequest,
    _admin: Annotated[CurrentUser, Depends(require_admin)],
    auth: Annotated[AuthService, Depends(get_auth_service)],
) -> PublicUser:
    """Provision an account (admin only; there is no self-registration)."""
    try:
        return auth.create_user(
            body.username, body.email, body.password, full_name=body.full_name, role=body.role
        )
    except UserAlreadyExistsError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=e.message)
    except WeakPasswordError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=e.message)


@router.post("/users/{user_id}/toggle-role", response_model=PublicUser)
def toggle_role(
    user_id: int,
    _admin: Annotated[CurrentUser, Depends(require_admin)],
    auth: Annotated[AuthService, Depends(get_auth_service)],
) -> PublicUser:
    try:
        return auth.toggle_role(user_id)
    except UserNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)
    except LastAdminError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)


@router.post("/users/{user_id}/toggle-status", response_model=MessageResponse)
def toggle_status(
    user_id: int,
    _admin: Annotated[CurrentUser, Depends(require_admin)],
    auth: Annotated[AuthService, Depends(get_auth_service)],
) -> MessageResponse:
    try:
        active = auth.toggle_active(user_id)
    except UserNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)
    except LastAdminError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)
    return MessageResponse(message="User activated." if active else "User deactivated.")
