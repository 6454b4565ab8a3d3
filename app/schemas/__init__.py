"""Pydantic request/response schemas."""

from app.schemas.auth import (
    CurrentUser,
    LoginRequest,
    LoginResponse,
    LoginResult,
    PasswordResetTicket,
    PublicUser,
    TwoFactorResult,
    TwoFactorSetup,
)
from app.schemas.health import HealthResponse
from app.schemas.imports import (
    FileReport,
    ImportStateResponse,
    ScanReport,
    SheetReport,
    UploadResponse,
)

__all__ = [
    "CurrentUser",
    "FileReport",
    "HealthResponse",
    "ImportStateResponse",
    "LoginRequest",
    "LoginResponse",
    "LoginResult",
    "PasswordResetTicket",
    "PublicUser",
    "ScanReport",
    "SheetReport",
    "TwoFactorResult",
    "TwoFactorSetup",
    "UploadResponse",
]
