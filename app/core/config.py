"""Application configuration loaded from environment variables."""

from functools import lru_cache
from typing import Literal

from pydantic import SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Allowed URL schemes for DATABASE_URL (module-level so validators can use it).
VALID_DATABASE_URL_PREFIXES = (
    "postgresql://",
    "postgresql+psycopg2://",
    "postgres://",
    "postgres+psycopg2://",
    "sqlite://",
    "sqlite+pysqlite://",
)

VALID_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


class Settings(BaseSettings):
    """Validated application settings from env and optional .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    APP_ENV: Literal["dev", "test", "prod"] = "dev"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    API_V1_PREFIX: str = "/api/v1"

    # Relational store (PostgreSQL in production, SQLite for local runs)
    DATABASE_URL: str = "sqlite:///./data/partner_dashboard.db"
    # Create tables with metadata.create_all() on startup (development convenience)
    AUTO_CREATE_DB: bool = False

    # Where the spreadsheet importer writes: the relational store or a JSON document
    STORAGE_BACKEND: Literal["relational", "document"] = "relational"
    DOCUMENT_STORE_PATH: str = "data/dashboard_data.json"

    # JWT authentication
    JWT_SECRET: SecretStr = SecretStr("change-me-in-production")
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRE_MINUTES: int = 1440
    # Lifetime of the token handed out between password check and 2FA code
    TWO_FACTOR_PENDING_MINUTES: int = 5
    AUTH_COOKIE_NAME: str = "auth_token"
    REMEMBER_ME_DAYS: int = 30

    # Account lockout and password policy
    MAX_FAILED_LOGINS: int = 5
    LOCKOUT_MINUTES: int = 15
    PASSWORD_MIN_LENGTH: int = 6
    PASSWORD_RESET_EXPIRE_MINUTES: int = 60
    # Base URL the reset token is appended to in reset emails
    PASSWORD_RESET_URL: str = "http://localhost:8000/reset-password"

    # TOTP two-factor authentication
    TOTP_ISSUER: str = "Partner Dashboard"
    TOTP_VALID_WINDOW: int = 2
    BACKUP_CODE_COUNT: int = 8
    BACKUP_CODE_LENGTH: int = 8

    # Spreadsheet importer
    IMPORT_ENABLED: bool = True
    IMPORT_DIR: str = "data/excel"
    IMPORT_POLL_INTERVAL_SEC: float = 10.0
    IMPORT_DEBOUNCE_SEC: float = 1.0
    IMPORT_FILE_TIMEOUT_SEC: float = 300.0
    IMPORT_MAX_UPLOAD_BYTES: int = 10 * 1024 * 1024

    # SMTP for password reset emails (delivery disabled when SMTP_HOST is unset)
    SMTP_HOST: str | None = None
    SMTP_PORT: int = 587
    SMTP_USER: str | None = None
    SMTP_PASSWORD: SecretStr | None = None
    SMTP_FROM_EMAIL: str = "no-reply@partner-dashboard.local"
    SMTP_USE_TLS: bool = True
    SMTP_TIMEOUT_SEC: float = 30.0

    @field_validator("DATABASE_URL")
    @classmethod
    def validate_database_url(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("DATABASE_URL must be set and non-empty")
        if not any(v.startswith(prefix) for prefix in VALID_DATABASE_URL_PREFIXES):
            raise ValueError(
                "DATABASE_URL must be a PostgreSQL or SQLite URL (e.g. postgresql:// or sqlite:///)"
            )
        return v.strip()

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = (v or "").strip().upper()
        if level not in VALID_LOG_LEVELS:
            raise ValueError(f"LOG_LEVEL must be one of {sorted(VALID_LOG_LEVELS)}")
        return level

    @field_validator("JWT_SECRET")
    @classmethod
    def validate_jwt_secret(cls, v: SecretStr) -> SecretStr:
        if not v.get_secret_value() or not v.get_secret_value().strip():
            raise ValueError("JWT_SECRET must be set and non-empty")
        return v

    @field_validator("JWT_ALGORITHM")
    @classmethod
    def validate_jwt_algorithm(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("JWT_ALGORITHM must be set and non-empty")
        return v.strip()

    @field_validator("JWT_EXPIRE_MINUTES")
    @classmethod
    def validate_jwt_expire_minutes(cls, v: int) -> int:
        if v < 1 or v > 10080:
            raise ValueError(
                "JWT_EXPIRE_MINUTES must be between 1 and 10080 (1 min to 7 days)"
            )
        return v

    @field_validator("MAX_FAILED_LOGINS")
    @classmethod
    def validate_max_failed_logins(cls, v: int) -> int:
        if v < 1 or v > 100:
            raise ValueError("MAX_FAILED_LOGINS must be between 1 and 100")
        return v

    @field_validator("LOCKOUT_MINUTES", "PASSWORD_RESET_EXPIRE_MINUTES", "TWO_FACTOR_PENDING_MINUTES")
    @classmethod
    def validate_positive_minutes(cls, v: int) -> int:
        if v < 1 or v > 1440:
            raise ValueError("Durations in minutes must be between 1 and 1440")
        return v

    @field_validator("TOTP_VALID_WINDOW")
    @classmethod
    def validate_totp_window(cls, v: int) -> int:
        if v < 0 or v > 10:
            raise ValueError("TOTP_VALID_WINDOW must be between 0 and 10")
        return v

    @field_validator("BACKUP_CODE_COUNT", "BACKUP_CODE_LENGTH")
    @classmethod
    def validate_backup_codes(cls, v: int) -> int:
        if v < 1 or v > 64:
            raise ValueError("Backup code count and length must be between 1 and 64")
        return v

    @field_validator("IMPORT_POLL_INTERVAL_SEC")
    @classmethod
    def validate_poll_interval(cls, v: float) -> float:
        if v <= 0 or v > 3600:
            raise ValueError(
                "IMPORT_POLL_INTERVAL_SEC must be greater than 0 and at most 3600"
            )
        return v

    @field_validator("IMPORT_DEBOUNCE_SEC")
    @classmethod
    def validate_debounce(cls, v: float) -> float:
        if v < 0 or v > 60:
            raise ValueError("IMPORT_DEBOUNCE_SEC must be between 0 and 60")
        return v

    @field_validator("IMPORT_FILE_TIMEOUT_SEC")
    @classmethod
    def validate_file_timeout(cls, v: float) -> float:
        if v <= 0 or v > 3600:
            raise ValueError(
                "IMPORT_FILE_TIMEOUT_SEC must be greater than 0 and at most 3600"
            )
        return v

    @field_validator("SMTP_HOST")
    @classmethod
    def validate_smtp_host(cls, v: str | None) -> str | None:
        if v is None or not v.strip():
            return None
        return v.strip()


@lru_cache
def get_settings() -> Settings:
    """Return cached settings instance (safe to call from dependencies)."""
    return Settings()


settings = get_settings()
