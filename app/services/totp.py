"""TOTP secrets, provisioning QR codes and backup codes for two-factor authentication."""

import base64
import io
import secrets
from datetime import datetime

import pyotp
import qrcode

# 32 base32 characters = 160 bits, the RFC 4226 recommended secret size.
SECRET_LENGTH = 32
BACKUP_CODE_ALPHABET = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"


def generate_secret() -> str:
    """Return a fresh random base32 TOTP secret."""
    return pyotp.random_base32(length=SECRET_LENGTH)


def provisioning_uri(secret: str, username: str, issuer: str) -> str:
    """otpauth:// URI scoped to the username, for authenticator apps."""
    return pyotp.TOTP(secret).provisioning_uri(name=username, issuer_name=issuer)


def qr_code_data_uri(uri: str) -> str:
    """Render a provisioning URI as a PNG QR code embedded in a data URI."""
    img = qrcode.make(uri)
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return "data:image/png;base64," + base64.b64encode(buf.getvalue()).decode("ascii")


def verify_code(secret: str | None, code: str | None, at: datetime, window: int) -> bool:
    """True if code matches the secret at `at`, allowing `window` steps either side."""
    if not secret or not code:
        return False
    normalized = code.strip().replace(" ", "")
    if not normalized.isdigit():
        return False
    try:
        return pyotp.TOTP(secret).verify(normalized, for_time=at, valid_window=window)
    except (ValueError, TypeError):
        # Malformed stored secret
        return False


def generate_backup_codes(count: int, length: int) -> list[str]:
    """Single-use recovery codes (upper-case alphanumeric)."""
    return [
        "".join(secrets.choice(BACKUP_CODE_ALPHABET) for _ in range(length))
        for _ in range(count)
    ]
