"""Tests for password hashing, JWT purpose checks and TOTP helpers."""

import unittest
from datetime import UTC, datetime, timedelta

import jwt
import pyotp

from app.core.security import (
    PURPOSE_SESSION,
    PURPOSE_TWO_FACTOR_PENDING,
    create_access_token,
    decode_access_token,
    generate_reset_token,
    hash_password,
    verify_password,
)
from app.services import totp


class TestPasswordHashing(unittest.TestCase):
    def test_hash_and_verify(self) -> None:
        hashed = hash_password("s3cret!", rounds=4)
        self.assertNotEqual(hashed, "s3cret!")
        self.assertTrue(verify_password("s3cret!", hashed))
        self.assertFalse(verify_password("other", hashed))

    def test_missing_or_malformed_hash(self) -> None:
        self.assertFalse(verify_password("x", None))
        self.assertFalse(verify_password("x", "not-a-bcrypt-hash"))

    def test_reset_tokens_are_unique(self) -> None:
        self.assertNotEqual(generate_reset_token(), generate_reset_token())


class TestAccessTokens(unittest.TestCase):
    def test_round_trip_claims(self) -> None:
        token = create_access_token({"sub": "7", "role": "admin"}, expires_minutes=5)
        payload = decode_access_token(token)
        self.assertEqual(payload["sub"], "7")
        self.assertEqual(payload["purpose"], PURPOSE_SESSION)

    def test_purpose_mismatch_rejected(self) -> None:
        token = create_access_token({"sub": "7"}, purpose=PURPOSE_TWO_FACTOR_PENDING)
        with self.assertRaises(jwt.InvalidTokenError):
            decode_access_token(token)
        self.assertEqual(decode_access_token(token, purpose=PURPOSE_TWO_FACTOR_PENDING)["sub"], "7")

    def test_expired_token_rejected(self) -> None:
        issued = datetime.now(UTC) - timedelta(hours=2)
        token = create_access_token({"sub": "7"}, expires_minutes=60, now=issued)
        with self.assertRaises(jwt.ExpiredSignatureError):
            decode_access_token(token)


class TestTotpHelpers(unittest.TestCase):
    def setUp(self) -> None:
        self.secret = totp.generate_secret()
        self.at = datetime(2026, 5, 1, 9, 0, 15, tzinfo=UTC)

    def test_current_code_verifies(self) -> None:
        code = pyotp.TOTP(self.secret).at(self.at)
        self.assertTrue(totp.verify_code(self.secret, code, self.at, window=2))

    def test_window_edges(self) -> None:
        t = pyotp.TOTP(self.secret)
        self.assertTrue(totp.verify_code(self.secret, t.at(self.at + timedelta(seconds=60)), self.at, 2))
        self.assertFalse(totp.verify_code(self.secret, t.at(self.at + timedelta(seconds=90)), self.at, 2))

    def test_rejects_non_numeric_and_missing(self) -> None:
        self.assertFalse(totp.verify_code(self.secret, "abcdef", self.at, 2))
        self.assertFalse(totp.verify_code(None, "123456", self.at, 2))
        self.assertFalse(totp.verify_code(self.secret, "", self.at, 2))

    def test_backup_codes_shape(self) -> None:
        codes = totp.generate_backup_codes(8, 8)
        self.assertEqual(len(codes), 8)
        for code in codes:
            self.assertRegex(code, r"^[0-9A-Z]{8}$")


if __name__ == "__main__":
    unittest.main()
