"""Tests for the auth engine: lockout, login, 2FA, backup codes, reset tokens and administration."""

import unittest
from datetime import UTC, datetime, timedelta

import pyotp

from app.core.config import get_settings
from app.core.security import PURPOSE_TWO_FACTOR_PENDING, hash_password
from app.models.user import User
from app.schemas.auth import GENERIC_LOGIN_FAILURE, GENERIC_RESET_MESSAGE
from app.services.auth import (
    AuthService,
    InvalidOrExpiredTokenError,
    InvalidTwoFactorCodeError,
    LastAdminError,
    SetupNotFoundError,
    TwoFactorAlreadyEnabledError,
    UserAlreadyExistsError,
    WeakPasswordError,
)

PASSWORD = "correct-horse"
# Mid-step within a 30s TOTP interval, and in the past so issued JWTs are not "not yet valid".
BASE = datetime.now(UTC).replace(second=15, microsecond=0) - timedelta(minutes=1)


class FakeClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class InMemoryUserStore:
    """UserStore keeping User objects in a dict; counts saves."""

    def __init__(self) -> None:
        self.users: dict[int, User] = {}
        self.saves = 0

    def get_by_id(self, user_id):
        return self.users.get(user_id)

    def get_active_by_identifier(self, identifier):
        for u in self.users.values():
            if u.is_active and identifier in (u.username, u.email):
                return u
        return None

    def get_by_email(self, email):
        return next((u for u in self.users.values() if u.email == email), None)

    def get_by_username(self, username):
        return next((u for u in self.users.values() if u.username == username), None)

    def get_by_reset_token(self, token):
        return next((u for u in self.users.values() if u.password_reset_token == token), None)

    def list_all(self):
        return [self.users[k] for k in sorted(self.users)]

    def count_active_admins(self):
        return sum(1 for u in self.users.values() if u.role == "admin" and u.is_active)

    def add(self, user):
        user.id = max(self.users, default=0) + 1
        self.users[user.id] = user
        return user

    def save(self, user):
        self.saves += 1


def make_user(store: InMemoryUserStore, **overrides) -> User:
    fields = dict(
        username="alice",
        email="alice@example.org",
        password_hash=hash_password(PASSWORD, rounds=4),
        full_name="Alice Example",
        role="user",
        is_active=True,
        failed_login_attempts=0,
        totp_enabled=False,
    )
    fields.update(overrides)
    return store.add(User(**fields))


class AuthServiceTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.store = InMemoryUserStore()
        self.clock = FakeClock(BASE)
        self.settings = get_settings()
        self.auth = AuthService(self.store, settings=self.settings, clock=self.clock)
        self.user = make_user(self.store)


class TestLogin(AuthServiceTestCase):
    def test_success_issues_token_and_resets_counter(self) -> None:
        self.user.failed_login_attempts = 3
        result = self.auth.authenticate("alice", PASSWORD)
        self.assertTrue(result.success)
        self.assertIsNotNone(result.token)
        self.assertEqual(result.user.username, "alice")
        self.assertEqual(self.user.failed_login_attempts, 0)
        self.assertEqual(self.user.last_login, BASE)
        claims = self.auth.verify_token(result.token)
        self.assertEqual(claims["user_id"], self.user.id)
        self.assertEqual(claims["role"], "user")
        self.assertEqual(claims["email"], "alice@example.org")

    def test_session_token_lifetime_is_fixed(self) -> None:
        result = self.auth.authenticate("alice", PASSWORD)
        claims = self.auth.verify_token(result.token)
        self.assertEqual(claims["exp"] - claims["iat"], 24 * 60 * 60)

    def test_login_by_email(self) -> None:
        self.assertTrue(self.auth.authenticate("alice@example.org", PASSWORD).success)

    def test_wrong_password_increments_counter_with_generic_message(self) -> None:
        result = self.auth.authenticate("alice", "nope")
        self.assertFalse(result.success)
        self.assertEqual(result.reason, "invalid_credentials")
        self.assertEqual(result.message, GENERIC_LOGIN_FAILURE)
        self.assertEqual(self.user.failed_login_attempts, 1)

    def test_unknown_and_inactive_users_get_same_message(self) -> None:
        unknown = self.auth.authenticate("nobody", PASSWORD)
        self.user.is_active = False
        inactive = self.auth.authenticate("alice", PASSWORD)
        self.assertEqual(unknown.message, GENERIC_LOGIN_FAILURE)
        self.assertEqual(inactive.message, GENERIC_LOGIN_FAILURE)
        self.assertEqual(unknown.reason, inactive.reason)

    def test_two_factor_user_gets_pending_result_without_token(self) -> None:
        self.user.totp_secret = pyotp.random_base32(length=32)
        self.user.totp_enabled = True
        result = self.auth.authenticate("alice", PASSWORD)
        self.assertFalse(result.success)
        self.assertTrue(result.requires_two_factor)
        self.assertEqual(result.user_id, self.user.id)
        self.assertIsNone(result.token)

    def test_pending_token_is_not_a_session_token(self) -> None:
        pending = self.auth.issue_pending_token(self.user.id)
        self.assertIsNone(self.auth.verify_token(pending))
        claims = self.auth.verify_token(pending, purpose=PURPOSE_TWO_FACTOR_PENDING)
        self.assertEqual(claims["user_id"], self.user.id)

    def test_tampered_token_is_rejected(self) -> None:
        token = self.auth.authenticate("alice", PASSWORD).token
        header, payload, _ = token.split(".")
        self.assertIsNone(self.auth.verify_token(f"{header}.{payload}.AAAAAAAA"))
        self.assertIsNone(self.auth.verify_token(""))


class TestLockout(AuthServiceTestCase):
    def test_fifth_failure_locks_and_correct_password_is_refused(self) -> None:
        for _ in range(4):
            self.auth.authenticate("alice", "wrong")
        self.assertIsNone(self.user.locked_until)
        self.auth.authenticate("alice", "wrong")
        self.assertEqual(self.user.failed_login_attempts, 5)
        self.assertEqual(self.user.locked_until, BASE + timedelta(minutes=15))

        result = self.auth.authenticate("alice", PASSWORD)
        self.assertFalse(result.success)
        self.assertEqual(result.reason, "account_locked")

    def test_lockout_expires_lazily(self) -> None:
        self.user.failed_login_attempts = 5
        self.user.locked_until = BASE + timedelta(minutes=15)
        self.assertTrue(self.auth.is_account_locked(self.user))
        self.clock.advance(minutes=16)
        self.assertFalse(self.auth.is_account_locked(self.user))
        self.assertEqual(self.user.failed_login_attempts, 0)
        self.assertIsNone(self.user.locked_until)

    def test_naive_locked_until_is_treated_as_utc(self) -> None:
        self.user.locked_until = (BASE + timedelta(minutes=5)).replace(tzinfo=None)
        self.assertTrue(self.auth.is_account_locked(self.user))

    def test_handle_failed_login_reports_lock(self) -> None:
        self.user.failed_login_attempts = 4
        self.assertTrue(self.auth.handle_failed_login(self.user))
        self.user.failed_login_attempts = 0
        self.user.locked_until = None
        self.assertFalse(self.auth.handle_failed_login(self.user))


class TestTwoFactor(AuthServiceTestCase):
    def _enable(self) -> str:
        setup = self.auth.setup_two_factor(self.user.id)
        self.auth.enable_two_factor(self.user.id, pyotp.TOTP(setup.secret).at(BASE))
        return setup.secret

    def test_setup_stores_unconfirmed_secret_and_codes(self) -> None:
        setup = self.auth.setup_two_factor(self.user.id)
        self.assertEqual(len(setup.secret), 32)
        self.assertTrue(setup.provisioning_uri.startswith("otpauth://totp/"))
        self.assertIn("alice", setup.provisioning_uri)
        self.assertTrue(setup.qr_code_data_uri.startswith("data:image/png;base64,"))
        self.assertEqual(len(setup.backup_codes), 8)
        for code in setup.backup_codes:
            self.assertRegex(code, r"^[0-9A-Z]{8}$")
        self.assertEqual(self.user.totp_secret, setup.secret)
        self.assertFalse(self.user.totp_enabled)

    def test_enable_requires_valid_code(self) -> None:
        self.auth.setup_two_factor(self.user.id)
        with self.assertRaises(InvalidTwoFactorCodeError):
            self.auth.enable_two_factor(self.user.id, "000000x")
        self.assertFalse(self.user.totp_enabled)

    def test_enable_without_setup(self) -> None:
        with self.assertRaises(SetupNotFoundError):
            self.auth.enable_two_factor(self.user.id, "123456")

    def test_setup_refused_when_enabled(self) -> None:
        self._enable()
        with self.assertRaises(TwoFactorAlreadyEnabledError):
            self.auth.setup_two_factor(self.user.id)

    def test_totp_window(self) -> None:
        secret = self._enable()
        totp = pyotp.TOTP(secret)
        self.auth.complete_two_factor(self.user.id, totp.at(BASE + timedelta(seconds=30)))
        self.auth.complete_two_factor(self.user.id, totp.at(BASE - timedelta(seconds=30)))
        with self.assertRaises(InvalidTwoFactorCodeError):
            self.auth.complete_two_factor(self.user.id, totp.at(BASE + timedelta(seconds=90)))
        with self.assertRaises(InvalidTwoFactorCodeError):
            self.auth.complete_two_factor(self.user.id, totp.at(BASE - timedelta(seconds=90)))

    def test_complete_issues_token_and_stamps_time(self) -> None:
        secret = self._enable()
        self.user.failed_login_attempts = 2
        result = self.auth.complete_two_factor(self.user.id, pyotp.TOTP(secret).at(BASE))
        self.assertTrue(result.success)
        self.assertEqual(result.user.id, self.user.id)
        self.assertEqual(self.user.last_two_factor_at, BASE)
        self.assertEqual(self.user.failed_login_attempts, 0)

    def test_backup_code_is_single_use(self) -> None:
        self._enable()
        codes = list(self.user.backup_codes)
        code = codes[3]
        self.auth.complete_two_factor(self.user.id, code, is_backup_code=True)
        self.assertEqual(len(self.user.backup_codes), 7)
        self.assertNotIn(code, self.user.backup_codes)
        with self.assertRaises(InvalidTwoFactorCodeError):
            self.auth.complete_two_factor(self.user.id, code, is_backup_code=True)

    def test_backup_code_match_ignores_case_and_spaces(self) -> None:
        self._enable()
        code = self.user.backup_codes[0]
        self.auth.complete_two_factor(self.user.id, f" {code.lower()} ", is_backup_code=True)
        self.assertNotIn(code, self.user.backup_codes)

    def test_disable_clears_material(self) -> None:
        secret = self._enable()
        with self.assertRaises(InvalidTwoFactorCodeError):
            self.auth.disable_two_factor(self.user.id, "12345")
        self.auth.disable_two_factor(self.user.id, pyotp.TOTP(secret).at(BASE))
        self.assertFalse(self.user.totp_enabled)
        self.assertIsNone(self.user.totp_secret)
        self.assertIsNone(self.user.backup_codes)


class TestPasswordReset(AuthServiceTestCase):
    def test_unknown_email_gets_identical_response(self) -> None:
        unknown = self.auth.generate_password_reset_token("nobody@example.org")
        known = self.auth.generate_password_reset_token("alice@example.org")
        self.assertEqual(unknown.message, GENERIC_RESET_MESSAGE)
        self.assertEqual(known.message, GENERIC_RESET_MESSAGE)
        self.assertEqual(unknown.success, known.success)
        self.assertIsNone(unknown.token)
        self.assertIsNotNone(known.token)
        self.assertEqual(known.expires_at, BASE + timedelta(hours=1))

    def test_unknown_email_writes_nothing(self) -> None:
        self.auth.generate_password_reset_token("nobody@example.org")
        self.assertEqual(self.store.saves, 0)

    def test_token_expiry_boundary(self) -> None:
        ticket = self.auth.generate_password_reset_token("alice@example.org")
        self.clock.now = ticket.expires_at - timedelta(seconds=1)
        user, expires_at = self.auth.validate_reset_token(ticket.token)
        self.assertEqual(user.id, self.user.id)
        self.clock.now = ticket.expires_at + timedelta(seconds=1)
        with self.assertRaises(InvalidOrExpiredTokenError):
            self.auth.validate_reset_token(ticket.token)
        with self.assertRaises(InvalidOrExpiredTokenError):
            self.auth.reset_password(ticket.token, "another-password")

    def test_reset_is_single_use_and_clears_lockout(self) -> None:
        ticket = self.auth.generate_password_reset_token("alice@example.org")
        self.user.failed_login_attempts = 5
        self.user.locked_until = BASE + timedelta(minutes=15)
        self.auth.reset_password(ticket.token, "brand-new-pass")
        self.assertIsNone(self.user.password_reset_token)
        self.assertEqual(self.user.failed_login_attempts, 0)
        self.assertIsNone(self.user.locked_until)
        self.assertTrue(self.auth.authenticate("alice", "brand-new-pass").success)
        with self.assertRaises(InvalidOrExpiredTokenError):
            self.auth.reset_password(ticket.token, "yet-another-pass")

    def test_short_password_rejected_before_token_use(self) -> None:
        ticket = self.auth.generate_password_reset_token("alice@example.org")
        with self.assertRaises(WeakPasswordError):
            self.auth.reset_password(ticket.token, "abc")
        self.assertEqual(self.user.password_reset_token, ticket.token)


class TestAdministration(AuthServiceTestCase):
    def test_create_user(self) -> None:
        created = self.auth.create_user("bob", "bob@example.org", "secret1", full_name="Bob")
        self.assertEqual(created.username, "bob")
        self.assertEqual(created.role, "user")
        self.assertTrue(self.auth.authenticate("bob", "secret1").success)

    def test_create_duplicate_rejected(self) -> None:
        with self.assertRaises(UserAlreadyExistsError):
            self.auth.create_user("alice2", "alice@example.org", "secret1")
        with self.assertRaises(UserAlreadyExistsError):
            self.auth.create_user("alice", "other@example.org", "secret1")

    def test_create_short_password_rejected(self) -> None:
        with self.assertRaises(WeakPasswordError):
            self.auth.create_user("bob", "bob@example.org", "12345")

    def test_last_admin_protected(self) -> None:
        self.user.role = "admin"
        with self.assertRaises(LastAdminError):
            self.auth.toggle_role(self.user.id)
        with self.assertRaises(LastAdminError):
            self.auth.toggle_active(self.user.id)

    def test_toggle_with_second_admin(self) -> None:
        self.user.role = "admin"
        make_user(self.store, username="root", email="root@example.org", role="admin")
        self.assertEqual(self.auth.toggle_role(self.user.id).role, "user")
        self.assertEqual(self.auth.toggle_role(self.user.id).role, "admin")
        self.assertFalse(self.auth.toggle_active(self.user.id))
        self.assertTrue(self.auth.toggle_active(self.user.id))


if __name__ == "__main__":
    unittest.main()
