"""
Create a user (e.g. first admin). Run from project root:
  python -m app.scripts.create_user USERNAME EMAIL PASSWORD [role] [--full-name NAME]
Example:
  python -m app.scripts.create_user admin admin@example.org your-secure-password admin
"""
import argparse
import sys

from app.core.config import get_settings
from app.core.database import SessionLocal
from app.core.security import PASSWORD_MAX_LEN, USERNAME_MAX_LEN, USERNAME_MIN_LEN
from app.services.auth import AuthService, UserAlreadyExistsError, WeakPasswordError
from app.services.user_store import SqlUserStore


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Create a Partner Dashboard user (there is no registration UI)."
    )
    parser.add_argument("username", help=f"Username ({USERNAME_MIN_LEN}-{USERNAME_MAX_LEN} chars)")
    parser.add_argument("email", help="Email address (unique)")
    parser.add_argument("password", help="Password")
    parser.add_argument("role", nargs="?", default="user", choices=["user", "admin"])
    parser.add_argument("--full-name", default="", help="Display name")
    args = parser.parse_args(argv)

    username = args.username.strip()
    if not (USERNAME_MIN_LEN <= len(username) <= USERNAME_MAX_LEN):
        print("Invalid username length.", file=sys.stderr)
        return 1
    if "@" not in args.email:
        print("Invalid email address.", file=sys.stderr)
        return 1
    if len(args.password) > PASSWORD_MAX_LEN:
        print(f"Password must be at most {PASSWORD_MAX_LEN} characters.", file=sys.stderr)
        return 1

    db = SessionLocal()
    try:
        auth = AuthService(SqlUserStore(db), settings=get_settings())
        user = auth.create_user(
            username, args.email, args.password, full_name=args.full_name, role=args.role
        )
    except (UserAlreadyExistsError, WeakPasswordError) as e:
        print(e.message, file=sys.stderr)
        return 1
    finally:
        db.close()
    print(f"Created user '{user.username}' with role '{user.role}'.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
