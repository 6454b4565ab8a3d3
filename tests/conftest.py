"""Test environment: settings are read at import time, so defaults are set before app modules load."""

import os

os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("JWT_SECRET", "test-secret-not-for-production-use-32b")
os.environ.setdefault("IMPORT_ENABLED", "false")
os.environ.setdefault("SMTP_HOST", "")
