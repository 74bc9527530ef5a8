# backend/assethub/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/assethub.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",  # optional alternative location
        "sqlite:///assethub.sqlite3",  # default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # External task tracker (approval todos, stock alert todos).
    # Leaving the base URL empty disables delivery; events are still recorded.
    EXTERNAL_TODO_BASE_URL = os.environ.get("EXTERNAL_TODO_BASE_URL", "")
    EXTERNAL_TODO_TOKEN = os.environ.get("EXTERNAL_TODO_TOKEN", "")
    EXTERNAL_TODO_TIMEOUT = float(os.environ.get("EXTERNAL_TODO_TIMEOUT", "10"))
    EXTERNAL_TODO_LINK_BASE = os.environ.get("EXTERNAL_TODO_LINK_BASE", "")

    # Outbox: dispatch queued events right after the owning transaction commits
    OUTBOX_DISPATCH_ON_COMMIT = _env_bool("OUTBOX_DISPATCH_ON_COMMIT", True)
    OUTBOX_MAX_ATTEMPTS = int(os.environ.get("OUTBOX_MAX_ATTEMPTS", "5"))
    OUTBOX_BACKOFF_SECONDS = int(os.environ.get("OUTBOX_BACKOFF_SECONDS", "30"))


class TestingConfig(Config):
    TESTING = True
    SECRET_KEY = "test"
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    EXTERNAL_TODO_BASE_URL = ""
    OUTBOX_DISPATCH_ON_COMMIT = True
