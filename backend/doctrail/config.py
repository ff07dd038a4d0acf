# backend/doctrail/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/doctrail.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///doctrail.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Memo payment terms when the wizard does not supply one
    DEFAULT_MEMO_TENURE_DAYS = int(os.environ.get("DEFAULT_MEMO_TENURE_DAYS", "30"))

    # Lifecycle units of work are retried on lock/version conflicts
    TRANSITION_RETRY_ATTEMPTS = int(os.environ.get("TRANSITION_RETRY_ATTEMPTS", "3"))
    TRANSITION_RETRY_BACKOFF = float(os.environ.get("TRANSITION_RETRY_BACKOFF", "0.1"))
