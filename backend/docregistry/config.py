# backend/docregistry/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/docregistry.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///docregistry.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Numbering: bounded retry when two registrations race on the same counter scope
    NUMBERING_RETRY_ATTEMPTS = int(os.environ.get("NUMBERING_RETRY_ATTEMPTS", "5"))
    NUMBERING_RETRY_BACKOFF = float(os.environ.get("NUMBERING_RETRY_BACKOFF", "0.05"))

    SEARCH_DEFAULT_PAGE_SIZE = 20
    SEARCH_MAX_PAGE_SIZE = int(os.environ.get("SEARCH_MAX_PAGE_SIZE", "100"))

    # Lower in tests; bcrypt cost dominates login latency
    BCRYPT_ROUNDS = int(os.environ.get("BCRYPT_ROUNDS", "12"))

    # Browser origins allowed to call the API (comma separated)
    CORS_ALLOWED_ORIGINS = [
        o.strip()
        for o in os.environ.get(
            "CORS_ALLOWED_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173",
        ).split(",")
        if o.strip()
    ]
