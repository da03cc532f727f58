# backend/caisse/config.py
from __future__ import annotations
import os


def _service_binds() -> dict:
    # Privileged client bind (a database role that bypasses row-level security)
    url = os.environ.get("SERVICE_DATABASE_URL")
    return {"service": url} if url else {}


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/caisse.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///caisse.sqlite3", #default local location
    )
    SQLALCHEMY_BINDS = _service_binds()
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Session settings consumed by the row-level security policies:
    # <prefix>.user_id, <prefix>.etablissement_id, <prefix>.role
    RLS_SETTING_PREFIX = os.environ.get("RLS_SETTING_PREFIX", "app")

    DEFAULT_PAGE_SIZE = int(os.environ.get("DEFAULT_PAGE_SIZE", "50"))
    MAX_PAGE_SIZE = int(os.environ.get("MAX_PAGE_SIZE", "500"))

    SESSION_TTL_HOURS = int(os.environ.get("SESSION_TTL_HOURS", "24"))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # bcrypt cost factor for passwords and PINs
    BCRYPT_ROUNDS = int(os.environ.get("BCRYPT_ROUNDS", "12"))
