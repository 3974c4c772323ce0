# backend/pointonsale/config.py
from __future__ import annotations
import os


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "pointonsale-dev-key")

    # DATABASE_URL wins; otherwise a SQLite file next to the app instance
    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL", "sqlite:///pointonsale.sqlite3")
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Boundary-level retry for lock timeouts / deadlocks (engines never retry)
    TRANSIENT_RETRY_ATTEMPTS = int(os.environ.get("TRANSIENT_RETRY_ATTEMPTS", "3"))
    TRANSIENT_RETRY_BACKOFF = float(os.environ.get("TRANSIENT_RETRY_BACKOFF", "0.1"))
