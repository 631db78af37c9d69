# backend/tiretrack/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/tiretrack.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///tiretrack.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Capacity given to containers created implicitly by batch imports
    DEFAULT_CONTAINER_CAPACITY = int(os.environ.get("TIRETRACK_DEFAULT_CONTAINER_CAPACITY", "100"))

    # Optimistic-lock conflicts re-run the whole transition this many times
    TRANSITION_ATTEMPTS = int(os.environ.get("TIRETRACK_TRANSITION_ATTEMPTS", "3"))
    TRANSITION_RETRY_BACKOFF = float(os.environ.get("TIRETRACK_RETRY_BACKOFF", "0.1"))

    # Open audits idle longer than this are dropped
    AUDIT_SESSION_MAX_AGE_MINUTES = int(os.environ.get("TIRETRACK_AUDIT_MAX_AGE_MINUTES", "480"))

    # Browser front-ends allowed to call the API
    CORS_ALLOWED_ORIGINS = {
        origin.strip()
        for origin in os.environ.get(
            "TIRETRACK_CORS_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173,http://localhost:8080",
        ).split(",")
        if origin.strip()
    }
