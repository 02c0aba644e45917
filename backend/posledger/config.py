# backend/posledger/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/posledger.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///posledger.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Bounded retry for serialization failures inside one atomic unit
    RETRY_ATTEMPTS = int(os.environ.get("RETRY_ATTEMPTS", "3"))
    RETRY_BACKOFF_SECONDS = float(os.environ.get("RETRY_BACKOFF_SECONDS", "0.1"))

    # Loyalty points earned per whole currency unit of a sale total
    LOYALTY_POINTS_PER_UNIT = int(os.environ.get("LOYALTY_POINTS_PER_UNIT", "1"))

    # When true every discount rule is treated as combinable
    DISCOUNT_ALLOW_STACKING = _env_bool("DISCOUNT_ALLOW_STACKING", False)

    # External catalog service (display enrichment only); unset disables lookups
    CATALOG_BASE_URL = os.environ.get("CATALOG_BASE_URL")
    CATALOG_TIMEOUT_SECONDS = float(os.environ.get("CATALOG_TIMEOUT_SECONDS", "2.0"))
