# backend/chronosplit/config.py
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

    # SQLite DB stored in backend/instance/chronosplit.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///chronosplit.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Shopify app credentials. The API secret signs webhook deliveries.
    SHOPIFY_API_SECRET = os.environ.get("SHOPIFY_API_SECRET", "")
    SHOPIFY_API_VERSION = os.environ.get("SHOPIFY_API_VERSION", "2025-01")
    SHOPIFY_TIMEOUT_SECONDS = float(os.environ.get("SHOPIFY_TIMEOUT_SECONDS", "30"))

    # Marker tag applied to orders holding pre-sale items
    PRESALE_TAG = os.environ.get("PRESALE_TAG", "⚠️ Pre-Sale Hold")

    ORDERS_PAGE_SIZE = int(os.environ.get("ORDERS_PAGE_SIZE", "50"))
    AUDIT_LOG_PAGE_SIZE = int(os.environ.get("AUDIT_LOG_PAGE_SIZE", "10"))

    # False: the first platform failure aborts the remaining orders of a release batch.
    # True: the failing order is counted as failed and the batch moves on.
    RELEASE_CONTINUE_ON_ERROR = _env_bool("RELEASE_CONTINUE_ON_ERROR", False)
