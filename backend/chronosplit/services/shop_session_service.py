# Overview: Installed-shop sessions; Admin API credentials and operator tokens.

"""
Shop Session Service

Each installed shop has one ShopSession row holding the Admin API access
token used for GraphQL calls, plus the hash of the operator bearer token
that the dashboard API authenticates with.

Operator tokens are 32 random bytes (hex), hashed with SHA-256 before
storage. Reinstalling a shop rotates the operator token.
"""

import hashlib
import secrets

from ..extensions import db
from ..models import ShopSession
from chronosplit.time_utils import utcnow
from .concurrency import run_with_retry, UPSERT_RETRY_ON


class ShopSessionError(ValueError):
    pass


def generate_token() -> str:
    return secrets.token_hex(32)  # 32 bytes = 64 hex characters


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


def normalize_shop(shop: str | None) -> str:
    """Lower-cased myshopify domain; rejects anything else."""
    value = (shop or "").strip().lower()
    if value.startswith("https://"):
        value = value[len("https://"):]
    value = value.rstrip("/")
    if not value or not value.endswith(".myshopify.com"):
        raise ShopSessionError(f"Invalid shop domain: {shop!r}")
    return value


def install_shop(shop: str, access_token: str, scope: str | None = None) -> tuple[ShopSession, str]:
    """
    Create or refresh the session for a shop.

    Returns (session_record, plaintext_operator_token).
    """
    shop = normalize_shop(shop)
    if not access_token:
        raise ShopSessionError("access_token is required")

    def _op():
        plaintext_token = generate_token()
        session = db.session.query(ShopSession).filter_by(shop=shop).first()
        if session is None:
            session = ShopSession(shop=shop, access_token=access_token)
            db.session.add(session)
        session.access_token = access_token
        session.scope = scope
        session.api_token_hash = hash_token(plaintext_token)
        session.installed_at = utcnow()
        db.session.commit()
        return session, plaintext_token

    return run_with_retry(_op, retry_on=UPSERT_RETRY_ON)


def get_session(shop: str) -> ShopSession | None:
    return db.session.query(ShopSession).filter_by(shop=shop).first()


def validate_api_token(token: str) -> ShopSession | None:
    """Resolve an operator bearer token to its shop session."""
    if not token:
        return None
    session = db.session.query(ShopSession).filter_by(api_token_hash=hash_token(token)).first()
    if not session:
        return None
    session.last_used_at = utcnow()
    db.session.commit()
    return session


def uninstall_shop(shop: str) -> bool:
    deleted = db.session.query(ShopSession).filter_by(shop=shop).delete()
    db.session.commit()
    return bool(deleted)


def list_sessions() -> list[ShopSession]:
    return db.session.query(ShopSession).order_by(ShopSession.shop.asc()).all()
