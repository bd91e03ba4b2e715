from __future__ import annotations

from ..extensions import db
from chronosplit.time_utils import to_utc_z


class ShopSession(db.Model):
    """
    Installed shop and its Admin API credentials.

    access_token authenticates calls to the shop's Admin GraphQL API.
    api_token_hash is the SHA-256 of the operator bearer token; the
    plaintext token is shown once at install time and never stored.
    """
    __tablename__ = "shop_sessions"
    __table_args__ = (
        db.UniqueConstraint("shop", name="uq_shop_sessions_shop"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    shop = db.Column(db.String(255), nullable=False, index=True)

    access_token = db.Column(db.String(255), nullable=False)
    scope = db.Column(db.String(1024), nullable=True)
    api_token_hash = db.Column(db.String(64), nullable=False, unique=True, index=True)

    installed_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    last_used_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        # access_token is never serialized
        return {
            "id": self.id,
            "shop": self.shop,
            "scope": self.scope,
            "installed_at": to_utc_z(self.installed_at),
            "last_used_at": to_utc_z(self.last_used_at),
        }
