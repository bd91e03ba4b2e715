from __future__ import annotations

from ..extensions import db
from chronosplit.time_utils import to_utc_z


class Configuration(db.Model):
    """
    Per-shop app configuration.

    One row per shop. location_id is the Shopify location GID of the
    warehouse holding pre-sale inventory; orders routed there are held.
    """
    __tablename__ = "configurations"
    __table_args__ = (
        db.UniqueConstraint("shop", name="uq_configurations_shop"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    shop = db.Column(db.String(255), nullable=False, index=True)
    location_id = db.Column(db.String(255), nullable=False)

    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self):
        return {
            "id": self.id,
            "shop": self.shop,
            "location_id": self.location_id,
            "updated_at": to_utc_z(self.updated_at),
        }
