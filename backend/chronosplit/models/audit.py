from __future__ import annotations

from ..extensions import db
from chronosplit.time_utils import to_utc_z


AUDIT_ACTION_SETTINGS = "SETTINGS"
AUDIT_ACTION_RELEASE = "RELEASE"
AUDIT_ACTION_SPLIT_RELEASE = "SPLIT_RELEASE"
AUDIT_ACTIONS = {AUDIT_ACTION_SETTINGS, AUDIT_ACTION_RELEASE, AUDIT_ACTION_SPLIT_RELEASE}


class AuditLogEntry(db.Model):
    """
    Operator-visible activity log, scoped by shop.

    IMMUTABLE: Never update or delete. Append-only.
    """
    __tablename__ = "audit_log_entries"
    __table_args__ = (
        db.Index("ix_audit_log_entries_shop_created", "shop", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    shop = db.Column(db.String(255), nullable=False, index=True)

    action = db.Column(db.String(32), nullable=False)  # SETTINGS, RELEASE, SPLIT_RELEASE
    description = db.Column(db.Text, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "shop": self.shop,
            "action": self.action,
            "description": self.description,
            "created_at": to_utc_z(self.created_at),
        }
