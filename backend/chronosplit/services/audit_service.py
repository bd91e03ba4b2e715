# Overview: Append-only activity log shown on the operator dashboard.

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import AuditLogEntry
from ..models.audit import AUDIT_ACTIONS


class AuditError(ValueError):
    pass


def append_entry(shop: str, action: str, description: str, *, commit: bool = True) -> AuditLogEntry:
    if action not in AUDIT_ACTIONS:
        raise AuditError(f"Unknown audit action: {action}")
    entry = AuditLogEntry(shop=shop, action=action, description=description)
    db.session.add(entry)
    if commit:
        db.session.commit()
    current_app.logger.info("Audit [%s] %s: %s", shop, action, description)
    return entry


def list_recent(shop: str, limit: int | None = None) -> list[AuditLogEntry]:
    """Most recent entries first, capped to the dashboard page size."""
    if limit is None:
        limit = current_app.config.get("AUDIT_LOG_PAGE_SIZE", 10)
    limit = max(1, min(int(limit), 100))
    return (
        db.session.query(AuditLogEntry)
        .filter_by(shop=shop)
        .order_by(AuditLogEntry.created_at.desc(), AuditLogEntry.id.desc())
        .limit(limit)
        .all()
    )
