# Overview: Per-shop configuration store (the pre-sale location).

from __future__ import annotations

from ..extensions import db
from ..models import Configuration
from ..models.audit import AUDIT_ACTION_SETTINGS
from . import audit_service
from .concurrency import run_with_retry, UPSERT_RETRY_ON


class ConfigurationError(ValueError):
    pass


def get_configuration(shop: str) -> Configuration | None:
    return db.session.query(Configuration).filter_by(shop=shop).first()


def get_location_id(shop: str) -> str | None:
    """Configured pre-sale location GID, or None when nothing is set."""
    config = get_configuration(shop)
    if not config or not config.location_id:
        return None
    return config.location_id


def save_location(shop: str, location_id: str, *, location_name: str | None = None) -> Configuration:
    """
    Create or update the shop's configuration row and log the change.

    Upsert is keyed on the unique shop column; a concurrent insert for the
    same shop surfaces as IntegrityError and is retried as an update.
    """
    location_id = (location_id or "").strip()
    if not location_id:
        raise ConfigurationError("location_id is required")

    def _op():
        config = get_configuration(shop)
        if config is None:
            config = Configuration(shop=shop, location_id=location_id)
            db.session.add(config)
        else:
            config.location_id = location_id

        label = location_name or location_id
        audit_service.append_entry(
            shop,
            AUDIT_ACTION_SETTINGS,
            f"Pre-sale location set to {label}",
            commit=False,
        )
        db.session.commit()
        return config

    return run_with_retry(_op, retry_on=UPSERT_RETRY_ON)


def delete_configuration(shop: str) -> bool:
    deleted = db.session.query(Configuration).filter_by(shop=shop).delete()
    db.session.commit()
    return bool(deleted)
