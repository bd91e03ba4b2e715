# backend/chronosplit/routes/system.py
"""
System health and version endpoints.
"""

import sys
import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import Configuration, ShopSession
from chronosplit.time_utils import utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """
    Check database connectivity by counting installed shops and
    configured pre-sale locations.
    """
    start_time = time.time()
    try:
        shop_count = db.session.query(ShopSession).count()
        configured_count = db.session.query(Configuration).count()

        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "shops": shop_count,
                "configured_shops": configured_count,
            }
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


def check_shopify_config_health() -> dict:
    """Webhooks cannot be verified without the app's API secret."""
    if not current_app.config.get("SHOPIFY_API_SECRET"):
        return {
            "status": "degraded",
            "warning": "SHOPIFY_API_SECRET is not set; webhooks will be rejected",
        }
    return {
        "status": "healthy",
        "details": {"api_version": current_app.config.get("SHOPIFY_API_VERSION")},
    }


@system_bp.get("/health")
def health():
    """
    Health check endpoint.

    Returns:
    - 200: Healthy or degraded
    - 503: Database unreachable
    """
    start_time = time.time()

    database_health = check_database_health()
    shopify_health = check_shopify_config_health()

    all_checks = [database_health, shopify_health]
    if any(check["status"] == "unhealthy" for check in all_checks):
        overall_status = "unhealthy"
        http_status = 503
    elif any(check["status"] == "degraded" for check in all_checks):
        overall_status = "degraded"
        http_status = 200  # Degraded is still operational
    else:
        overall_status = "healthy"
        http_status = 200

    total_elapsed_ms = (time.time() - start_time) * 1000

    response = {
        "status": overall_status,
        "timestamp": utcnow().isoformat() + "Z",
        "total_latency_ms": round(total_elapsed_ms, 2),
        "checks": {
            "database": database_health,
            "shopify": shopify_health,
        }
    }

    return response, http_status


@system_bp.get("/version")
def version():
    """Non-sensitive deployment information."""
    env = "production" if not current_app.debug else "development"

    return {
        "api_version": "1.0.0",
        "environment": env,
        "python_version": sys.version.split()[0],
        "server_time": utcnow().isoformat() + "Z",
    }
