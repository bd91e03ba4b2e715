from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_shop
from ..services import (
    audit_service,
    configuration_service,
    held_order_service,
    release_service,
    shop_session_service,
    shopify_client,
)
from ..services.configuration_service import ConfigurationError
from ..services.release_service import ReleaseBatchError
from ..services.shopify_client import ShopifyApiError


dashboard_bp = Blueprint("dashboard", __name__, url_prefix="/api")


def _json_error(exc: Exception):
    if isinstance(exc, ConfigurationError):
        return jsonify({"status": "error", "error": str(exc)}), 400
    if isinstance(exc, shop_session_service.ShopSessionError):
        return jsonify({"status": "error", "error": str(exc)}), 401
    if isinstance(exc, ShopifyApiError):
        current_app.logger.exception("Shopify call failed")
        return jsonify({"status": "error", "error": "Shopify API request failed"}), 502
    current_app.logger.exception("Unhandled dashboard error")
    return jsonify({"status": "error", "error": "Internal server error"}), 500


def _item_filter(value) -> str | None:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _release_response(outcome: release_service.ReleaseOutcome):
    if outcome.released == 0:
        return jsonify({"status": "info", "message": "No matching held orders found.", **outcome.to_dict()})
    noun = "order" if outcome.released == 1 else "orders"
    message = f"Released {outcome.released} {noun}!"
    if outcome.split:
        message = f"Released {outcome.released} {noun} ({outcome.split} split)!"
    return jsonify({"status": "success", "message": message, **outcome.to_dict()})


def _run_release(client, location_id: str, order_ids: list[str], item_filter: str | None):
    try:
        outcome = release_service.run_release(client, g.shop, location_id, order_ids, item_filter)
    except ReleaseBatchError as exc:
        return jsonify({
            "status": "error",
            "message": f"Release stopped after {exc.outcome.released} order(s): Shopify request failed for {exc.order_id}.",
            **exc.outcome.to_dict(),
        }), 502
    return _release_response(outcome)


@dashboard_bp.get("/dashboard")
@require_shop
def get_dashboard():
    """
    Everything the dashboard page renders.

    Query params:
        q: optional line-item title filter for the held-orders view
    """
    item_filter = _item_filter(request.args.get("q"))
    location_id = configuration_service.get_location_id(g.shop)
    try:
        with shopify_client.client_for_shop(g.shop) as client:
            locations = shopify_client.list_locations(client)
            held = held_order_service.list_held_orders(client, location_id, item_filter)
    except Exception as exc:
        return _json_error(exc)

    return jsonify({
        "shop": g.shop,
        "locations": locations,
        "saved_location_id": location_id or "",
        "filter": item_filter or "",
        "held_orders": [v.to_dict() for v in held],
        "held_count": held_order_service.count_held_fulfillment_orders(held),
        "logs": [e.to_dict() for e in audit_service.list_recent(g.shop)],
    })


@dashboard_bp.get("/locations")
@require_shop
def get_locations():
    try:
        with shopify_client.client_for_shop(g.shop) as client:
            locations = shopify_client.list_locations(client)
    except Exception as exc:
        return _json_error(exc)
    return jsonify({"items": locations, "count": len(locations)})


@dashboard_bp.get("/settings")
@require_shop
def get_settings():
    config = configuration_service.get_configuration(g.shop)
    return jsonify({"shop": g.shop, "location_id": config.location_id if config else ""})


@dashboard_bp.post("/settings")
@require_shop
def save_settings():
    """
    Save the pre-sale location.

    Request body:
    {
        "location_id": str (Shopify location GID)
    }

    Returns:
        200: Settings saved
        400: Missing or unknown location
    """
    payload = request.get_json(silent=True) or {}
    location_id = (payload.get("location_id") or "").strip()
    if not location_id:
        return jsonify({"status": "error", "error": "location_id is required"}), 400

    try:
        with shopify_client.client_for_shop(g.shop) as client:
            locations = {loc["id"]: loc["name"] for loc in shopify_client.list_locations(client)}
        if location_id not in locations:
            raise ConfigurationError(f"Unknown location: {location_id}")
        config = configuration_service.save_location(g.shop, location_id, location_name=locations[location_id])
    except Exception as exc:
        return _json_error(exc)

    return jsonify({"status": "success", "message": "Settings saved successfully!", "configuration": config.to_dict()})


@dashboard_bp.get("/held-orders")
@require_shop
def get_held_orders():
    item_filter = _item_filter(request.args.get("q"))
    location_id = configuration_service.get_location_id(g.shop)
    try:
        with shopify_client.client_for_shop(g.shop) as client:
            held = held_order_service.list_held_orders(client, location_id, item_filter)
    except Exception as exc:
        return _json_error(exc)
    return jsonify({
        "items": [v.to_dict() for v in held],
        "count": len(held),
        "held_count": held_order_service.count_held_fulfillment_orders(held),
    })


@dashboard_bp.post("/release")
@require_shop
def release_selected():
    """
    Release the selected orders.

    Request body:
    {
        "order_ids": [str] (Shopify order GIDs),
        "filter": str (optional, case-insensitive line-item title filter)
    }
    """
    payload = request.get_json(silent=True) or {}
    order_ids = payload.get("order_ids")
    if not isinstance(order_ids, list) or not order_ids or not all(isinstance(i, str) for i in order_ids):
        return jsonify({"status": "error", "error": "order_ids must be a non-empty list of order ids"}), 400

    location_id = configuration_service.get_location_id(g.shop)
    if not location_id:
        return jsonify({"status": "info", "message": "No pre-sale location configured."})

    item_filter = _item_filter(payload.get("filter"))
    current_app.logger.info("Release selected for %s: %d order(s), filter=%r", g.shop, len(order_ids), item_filter)
    try:
        with shopify_client.client_for_shop(g.shop) as client:
            return _run_release(client, location_id, order_ids, item_filter)
    except Exception as exc:
        return _json_error(exc)


@dashboard_bp.post("/release/all")
@require_shop
def release_all():
    """
    Release every order in the current (optionally filtered) held view.

    Request body:
    {
        "filter": str (optional)
    }
    """
    payload = request.get_json(silent=True) or {}
    location_id = configuration_service.get_location_id(g.shop)
    if not location_id:
        return jsonify({"status": "info", "message": "No pre-sale location configured."})

    item_filter = _item_filter(payload.get("filter"))
    try:
        with shopify_client.client_for_shop(g.shop) as client:
            held = held_order_service.list_held_orders(client, location_id, item_filter)
            current_app.logger.info("Found %d held order(s) to release for %s", len(held), g.shop)
            if not held:
                return jsonify({"status": "info", "message": "No matching held orders found."})
            return _run_release(client, location_id, [v.id for v in held], item_filter)
    except Exception as exc:
        return _json_error(exc)


@dashboard_bp.get("/audit-log")
@require_shop
def get_audit_log():
    limit = request.args.get("limit", type=int)
    entries = audit_service.list_recent(g.shop, limit)
    return jsonify({"items": [e.to_dict() for e in entries], "count": len(entries)})
