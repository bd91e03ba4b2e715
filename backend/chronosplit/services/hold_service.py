# Overview: Places pre-sale holds on newly created orders (orders/create webhook).

from __future__ import annotations

from dataclasses import dataclass, field

from flask import current_app

from . import configuration_service, shopify_client
from .shopify_client import ShopifyAdminClient, ShopifyApiError


PRESALE_HOLD_NOTE = "Automatic Hold: Pre-Sale Item"


@dataclass
class HoldResult:
    order_id: str
    held_fulfillment_order_ids: list[str] = field(default_factory=list)
    failed_fulfillment_order_ids: list[str] = field(default_factory=list)
    tagged: bool = False

    @property
    def hold_applied(self) -> bool:
        return bool(self.held_fulfillment_order_ids)


def apply_presale_holds(client: ShopifyAdminClient, shop: str, order_id: str) -> HoldResult | None:
    """
    Hold every OPEN fulfillment order of order_id assigned to the
    configured pre-sale location, then tag the order.

    Returns None when the shop has no location configured or the order
    cannot be found. Mutation failures are logged and recorded on the
    result; they are never raised.
    """
    location_id = configuration_service.get_location_id(shop)
    if not location_id:
        current_app.logger.info("No pre-sale location configured for %s; skipping", shop)
        return None

    current_app.logger.info("Target pre-sale location for %s: %s", shop, location_id)

    try:
        order = shopify_client.get_order(client, order_id)
    except ShopifyApiError:
        current_app.logger.exception("Failed to load order %s for %s", order_id, shop)
        return None
    if order is None:
        current_app.logger.warning("Order %s not found for %s", order_id, shop)
        return None

    result = HoldResult(order_id=order["id"])

    for fo in shopify_client.fulfillment_orders_of(order):
        fo_location_id = shopify_client.assigned_location_id(fo)
        current_app.logger.debug(
            "Checking fulfillment order %s at %s (%s)",
            fo["id"], (fo.get("assignedLocation") or {}).get("name"), fo_location_id,
        )
        if fo_location_id != location_id or fo.get("status") != shopify_client.STATUS_OPEN:
            continue

        try:
            user_errors = shopify_client.hold_fulfillment_order(client, fo["id"], PRESALE_HOLD_NOTE)
        except ShopifyApiError:
            current_app.logger.exception("Failed to hold fulfillment order %s", fo["id"])
            result.failed_fulfillment_order_ids.append(fo["id"])
            continue

        if user_errors:
            current_app.logger.warning("Error holding fulfillment order %s: %s", fo["id"], user_errors)
            result.failed_fulfillment_order_ids.append(fo["id"])
        else:
            current_app.logger.info("Pre-sale fulfillment order %s is now on hold", fo["id"])
            result.held_fulfillment_order_ids.append(fo["id"])

    if result.hold_applied:
        tag = current_app.config.get("PRESALE_TAG")
        try:
            user_errors = shopify_client.add_tags(client, result.order_id, [tag])
        except ShopifyApiError:
            current_app.logger.exception("Failed to tag order %s", result.order_id)
        else:
            if user_errors:
                current_app.logger.warning("Error tagging order %s: %s", result.order_id, user_errors)
            else:
                result.tagged = True

    return result
