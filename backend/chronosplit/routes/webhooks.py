# backend/chronosplit/routes/webhooks.py
"""
Shopify webhook endpoints.

Once a delivery is authenticated the response is always 200 with an
empty body, whatever happens while processing it: Shopify retries
deliveries that fail, and business-level failures are not retryable.
"""
from flask import Blueprint, current_app, g, request

from ..decorators import verify_shopify_webhook
from ..services import configuration_service, hold_service, shop_session_service, shopify_client


webhooks_bp = Blueprint("webhooks", __name__, url_prefix="/webhooks")


@webhooks_bp.route("/orders/create", methods=["POST"])
@verify_shopify_webhook
def orders_create():
    """
    Hold pre-sale fulfillment orders of a newly created order.

    Payload: the REST order resource; admin_graphql_api_id identifies it.
    """
    current_app.logger.info("Webhook received: %s for %s", g.webhook_topic, g.shop)

    payload = request.get_json(silent=True) or {}
    order_id = payload.get("admin_graphql_api_id")
    if not order_id:
        current_app.logger.warning("orders/create webhook without admin_graphql_api_id")
        return "", 200

    try:
        client = shopify_client.client_for_shop(g.shop)
    except shop_session_service.ShopSessionError:
        current_app.logger.warning("orders/create webhook for unknown shop %s", g.shop)
        return "", 200

    try:
        with client:
            result = hold_service.apply_presale_holds(client, g.shop, order_id)
    except Exception:
        current_app.logger.exception("Failed to process orders/create for %s", order_id)
        return "", 200

    if result is not None:
        current_app.logger.info(
            "Order %s: %d hold(s) applied, %d failed, tagged=%s",
            result.order_id,
            len(result.held_fulfillment_order_ids),
            len(result.failed_fulfillment_order_ids),
            result.tagged,
        )
    return "", 200


@webhooks_bp.route("/app/uninstalled", methods=["POST"])
@verify_shopify_webhook
def app_uninstalled():
    """Forget the shop's credentials and configuration."""
    current_app.logger.info("Webhook received: %s for %s", g.webhook_topic, g.shop)
    shop_session_service.uninstall_shop(g.shop)
    configuration_service.delete_configuration(g.shop)
    return "", 200
