"""
Shopify webhook endpoints: HMAC verification and the orders/create hold flow.
"""

import json

from chronosplit.decorators import compute_webhook_hmac
from chronosplit.models import Configuration, ShopSession
from tests.conftest import SHOP, PRESALE_LOCATION, MAIN_LOCATION, WEBHOOK_SECRET


TAG = "⚠️ Pre-Sale Hold"


def _deliver(client, path, payload, topic="orders/create", secret=WEBHOOK_SECRET, shop=SHOP):
    body = json.dumps(payload).encode("utf-8")
    return client.post(
        path,
        data=body,
        content_type="application/json",
        headers={
            "X-Shopify-Hmac-Sha256": compute_webhook_hmac(secret, body),
            "X-Shopify-Shop-Domain": shop,
            "X-Shopify-Topic": topic,
        },
    )


def test_rejects_bad_signature(client, configured_shop, shopify):
    order = shopify.add_order("#1001", [(PRESALE_LOCATION, "OPEN", [("Widget", 1)])])

    response = _deliver(client, "/webhooks/orders/create", {"admin_graphql_api_id": order["id"]}, secret="wrong")

    assert response.status_code == 401
    assert shopify.calls == []


def test_order_create_holds_presale_fulfillment_order(client, configured_shop, shopify):
    order = shopify.add_order(
        "#1001",
        [
            (PRESALE_LOCATION, "OPEN", [("Widget", 1)]),
            (MAIN_LOCATION, "OPEN", [("Gadget", 1)]),
        ],
    )

    response = _deliver(client, "/webhooks/orders/create", {"admin_graphql_api_id": order["id"]})

    assert response.status_code == 200
    assert response.data == b""
    statuses = [fo["status"] for fo in shopify.fulfillment_orders(order)]
    assert statuses == ["ON_HOLD", "OPEN"]
    assert shopify.tags(order) == [TAG]


def test_order_create_without_configuration_is_noop(client, installed_shop, shopify):
    order = shopify.add_order("#1001", [(PRESALE_LOCATION, "OPEN", [("Widget", 1)])])

    response = _deliver(client, "/webhooks/orders/create", {"admin_graphql_api_id": order["id"]})

    assert response.status_code == 200
    assert shopify.calls == []


def test_order_create_succeeds_when_shopify_fails(client, configured_shop, shopify):
    order = shopify.add_order("#1001", [(PRESALE_LOCATION, "OPEN", [("Widget", 1)])])
    shopify.fail_ids.add(order["id"])

    response = _deliver(client, "/webhooks/orders/create", {"admin_graphql_api_id": order["id"]})

    assert response.status_code == 200
    assert shopify.fulfillment_orders(order)[0]["status"] == "OPEN"


def test_order_create_for_unknown_shop(client, db_session, shopify):
    response = _deliver(
        client,
        "/webhooks/orders/create",
        {"admin_graphql_api_id": "gid://shopify/Order/1"},
        shop="unknown.myshopify.com",
    )
    assert response.status_code == 200
    assert shopify.calls == []


def test_order_create_without_order_id(client, configured_shop, shopify):
    response = _deliver(client, "/webhooks/orders/create", {"id": 1})
    assert response.status_code == 200
    assert shopify.calls == []


def test_app_uninstalled_forgets_shop(client, configured_shop, shopify, db_session):
    response = _deliver(client, "/webhooks/app/uninstalled", {"id": 1}, topic="app/uninstalled")

    assert response.status_code == 200
    assert db_session.query(ShopSession).filter_by(shop=SHOP).count() == 0
    assert db_session.query(Configuration).filter_by(shop=SHOP).count() == 0
