"""
Pytest fixtures for Chrono Split backend tests.

Provides the application on an in-memory database, an installed shop, and a
fake Shopify Admin GraphQL API served through httpx.MockTransport.
"""

import itertools
import json

import httpx
import pytest

from chronosplit import create_app
from chronosplit.extensions import db
from chronosplit.services import configuration_service, shop_session_service, shopify_client
from chronosplit.services.shop_session_service import ShopSessionError


SHOP = "demo-store.myshopify.com"
PRESALE_LOCATION = "gid://shopify/Location/100"
MAIN_LOCATION = "gid://shopify/Location/200"
WEBHOOK_SECRET = "test-webhook-secret"


class FakeShopify:
    """
    In-memory stand-in for one shop's Admin GraphQL API.

    Every request is recorded in calls as (operationName, variables).
    - reject: operationName -> userErrors returned instead of applying it
    - fail_ids: any request whose variables reference one of these ids
      gets an HTTP 500
    """

    def __init__(self):
        self.locations = [
            {"id": PRESALE_LOCATION, "name": "Pre-Sale Warehouse"},
            {"id": MAIN_LOCATION, "name": "Main Warehouse"},
        ]
        self.orders = {}
        self.calls = []
        self.reject = {}
        self.fail_ids = set()
        self._ids = itertools.count(1)

    # -- seeding -------------------------------------------------------------

    def add_order(self, name, fulfillment_orders, tags=None, created_at="2025-12-22T09:02:20Z"):
        order_id = f"gid://shopify/Order/{next(self._ids)}"
        order = {
            "id": order_id,
            "name": name,
            "createdAt": created_at,
            "tags": list(tags or []),
            "fulfillment_orders": [],
        }
        for spec in fulfillment_orders:
            order["fulfillment_orders"].append(self._new_fulfillment_order(*spec))
        self.orders[order_id] = order
        return order

    def _new_fulfillment_order(self, location_id, status, items):
        fo_id = f"gid://shopify/FulfillmentOrder/{next(self._ids)}"
        return {
            "id": fo_id,
            "status": status,
            "location_id": location_id,
            "line_items": [
                {"id": f"gid://shopify/FulfillmentOrderLineItem/{next(self._ids)}", "title": title, "quantity": qty}
                for title, qty in items
            ],
        }

    # -- inspection ----------------------------------------------------------

    def operations(self):
        return [op for op, _ in self.calls]

    def mutations(self):
        return [op for op in self.operations() if op.startswith(("Fulfillment", "Tags"))]

    def calls_for(self, operation):
        return [variables for op, variables in self.calls if op == operation]

    def find_fulfillment_order(self, fo_id):
        for order in self.orders.values():
            for fo in order["fulfillment_orders"]:
                if fo["id"] == fo_id:
                    return order, fo
        return None, None

    def fulfillment_orders(self, order):
        return self.orders[order["id"]]["fulfillment_orders"]

    def tags(self, order):
        return self.orders[order["id"]]["tags"]

    # -- transport -----------------------------------------------------------

    def handle(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        operation = body["operationName"]
        variables = body.get("variables") or {}
        self.calls.append((operation, variables))

        if self.fail_ids and any(f'"{i}"' in json.dumps(variables) for i in self.fail_ids):
            return httpx.Response(500, text="Internal Server Error")

        data = getattr(self, f"_op_{operation}")(variables)
        return httpx.Response(200, json={"data": data})

    def _render_fo(self, fo):
        location_name = next((l["name"] for l in self.locations if l["id"] == fo["location_id"]), None)
        return {
            "id": fo["id"],
            "status": fo["status"],
            "assignedLocation": {"name": location_name, "location": {"id": fo["location_id"]}},
            "lineItems": {
                "nodes": [
                    {"id": li["id"], "remainingQuantity": li["quantity"], "lineItem": {"title": li["title"]}}
                    for li in fo["line_items"]
                ]
            },
        }

    def _render_order(self, order):
        return {
            "id": order["id"],
            "name": order["name"],
            "createdAt": order["createdAt"],
            "tags": list(order["tags"]),
            "fulfillmentOrders": {"nodes": [self._render_fo(fo) for fo in order["fulfillment_orders"]]},
        }

    def _user_errors(self, operation):
        return list(self.reject.get(operation, []))

    def _op_Locations(self, variables):
        return {"locations": {"nodes": list(self.locations)}}

    def _op_UnfulfilledOrders(self, variables):
        orders = [
            self._render_order(o) for o in self.orders.values()
            if any(fo["status"] != "CLOSED" for fo in o["fulfillment_orders"])
        ]
        return {"orders": {"nodes": orders[: variables["first"]]}}

    def _op_OrderFulfillmentOrders(self, variables):
        order = self.orders.get(variables["id"])
        return {"order": self._render_order(order) if order else None}

    def _op_FulfillmentOrderHold(self, variables):
        errors = self._user_errors("FulfillmentOrderHold")
        _, fo = self.find_fulfillment_order(variables["id"])
        if not errors and fo["status"] != "OPEN":
            errors = [{"field": ["id"], "message": "Fulfillment order is not open"}]
        if not errors:
            fo["status"] = "ON_HOLD"
        return {"fulfillmentOrderHold": {"fulfillmentOrder": {"id": fo["id"], "status": fo["status"]}, "userErrors": errors}}

    def _op_FulfillmentOrderReleaseHold(self, variables):
        errors = self._user_errors("FulfillmentOrderReleaseHold")
        _, fo = self.find_fulfillment_order(variables["id"])
        if not errors and fo["status"] != "ON_HOLD":
            errors = [{"field": ["id"], "message": "Fulfillment order is not on hold"}]
        if not errors:
            fo["status"] = "OPEN"
        return {"fulfillmentOrderReleaseHold": {"fulfillmentOrder": {"id": fo["id"], "status": fo["status"]}, "userErrors": errors}}

    def _op_FulfillmentOrderSplit(self, variables):
        split = variables["fulfillmentOrderSplits"][0]
        errors = self._user_errors("FulfillmentOrderSplit")
        order, fo = self.find_fulfillment_order(split["fulfillmentOrderId"])
        if not errors and fo["status"] == "ON_HOLD":
            errors = [{"field": None, "message": "Fulfillment order is on hold"}]
        if errors:
            return {"fulfillmentOrderSplit": {"fulfillmentOrderSplits": None, "userErrors": errors}}

        moved = []
        for requested in split["fulfillmentOrderLineItems"]:
            line = next(li for li in fo["line_items"] if li["id"] == requested["id"])
            line["quantity"] -= requested["quantity"]
            moved.append((line["title"], requested["quantity"]))
        fo["line_items"] = [li for li in fo["line_items"] if li["quantity"] > 0]
        new_fo = self._new_fulfillment_order(fo["location_id"], "OPEN", moved)
        order["fulfillment_orders"].append(new_fo)
        return {
            "fulfillmentOrderSplit": {
                "fulfillmentOrderSplits": [
                    {
                        "fulfillmentOrder": {"id": fo["id"], "status": fo["status"]},
                        "remainingFulfillmentOrder": {"id": new_fo["id"], "status": new_fo["status"]},
                    }
                ],
                "userErrors": [],
            }
        }

    def _op_TagsAdd(self, variables):
        errors = self._user_errors("TagsAdd")
        if not errors:
            tags = self.orders[variables["id"]]["tags"]
            tags.extend(t for t in variables["tags"] if t not in tags)
        return {"tagsAdd": {"node": {"id": variables["id"]}, "userErrors": errors}}

    def _op_TagsRemove(self, variables):
        errors = self._user_errors("TagsRemove")
        if not errors:
            order = self.orders[variables["id"]]
            order["tags"] = [t for t in order["tags"] if t not in variables["tags"]]
        return {"tagsRemove": {"node": {"id": variables["id"]}, "userErrors": errors}}


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'SHOPIFY_API_SECRET': WEBHOOK_SECRET,
        'RELEASE_CONTINUE_ON_ERROR': False,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def shopify(monkeypatch):
    """Fake Admin API; client_for_shop is patched to talk to it."""
    fake = FakeShopify()

    def _client_for_shop(shop):
        if not shop_session_service.get_session(shop):
            raise ShopSessionError(f"Shop {shop} is not installed")
        return shopify_client.ShopifyAdminClient(
            shop=shop,
            access_token="shpat_test",
            transport=httpx.MockTransport(fake.handle),
        )

    monkeypatch.setattr(shopify_client, "client_for_shop", _client_for_shop)
    return fake


@pytest.fixture(scope='function')
def admin_client(shopify):
    """Admin API client bound to the fake shop."""
    with shopify_client.ShopifyAdminClient(
        shop=SHOP,
        access_token="shpat_test",
        transport=httpx.MockTransport(shopify.handle),
    ) as admin:
        yield admin


@pytest.fixture(scope='function')
def installed_shop(db_session):
    """Install SHOP; returns the plaintext operator token."""
    _, token = shop_session_service.install_shop(SHOP, "shpat_test", "read_orders,write_orders")
    return token


@pytest.fixture(scope='function')
def configured_shop(installed_shop):
    """Installed shop with the pre-sale location saved."""
    configuration_service.save_location(SHOP, PRESALE_LOCATION, location_name="Pre-Sale Warehouse")
    return installed_shop


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}
