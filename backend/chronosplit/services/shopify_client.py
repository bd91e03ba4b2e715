# Overview: Shopify Admin GraphQL client and the queries/mutations the app issues.

"""
Shopify Admin API integration.

All platform state (locations, orders, fulfillment orders, line items) is
read through this module and never cached: every flow re-queries before it
mutates. Calls are synchronous and issued one at a time.

Error model:
- Transport failures, HTTP status >= 400 and top-level GraphQL "errors"
  raise ShopifyApiError. Callers decide whether that aborts their unit of
  work.
- Mutation "userErrors" are business-level rejections. They are returned
  to the caller as a list of {"field", "message"} dicts and never raised.

Documentation: https://shopify.dev/docs/api/admin-graphql
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx
from flask import current_app

from .shop_session_service import ShopSessionError, get_session


HOLD_REASON_OUT_OF_STOCK = "INVENTORY_OUT_OF_STOCK"

STATUS_OPEN = "OPEN"
STATUS_ON_HOLD = "ON_HOLD"


class ShopifyApiError(Exception):
    """Raised when a call to the Admin API fails outright."""
    def __init__(self, message: str, operation: str = None, status_code: int = None, errors: List = None):
        self.message = message
        self.operation = operation
        self.status_code = status_code
        self.errors = errors or []
        super().__init__(self.message)


class ShopifyAdminClient:
    """
    Thin synchronous client for one shop's Admin GraphQL endpoint.

    transport is accepted so tests can serve the API from an
    httpx.MockTransport.
    """

    def __init__(
        self,
        shop: str,
        access_token: str,
        api_version: str = "2025-01",
        timeout: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.shop = shop
        self.api_version = api_version
        self._http = httpx.Client(
            timeout=timeout,
            transport=transport,
            headers={
                "X-Shopify-Access-Token": access_token,
                "Content-Type": "application/json",
                "Accept": "application/json",
            },
        )

    @property
    def endpoint(self) -> str:
        return f"https://{self.shop}/admin/api/{self.api_version}/graphql.json"

    def graphql(self, operation: str, query: str, variables: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Run one GraphQL document and return its "data" object."""
        body = {"query": query, "operationName": operation, "variables": variables or {}}
        current_app.logger.debug("Shopify %s %s %s", self.shop, operation, variables or {})

        try:
            response = self._http.post(self.endpoint, json=body)
        except httpx.HTTPError as exc:
            raise ShopifyApiError(
                message=f"Shopify request failed: {exc}",
                operation=operation,
            ) from exc

        if response.status_code >= 400:
            raise ShopifyApiError(
                message=f"Shopify API error {response.status_code}: {response.text[:500]}",
                operation=operation,
                status_code=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise ShopifyApiError(
                message="Shopify returned a non-JSON response",
                operation=operation,
                status_code=response.status_code,
            ) from exc

        if payload.get("errors"):
            messages = "; ".join(str(e.get("message", e)) for e in payload["errors"])
            raise ShopifyApiError(
                message=f"Shopify GraphQL error in {operation}: {messages}",
                operation=operation,
                status_code=response.status_code,
                errors=payload["errors"],
            )

        data = payload.get("data")
        if data is None:
            raise ShopifyApiError(message=f"Shopify returned no data for {operation}", operation=operation)
        return data

    def close(self):
        self._http.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


def client_for_shop(shop: str) -> ShopifyAdminClient:
    """Build a client from the shop's stored session and app config."""
    session = get_session(shop)
    if not session:
        raise ShopSessionError(f"Shop {shop} is not installed")
    return ShopifyAdminClient(
        shop=session.shop,
        access_token=session.access_token,
        api_version=current_app.config.get("SHOPIFY_API_VERSION", "2025-01"),
        timeout=current_app.config.get("SHOPIFY_TIMEOUT_SECONDS", 30.0),
    )


# -----------------------------------------------------------------------------
# Queries
# -----------------------------------------------------------------------------

LOCATIONS_QUERY = """
query Locations {
  locations(first: 20) {
    nodes {
      id
      name
    }
  }
}
"""

FULFILLMENT_ORDER_FIELDS = """
  id
  status
  assignedLocation {
    name
    location {
      id
    }
  }
  lineItems(first: 50) {
    nodes {
      id
      remainingQuantity
      lineItem {
        title
      }
    }
  }
"""

UNFULFILLED_ORDERS_QUERY = """
query UnfulfilledOrders($first: Int!, $query: String!) {
  orders(first: $first, query: $query) {
    nodes {
      id
      name
      createdAt
      fulfillmentOrders(first: 10) {
        nodes {%s}
      }
    }
  }
}
""" % FULFILLMENT_ORDER_FIELDS

ORDER_FULFILLMENT_QUERY = """
query OrderFulfillmentOrders($id: ID!) {
  order(id: $id) {
    id
    name
    createdAt
    tags
    fulfillmentOrders(first: 10) {
      nodes {%s}
    }
  }
}
""" % FULFILLMENT_ORDER_FIELDS


def list_locations(client: ShopifyAdminClient) -> List[Dict[str, str]]:
    data = client.graphql("Locations", LOCATIONS_QUERY)
    return [{"id": n["id"], "name": n["name"]} for n in data["locations"]["nodes"]]


def list_unfulfilled_orders(client: ShopifyAdminClient, first: int = 50) -> List[Dict[str, Any]]:
    """Single page of unfulfilled orders with their fulfillment orders."""
    data = client.graphql(
        "UnfulfilledOrders",
        UNFULFILLED_ORDERS_QUERY,
        {"first": first, "query": "fulfillment_status:unfulfilled"},
    )
    return data["orders"]["nodes"]


def get_order(client: ShopifyAdminClient, order_id: str) -> Optional[Dict[str, Any]]:
    """Fresh read of one order and its fulfillment orders; None if unknown."""
    data = client.graphql("OrderFulfillmentOrders", ORDER_FULFILLMENT_QUERY, {"id": order_id})
    return data.get("order")


def fulfillment_orders_of(order: Dict[str, Any]) -> List[Dict[str, Any]]:
    return ((order or {}).get("fulfillmentOrders") or {}).get("nodes") or []


def assigned_location_id(fulfillment_order: Dict[str, Any]) -> Optional[str]:
    assigned = fulfillment_order.get("assignedLocation") or {}
    location = assigned.get("location") or {}
    return location.get("id")


def line_items_of(fulfillment_order: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Line items still to be fulfilled, as {"id", "title", "quantity"}."""
    items = []
    for node in (fulfillment_order.get("lineItems") or {}).get("nodes") or []:
        quantity = int(node.get("remainingQuantity") or 0)
        if quantity <= 0:
            continue
        items.append({
            "id": node["id"],
            "title": (node.get("lineItem") or {}).get("title") or "",
            "quantity": quantity,
        })
    return items


def held_fulfillment_orders(order: Dict[str, Any], location_id: str) -> List[Dict[str, Any]]:
    """Fulfillment orders of an order that are ON_HOLD at the location."""
    return [
        fo for fo in fulfillment_orders_of(order)
        if assigned_location_id(fo) == location_id and fo.get("status") == STATUS_ON_HOLD
    ]


# -----------------------------------------------------------------------------
# Mutations
# -----------------------------------------------------------------------------

HOLD_MUTATION = """
mutation FulfillmentOrderHold($id: ID!, $fulfillmentHold: FulfillmentOrderHoldInput!) {
  fulfillmentOrderHold(id: $id, fulfillmentHold: $fulfillmentHold) {
    fulfillmentOrder {
      id
      status
    }
    userErrors {
      field
      message
    }
  }
}
"""

RELEASE_HOLD_MUTATION = """
mutation FulfillmentOrderReleaseHold($id: ID!) {
  fulfillmentOrderReleaseHold(id: $id) {
    fulfillmentOrder {
      id
      status
    }
    userErrors {
      field
      message
    }
  }
}
"""

SPLIT_MUTATION = """
mutation FulfillmentOrderSplit($fulfillmentOrderSplits: [FulfillmentOrderSplitInput!]!) {
  fulfillmentOrderSplit(fulfillmentOrderSplits: $fulfillmentOrderSplits) {
    fulfillmentOrderSplits {
      fulfillmentOrder {
        id
        status
      }
      remainingFulfillmentOrder {
        id
        status
      }
    }
    userErrors {
      field
      message
    }
  }
}
"""

TAGS_ADD_MUTATION = """
mutation TagsAdd($id: ID!, $tags: [String!]!) {
  tagsAdd(id: $id, tags: $tags) {
    node {
      id
    }
    userErrors {
      field
      message
    }
  }
}
"""

TAGS_REMOVE_MUTATION = """
mutation TagsRemove($id: ID!, $tags: [String!]!) {
  tagsRemove(id: $id, tags: $tags) {
    node {
      id
    }
    userErrors {
      field
      message
    }
  }
}
"""


def hold_fulfillment_order(
    client: ShopifyAdminClient,
    fulfillment_order_id: str,
    reason_notes: str,
    reason: str = HOLD_REASON_OUT_OF_STOCK,
) -> List[Dict[str, Any]]:
    data = client.graphql(
        "FulfillmentOrderHold",
        HOLD_MUTATION,
        {
            "id": fulfillment_order_id,
            "fulfillmentHold": {"reason": reason, "reasonNotes": reason_notes},
        },
    )
    return data["fulfillmentOrderHold"]["userErrors"]


def release_fulfillment_order_hold(client: ShopifyAdminClient, fulfillment_order_id: str) -> List[Dict[str, Any]]:
    data = client.graphql("FulfillmentOrderReleaseHold", RELEASE_HOLD_MUTATION, {"id": fulfillment_order_id})
    return data["fulfillmentOrderReleaseHold"]["userErrors"]


def split_fulfillment_order(
    client: ShopifyAdminClient,
    fulfillment_order_id: str,
    line_items: List[Dict[str, Any]],
) -> tuple[List[Dict[str, Any]], List[Dict[str, Any]]]:
    """
    Move line_items ({"id", "quantity"}) into a new fulfillment order.

    Returns (splits, user_errors).
    """
    data = client.graphql(
        "FulfillmentOrderSplit",
        SPLIT_MUTATION,
        {
            "fulfillmentOrderSplits": [
                {
                    "fulfillmentOrderId": fulfillment_order_id,
                    "fulfillmentOrderLineItems": [
                        {"id": item["id"], "quantity": item["quantity"]} for item in line_items
                    ],
                }
            ]
        },
    )
    result = data["fulfillmentOrderSplit"]
    return result.get("fulfillmentOrderSplits") or [], result["userErrors"]


def add_tags(client: ShopifyAdminClient, resource_id: str, tags: List[str]) -> List[Dict[str, Any]]:
    data = client.graphql("TagsAdd", TAGS_ADD_MUTATION, {"id": resource_id, "tags": tags})
    return data["tagsAdd"]["userErrors"]


def remove_tags(client: ShopifyAdminClient, resource_id: str, tags: List[str]) -> List[Dict[str, Any]]:
    data = client.graphql("TagsRemove", TAGS_REMOVE_MUTATION, {"id": resource_id, "tags": tags})
    return data["tagsRemove"]["userErrors"]
