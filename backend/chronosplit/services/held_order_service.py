# Overview: Read model of orders currently held at the pre-sale location.

from __future__ import annotations

from dataclasses import dataclass, field

from flask import current_app

from . import shopify_client
from .shopify_client import ShopifyAdminClient
from chronosplit.time_utils import parse_iso_datetime, to_utc_z


@dataclass
class HeldOrderView:
    """Projection of an order with at least one held fulfillment order."""
    id: str
    name: str
    created_at: str | None
    items: str
    fulfillment_order_ids: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "created_at": self.created_at,
            "items": self.items,
            "fulfillment_order_ids": list(self.fulfillment_order_ids),
        }


def normalize_filter(item_filter: str | None) -> str:
    return (item_filter or "").strip().lower()


def title_matches(title: str, item_filter: str | None) -> bool:
    """Case-insensitive substring match; an empty filter matches everything."""
    needle = normalize_filter(item_filter)
    if not needle:
        return True
    return needle in (title or "").lower()


def _project(order: dict, held: list[dict]) -> HeldOrderView:
    titles = []
    for fo in held:
        titles.extend(item["title"] for item in shopify_client.line_items_of(fo))
    return HeldOrderView(
        id=order["id"],
        name=order.get("name") or order["id"],
        created_at=to_utc_z(parse_iso_datetime(order.get("createdAt"))),
        items=", ".join(titles),
        fulfillment_order_ids=[fo["id"] for fo in held],
    )


def list_held_orders(
    client: ShopifyAdminClient,
    location_id: str | None,
    item_filter: str | None = None,
) -> list[HeldOrderView]:
    """
    Orders with a fulfillment order ON_HOLD at location_id.

    Reads a single page of unfulfilled orders; shops with more open orders
    than ORDERS_PAGE_SIZE only see the first page. When item_filter is set,
    only orders with at least one matching held line item are returned.
    """
    if not location_id:
        return []

    page_size = current_app.config.get("ORDERS_PAGE_SIZE", 50)
    orders = shopify_client.list_unfulfilled_orders(client, first=page_size)

    views = []
    for order in orders:
        held = shopify_client.held_fulfillment_orders(order, location_id)
        if not held:
            continue
        if normalize_filter(item_filter):
            matched = any(
                title_matches(item["title"], item_filter)
                for fo in held
                for item in shopify_client.line_items_of(fo)
            )
            if not matched:
                continue
        views.append(_project(order, held))
    return views


def count_held_fulfillment_orders(views: list[HeldOrderView]) -> int:
    return sum(len(v.fulfillment_order_ids) for v in views)
