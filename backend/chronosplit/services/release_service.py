# Overview: Releases pre-sale holds, splitting orders whose items only partly match.

"""
Release reconciliation.

For each target order the engine re-reads the order from Shopify, finds
its fulfillment orders ON_HOLD at the pre-sale location and partitions
their line items by the operator's title filter:

- nothing matches: the order is skipped
- everything matches (or no filter): the hold is released
- a strict subset matches: release the hold, split the matching items
  into a new fulfillment order (left released), then re-hold the original
  fulfillment order that now carries only the retained items

The partial path runs as a CompensatingSequence. If the split is rejected
the recorded undo re-holds the original fulfillment order, so it is never
left unlocked without a split having happened.

After the batch, finalize_release re-reads each touched order, removes
the marker tag from orders with no remaining hold at the location, and
appends one audit entry.

BATCH FAILURE POLICY: an outright Shopify failure (ShopifyApiError) either
aborts the batch (ReleaseBatchError, the default) or is recorded on the
order and the batch continues (RELEASE_CONTINUE_ON_ERROR). Orders released
before an abort are not rolled back.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable

from flask import current_app

from . import audit_service, shopify_client
from .held_order_service import title_matches, normalize_filter
from .hold_service import PRESALE_HOLD_NOTE
from .shopify_client import ShopifyAdminClient, ShopifyApiError
from ..models.audit import AUDIT_ACTION_RELEASE, AUDIT_ACTION_SPLIT_RELEASE


RETAINED_HOLD_NOTE = "Pre-Sale Hold: remaining items awaiting stock"

RESULT_FULL = "FULL"
RESULT_SPLIT = "SPLIT"
RESULT_NO_HOLD = "NO_HOLD"
RESULT_NO_MATCH = "NO_MATCH"
RESULT_DROPPED = "DROPPED"


class ReleaseError(Exception):
    """Raised when release operations fail."""
    pass


class StepRejected(ReleaseError):
    """A mutation step returned userErrors."""
    def __init__(self, step: str, user_errors: list):
        self.step = step
        self.user_errors = user_errors
        messages = "; ".join(e.get("message", "") for e in user_errors)
        super().__init__(f"{step} rejected: {messages}")


class OrderReleaseFailed(ReleaseError):
    """An outright Shopify failure while releasing one order."""
    def __init__(self, order_id: str, mutated: bool, cause: Exception):
        self.order_id = order_id
        self.mutated = mutated
        self.cause = cause
        super().__init__(f"Release of {order_id} failed: {cause}")


class ReleaseBatchError(ReleaseError):
    """The batch was aborted; outcome holds what completed before the failure."""
    def __init__(self, message: str, outcome: "ReleaseOutcome", order_id: str):
        self.outcome = outcome
        self.order_id = order_id
        super().__init__(message)


@dataclass
class _CompletedStep:
    name: str
    undo: Callable[[], list] | None


class CompensatingSequence:
    """
    Runs mutation steps in order, remembering how to undo each one.

    A step is a callable returning Shopify userErrors. A rejected required
    step, or any exception, runs the undo of the completed steps in reverse
    order and re-raises. Rejections of optional steps are logged and the
    sequence carries on.
    """

    def __init__(self, label: str):
        self.label = label
        self._completed: list[_CompletedStep] = []

    @property
    def mutated(self) -> bool:
        return bool(self._completed)

    def run(self, name: str, action: Callable[[], list], undo: Callable[[], list] | None = None, *, required: bool = True):
        try:
            user_errors = action()
        except Exception:
            self.compensate()
            raise

        if user_errors:
            if required:
                self.compensate()
                raise StepRejected(name, user_errors)
            current_app.logger.warning("%s: %s rejected: %s", self.label, name, user_errors)

        self._completed.append(_CompletedStep(name=name, undo=undo))

    def compensate(self):
        while self._completed:
            step = self._completed.pop()
            if step.undo is None:
                continue
            current_app.logger.info("%s: undoing %s", self.label, step.name)
            try:
                user_errors = step.undo()
            except ShopifyApiError:
                current_app.logger.exception("%s: undo of %s failed", self.label, step.name)
                continue
            if user_errors:
                current_app.logger.warning("%s: undo of %s rejected: %s", self.label, step.name, user_errors)


@dataclass
class OrderReleaseResult:
    order_id: str
    order_name: str
    result: str
    mutated: bool = False
    message: str | None = None

    @property
    def released(self) -> bool:
        return self.result in (RESULT_FULL, RESULT_SPLIT)


@dataclass
class ReleaseOutcome:
    released: int = 0
    split: int = 0
    skipped: int = 0
    failed: int = 0
    order_names: list[str] = field(default_factory=list)
    touched_order_ids: list[str] = field(default_factory=list)
    untagged_order_ids: list[str] = field(default_factory=list)
    errors: list[dict] = field(default_factory=list)

    def touch(self, order_id: str):
        if order_id not in self.touched_order_ids:
            self.touched_order_ids.append(order_id)

    def record(self, result: OrderReleaseResult):
        if result.mutated:
            self.touch(result.order_id)
        if result.released:
            self.released += 1
            self.order_names.append(result.order_name)
            if result.result == RESULT_SPLIT:
                self.split += 1
        elif result.result == RESULT_DROPPED:
            self.failed += 1
            self.errors.append({"order_id": result.order_id, "message": result.message})
        else:
            self.skipped += 1

    def to_dict(self) -> dict:
        return {
            "released": self.released,
            "split": self.split,
            "skipped": self.skipped,
            "failed": self.failed,
            "order_names": list(self.order_names),
            "touched_order_ids": list(self.touched_order_ids),
            "untagged_order_ids": list(self.untagged_order_ids),
            "errors": list(self.errors),
        }


def partition_line_items(line_items: list[dict], item_filter: str | None) -> tuple[list[dict], list[dict]]:
    """Split line items into (release, retain) by title filter."""
    release, retain = [], []
    for item in line_items:
        if title_matches(item["title"], item_filter):
            release.append(item)
        else:
            retain.append(item)
    return release, retain


def _release_fulfillment_order(client: ShopifyAdminClient, fo: dict, release: list[dict], retain: list[dict], label: str) -> str:
    fo_id = fo["id"]
    seq = CompensatingSequence(label)

    def release_hold():
        return shopify_client.release_fulfillment_order_hold(client, fo_id)

    def restore_hold():
        return shopify_client.hold_fulfillment_order(client, fo_id, PRESALE_HOLD_NOTE)

    def hold_retained():
        return shopify_client.hold_fulfillment_order(client, fo_id, RETAINED_HOLD_NOTE)

    if not retain:
        seq.run("release hold", release_hold)
        current_app.logger.info("%s: released fulfillment order %s", label, fo_id)
        return RESULT_FULL

    # The platform only splits fulfillment orders that are not on hold.
    seq.run("release hold", release_hold, undo=restore_hold)
    seq.run(
        "split",
        lambda: shopify_client.split_fulfillment_order(client, fo_id, release)[1],
    )
    seq.run("re-hold retained items", hold_retained, required=False)
    current_app.logger.info(
        "%s: split %d item(s) out of %s, %d item(s) remain held",
        label, len(release), fo_id, len(retain),
    )
    return RESULT_SPLIT


def release_order(client: ShopifyAdminClient, location_id: str, order_id: str, item_filter: str | None = None) -> OrderReleaseResult:
    """
    Release the pre-sale holds of one order.

    Raises OrderReleaseFailed on an outright Shopify failure.
    """
    mutated = False
    attempted = False
    try:
        order = shopify_client.get_order(client, order_id)
        if order is None:
            return OrderReleaseResult(order_id=order_id, order_name=order_id, result=RESULT_NO_HOLD)

        name = order.get("name") or order_id
        held = shopify_client.held_fulfillment_orders(order, location_id)
        if not held:
            return OrderReleaseResult(order_id=order_id, order_name=name, result=RESULT_NO_HOLD)

        status = RESULT_NO_MATCH
        message = None
        for fo in held:
            release, retain = partition_line_items(shopify_client.line_items_of(fo), item_filter)
            if not release:
                continue
            attempted = True
            try:
                fo_result = _release_fulfillment_order(client, fo, release, retain, label=f"{name} {fo['id']}")
            except StepRejected as exc:
                # Release rejected, or split rejected and the hold restored.
                current_app.logger.warning("%s: %s", name, exc)
                mutated = mutated or exc.step != "release hold"
                if status == RESULT_NO_MATCH:
                    status = RESULT_DROPPED
                    message = str(exc)
                continue
            mutated = True
            if fo_result == RESULT_SPLIT or status != RESULT_SPLIT:
                status = fo_result

        return OrderReleaseResult(order_id=order_id, order_name=name, result=status, mutated=mutated, message=message)
    except ShopifyApiError as exc:
        # A failure mid-sequence may have left mutations behind; the
        # finalizer re-reads the order either way.
        raise OrderReleaseFailed(order_id, mutated or attempted, exc) from exc


def _dedupe(order_ids) -> list[str]:
    seen = []
    for order_id in order_ids or []:
        if order_id and order_id not in seen:
            seen.append(order_id)
    return seen


def release_orders(
    client: ShopifyAdminClient,
    location_id: str,
    order_ids,
    item_filter: str | None = None,
    *,
    continue_on_error: bool = False,
) -> ReleaseOutcome:
    """
    Run the release engine over order_ids, sequentially.

    Raises ReleaseBatchError on the first outright failure unless
    continue_on_error is set.
    """
    outcome = ReleaseOutcome()
    for order_id in _dedupe(order_ids):
        try:
            result = release_order(client, location_id, order_id, item_filter)
        except OrderReleaseFailed as exc:
            if exc.mutated:
                outcome.touch(order_id)
            outcome.failed += 1
            outcome.errors.append({"order_id": order_id, "message": str(exc.cause)})
            if not continue_on_error:
                raise ReleaseBatchError(
                    f"Release aborted at {order_id}: {exc.cause}",
                    outcome=outcome,
                    order_id=order_id,
                ) from exc
            current_app.logger.exception("Release of %s failed; continuing batch", order_id)
            continue
        outcome.record(result)
    return outcome


def describe_release(outcome: ReleaseOutcome, item_filter: str | None = None) -> str:
    noun = "order" if outcome.released == 1 else "orders"
    parts = [f"Released {outcome.released} {noun}"]
    if outcome.split:
        parts.append(f" ({outcome.split} split)")
    if normalize_filter(item_filter):
        parts.append(f' matching "{item_filter.strip()}"')
    if outcome.order_names:
        parts.append(": " + ", ".join(outcome.order_names))
    return "".join(parts)


def finalize_release(
    client: ShopifyAdminClient,
    shop: str,
    location_id: str,
    outcome: ReleaseOutcome,
    item_filter: str | None = None,
):
    """
    Remove the marker tag from touched orders with no remaining hold, then
    append the audit entry. Returns the entry, or None if nothing was released.

    Tag verification is best effort per order: a failure is logged and the
    order keeps its tag.
    """
    tag = current_app.config.get("PRESALE_TAG")

    for order_id in outcome.touched_order_ids:
        try:
            order = shopify_client.get_order(client, order_id)
            if order is None:
                continue
            if shopify_client.held_fulfillment_orders(order, location_id):
                current_app.logger.info("Order %s still has a pre-sale hold; keeping tag", order_id)
                continue
            user_errors = shopify_client.remove_tags(client, order_id, [tag])
        except ShopifyApiError as exc:
            current_app.logger.exception("Tag cleanup failed for %s", order_id)
            outcome.errors.append({"order_id": order_id, "message": str(exc)})
            continue
        if user_errors:
            current_app.logger.warning("Error removing tag from %s: %s", order_id, user_errors)
        else:
            outcome.untagged_order_ids.append(order_id)

    if outcome.released == 0:
        return None

    action = AUDIT_ACTION_SPLIT_RELEASE if outcome.split else AUDIT_ACTION_RELEASE
    return audit_service.append_entry(shop, action, describe_release(outcome, item_filter))


def run_release(
    client: ShopifyAdminClient,
    shop: str,
    location_id: str,
    order_ids,
    item_filter: str | None = None,
    *,
    continue_on_error: bool | None = None,
) -> ReleaseOutcome:
    """
    Engine plus finalizer. On an aborted batch the orders released so far
    are still finalized before ReleaseBatchError propagates.
    """
    if continue_on_error is None:
        continue_on_error = bool(current_app.config.get("RELEASE_CONTINUE_ON_ERROR", False))

    try:
        outcome = release_orders(
            client, location_id, order_ids, item_filter, continue_on_error=continue_on_error
        )
    except ReleaseBatchError as exc:
        current_app.logger.exception("Release batch aborted for %s", shop)
        finalize_release(client, shop, location_id, exc.outcome, item_filter)
        raise

    finalize_release(client, shop, location_id, outcome, item_filter)
    return outcome
