# Overview: Service-layer operations for suitcase items; checkout, quantity, return, loss and sale annotations.

# backend/maleta/services/suitcase_item_service.py
"""
Suitcase Item Store

WHY: Items move between stock and suitcases constantly. Every movement
touches two records (the suitcase item and the inventory stock), so each
public operation here writes both inside ONE commit: an addition decrements
stock exactly once, a return increments it exactly once.

RULES:
- Only in_possession items may change quantity or go back to stock.
- Adding an inventory item already in_possession in the same suitcase
  merges into the existing row.
- Status writes go through item_status.transition_item.
"""

from __future__ import annotations

import logging
from datetime import datetime

from ..extensions import db
from ..models import Suitcase, SuitcaseItem, SuitcaseItemSale
from . import inventory_service
from .concurrency import commit_or_raise, lock_for_update, run_with_retry
from .errors import SuitcaseItemNotFound, SuitcaseNotFound
from .item_status import (
    ITEM_STATUS_IN_POSSESSION,
    ITEM_STATUS_LOST,
    ITEM_STATUS_RETURNED,
    require_in_possession,
    transition_item,
    validate_status,
)

logger = logging.getLogger(__name__)


# =============================================================================
# LOOKUPS
# =============================================================================

def get_suitcase(suitcase_id: int) -> Suitcase:
    suitcase = db.session.get(Suitcase, suitcase_id)
    if suitcase is None:
        raise SuitcaseNotFound(f"Suitcase {suitcase_id} not found")
    return suitcase


def get_item(item_id: int, *, lock: bool = False) -> SuitcaseItem:
    query = db.session.query(SuitcaseItem).filter_by(id=item_id)
    if lock:
        query = lock_for_update(query)
    item = query.first()
    if item is None:
        raise SuitcaseItemNotFound(f"Suitcase item {item_id} not found")
    return item


def get_suitcase_items(suitcase_id: int, status: str | None = None) -> list[SuitcaseItem]:
    """All items attached to a suitcase, optionally filtered by status."""
    query = db.session.query(SuitcaseItem).filter(SuitcaseItem.suitcase_id == suitcase_id)
    if status is not None:
        validate_status(status)
        query = query.filter(SuitcaseItem.status == status)
    return query.order_by(SuitcaseItem.id).all()


def count_attached_items(suitcase_id: int) -> int:
    return db.session.query(SuitcaseItem).filter_by(suitcase_id=suitcase_id).count()


# =============================================================================
# CHECKOUT
# =============================================================================

def add_item_to_suitcase(suitcase_id: int, inventory_id: int, quantity: int = 1) -> SuitcaseItem:
    """
    Check an inventory item out into a suitcase.

    The stock decrement and the suitcase item write share one commit.

    Raises:
        SuitcaseNotFound, InventoryItemNotFound, InsufficientStock
        ValueError: quantity < 1
    """
    if quantity is None or int(quantity) < 1:
        raise ValueError("quantity must be at least 1")
    quantity = int(quantity)

    def _op():
        get_suitcase(suitcase_id)
        inventory_service.get_inventory_item(inventory_id)

        item = lock_for_update(
            db.session.query(SuitcaseItem).filter_by(
                suitcase_id=suitcase_id,
                inventory_id=inventory_id,
                status=ITEM_STATUS_IN_POSSESSION,
            )
        ).first()

        if item is None:
            item = SuitcaseItem(
                suitcase_id=suitcase_id,
                inventory_id=inventory_id,
                quantity=quantity,
                status=ITEM_STATUS_IN_POSSESSION,
            )
            db.session.add(item)
        else:
            item.quantity = item.quantity + quantity
        db.session.flush()

        inventory_service.checkout_to_suitcase(
            inventory_id,
            quantity,
            suitcase_id=suitcase_id,
            suitcase_item_id=item.id,
        )
        commit_or_raise(f"checkout of inventory {inventory_id} to suitcase {suitcase_id}")
        return item

    try:
        item = run_with_retry(_op)
    except Exception:
        db.session.rollback()
        raise
    logger.info(
        "Checked out inventory %s x%s to suitcase %s (item %s)",
        inventory_id, quantity, suitcase_id, item.id,
    )
    return item


def update_item_quantity(item_id: int, new_quantity: int) -> SuitcaseItem:
    """
    Change how many units an in_possession item holds; stock follows the difference.

    Raises:
        InvalidItemState: item is not in_possession
        InsufficientStock: not enough stock to increase
    """
    if new_quantity is None or int(new_quantity) < 1:
        raise ValueError("quantity must be at least 1")
    new_quantity = int(new_quantity)

    def _op():
        item = get_item(item_id, lock=True)
        require_in_possession(item, "change quantity of")

        diff = new_quantity - item.quantity
        if diff == 0:
            return item

        if diff > 0:
            inventory_service.checkout_to_suitcase(
                item.inventory_id, diff, suitcase_id=item.suitcase_id, suitcase_item_id=item.id
            )
        else:
            inventory_service.return_from_suitcase(
                item.inventory_id, -diff, suitcase_id=item.suitcase_id, suitcase_item_id=item.id
            )
        item.quantity = new_quantity
        commit_or_raise(f"quantity change of suitcase item {item_id}")
        return item

    try:
        return run_with_retry(_op)
    except Exception:
        db.session.rollback()
        raise


# =============================================================================
# RETURN / LOSS
# =============================================================================

def restock_item(item: SuitcaseItem) -> None:
    """
    in_possession -> returned and give the units back to stock (no commit).

    Raises:
        InvalidItemState: item is not in_possession
    """
    require_in_possession(item, "return")
    transition_item(item, ITEM_STATUS_RETURNED)
    inventory_service.return_from_suitcase(
        item.inventory_id,
        item.quantity,
        suitcase_id=item.suitcase_id,
        suitcase_item_id=item.id,
    )


def return_item_to_inventory(item_id: int) -> SuitcaseItem:
    """Return an in_possession item to stock."""
    def _op():
        item = get_item(item_id, lock=True)
        restock_item(item)
        commit_or_raise(f"return of suitcase item {item_id}")
        return item

    try:
        item = run_with_retry(_op)
    except Exception:
        db.session.rollback()
        raise
    logger.info("Returned suitcase item %s (suitcase %s) to stock", item.id, item.suitcase_id)
    return item


def mark_item_lost(item_id: int) -> SuitcaseItem:
    """Write off an in_possession item. Stock is not touched: the units were already out."""
    def _op():
        item = get_item(item_id, lock=True)
        transition_item(item, ITEM_STATUS_LOST)
        commit_or_raise(f"loss of suitcase item {item_id}")
        return item

    try:
        item = run_with_retry(_op)
    except Exception:
        db.session.rollback()
        raise
    logger.info("Marked suitcase item %s (suitcase %s) as lost", item.id, item.suitcase_id)
    return item


# =============================================================================
# SALE ANNOTATIONS
# =============================================================================

def get_sale_info(item_id: int) -> SuitcaseItemSale | None:
    return db.session.query(SuitcaseItemSale).filter_by(suitcase_item_id=item_id).first()


def record_sale_info(
    item_id: int,
    customer_name: str | None = None,
    payment_method: str | None = None,
    sold_at: datetime | None = None,
) -> SuitcaseItemSale:
    """
    Upsert the point-of-sale annotation for an item still in the suitcase.

    Only fields that are passed (not None) are written.
    """
    item = get_item(item_id)
    require_in_possession(item, "annotate a sale for")

    sale = get_sale_info(item_id)
    if sale is None:
        sale = SuitcaseItemSale(suitcase_item_id=item_id)
        db.session.add(sale)

    if customer_name is not None:
        sale.customer_name = customer_name
    if payment_method is not None:
        sale.payment_method = payment_method
    if sold_at is not None:
        sale.sold_at = sold_at

    commit_or_raise(f"sale info of suitcase item {item_id}")
    return sale
