# Overview: Service-layer operations for inventory stock; the only writer of InventoryItem.quantity.

# backend/maleta/services/inventory_service.py
"""
Inventory Ledger Invariants (authoritative)

- InventoryItem.quantity is the stock NOT checked out to any suitcase.
- quantity is never negative (CHECK constraint + guarded decrement).
- Every change is a single compare-and-update statement
  (quantity = quantity +/- n [WHERE quantity >= n]) so concurrent suitcases
  touching the same item cannot lose updates.
- Every change appends an InventoryMovement in the same DB transaction.
- Functions here flush but never commit: the caller owns the transaction,
  so a checkout and the suitcase item it belongs to commit together.
"""

from __future__ import annotations

from sqlalchemy import update

from ..extensions import db
from ..models import InventoryItem, InventoryMovement
from .errors import InsufficientStock, InventoryItemNotFound


MOVEMENT_CHECKOUT = "checkout_suitcase"
MOVEMENT_RETURN = "return_suitcase"
MOVEMENT_ADJUST = "adjust"


def get_inventory_item(inventory_id: int) -> InventoryItem:
    item = db.session.get(InventoryItem, inventory_id)
    if item is None:
        raise InventoryItemNotFound(f"Inventory item {inventory_id} not found")
    return item


def get_available_quantity(inventory_id: int) -> int:
    """Read current stock straight from the database."""
    quantity = db.session.query(InventoryItem.quantity).filter_by(id=inventory_id).scalar()
    if quantity is None:
        raise InventoryItemNotFound(f"Inventory item {inventory_id} not found")
    return int(quantity)


def _apply_delta(inventory_id: int, delta: int, *, guard_negative: bool) -> None:
    stmt = (
        update(InventoryItem)
        .where(InventoryItem.id == inventory_id)
        .values(
            quantity=InventoryItem.quantity + delta,
            version_id=InventoryItem.version_id + 1,
        )
        .execution_options(synchronize_session=False)
    )
    if guard_negative and delta < 0:
        stmt = stmt.where(InventoryItem.quantity >= -delta)

    result = db.session.execute(stmt)
    if result.rowcount == 1:
        # Loaded copies hold the old quantity and version_id
        cached = db.session.identity_map.get(db.session.identity_key(InventoryItem, inventory_id))
        if cached is not None:
            db.session.expire(cached)
        return

    available = db.session.query(InventoryItem.quantity).filter_by(id=inventory_id).scalar()
    if available is None:
        raise InventoryItemNotFound(f"Inventory item {inventory_id} not found")
    raise InsufficientStock(
        f"Inventory item {inventory_id} has {available} in stock, cannot check out {-delta}"
    )


def _record_movement(
    inventory_id: int,
    movement_type: str,
    quantity_delta: int,
    *,
    suitcase_id: int | None = None,
    suitcase_item_id: int | None = None,
    reason: str | None = None,
) -> InventoryMovement:
    movement = InventoryMovement(
        inventory_id=inventory_id,
        movement_type=movement_type,
        quantity_delta=quantity_delta,
        suitcase_id=suitcase_id,
        suitcase_item_id=suitcase_item_id,
        reason=reason,
    )
    db.session.add(movement)
    db.session.flush()
    return movement


def checkout_to_suitcase(
    inventory_id: int,
    quantity: int,
    *,
    suitcase_id: int,
    suitcase_item_id: int | None = None,
) -> None:
    """
    Decrement stock for units placed into a suitcase.

    Raises:
        InsufficientStock: stock is lower than quantity
        InventoryItemNotFound: unknown inventory item
    """
    if quantity <= 0:
        raise ValueError("checkout quantity must be positive")
    _apply_delta(inventory_id, -quantity, guard_negative=True)
    _record_movement(
        inventory_id,
        MOVEMENT_CHECKOUT,
        -quantity,
        suitcase_id=suitcase_id,
        suitcase_item_id=suitcase_item_id,
        reason=f"Checked out to suitcase {suitcase_id}",
    )


def return_from_suitcase(
    inventory_id: int,
    quantity: int,
    *,
    suitcase_id: int,
    suitcase_item_id: int | None = None,
) -> None:
    """Increment stock for units coming back from a suitcase."""
    if quantity <= 0:
        raise ValueError("return quantity must be positive")
    _apply_delta(inventory_id, quantity, guard_negative=False)
    _record_movement(
        inventory_id,
        MOVEMENT_RETURN,
        quantity,
        suitcase_id=suitcase_id,
        suitcase_item_id=suitcase_item_id,
        reason=f"Returned from suitcase {suitcase_id}",
    )


def adjust_quantity(inventory_id: int, delta: int, reason: str | None = None) -> None:
    """Manual stock correction (never below zero)."""
    if delta == 0:
        return
    _apply_delta(inventory_id, delta, guard_negative=True)
    _record_movement(inventory_id, MOVEMENT_ADJUST, delta, reason=reason)


def list_movements(inventory_id: int, limit: int = 100) -> list[InventoryMovement]:
    return (
        db.session.query(InventoryMovement)
        .filter_by(inventory_id=inventory_id)
        .order_by(InventoryMovement.occurred_at.desc(), InventoryMovement.id.desc())
        .limit(limit)
        .all()
    )
