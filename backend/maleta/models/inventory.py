from __future__ import annotations

from ..extensions import db
from ..money import format_cents
from maleta.time_utils import to_utc_z


class InventoryItem(db.Model):
    """
    Stock-keeping record for one product.

    `quantity` is the stock NOT checked out to any suitcase. It is only ever
    changed through inventory_service, which issues compare-and-update
    statements so two suitcases touching the same item cannot lose updates.
    """
    __tablename__ = "inventory_items"
    __table_args__ = (
        db.CheckConstraint("quantity >= 0", name="ck_inventory_items_quantity_nonneg"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sku = db.Column(db.String(64), nullable=False, unique=True)
    name = db.Column(db.String(255), nullable=False)

    # Authoritative storage in cents
    price_cents = db.Column(db.Integer, nullable=False, default=0)
    unit_cost_cents = db.Column(db.Integer, nullable=True)

    quantity = db.Column(db.Integer, nullable=False, default=0)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<InventoryItem id={self.id} sku={self.sku!r} quantity={self.quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "price_cents": self.price_cents,
            "price": format_cents(self.price_cents),
            "unit_cost_cents": self.unit_cost_cents,
            "quantity": self.quantity,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class InventoryMovement(db.Model):
    """Append-only log of stock changes, written with the change it records."""
    __tablename__ = "inventory_movements"
    __table_args__ = (
        db.Index("ix_invmov_item_occurred", "inventory_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    inventory_id = db.Column(db.Integer, db.ForeignKey("inventory_items.id"), nullable=False, index=True)

    # checkout_suitcase | return_suitcase | adjust
    movement_type = db.Column(db.String(32), nullable=False, index=True)
    quantity_delta = db.Column(db.Integer, nullable=False)

    suitcase_id = db.Column(db.Integer, nullable=True, index=True)
    suitcase_item_id = db.Column(db.Integer, nullable=True)
    reason = db.Column(db.String(255), nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "inventory_id": self.inventory_id,
            "movement_type": self.movement_type,
            "quantity_delta": self.quantity_delta,
            "suitcase_id": self.suitcase_id,
            "suitcase_item_id": self.suitcase_item_id,
            "reason": self.reason,
            "occurred_at": to_utc_z(self.occurred_at),
        }
