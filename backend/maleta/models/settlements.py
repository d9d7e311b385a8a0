from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from ..money import format_cents
from maleta.time_utils import to_utc_z


class Settlement(db.Model):
    """
    Settlement (acerto) of one suitcase: converts unaccounted-for items into
    recorded sales and commission.

    status: pendente | concluido
    At most one `pendente` settlement per suitcase (partial unique index).
    """
    __tablename__ = "settlements"
    __table_args__ = (
        db.Index(
            "uq_settlements_one_pending_per_suitcase",
            "suitcase_id",
            unique=True,
            sqlite_where=db.text("status = 'pendente'"),
            postgresql_where=db.text("status = 'pendente'"),
        ),
        db.Index("ix_settlements_seller_date", "seller_id", "settlement_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    suitcase_id = db.Column(db.Integer, db.ForeignKey("suitcases.id"), nullable=False, index=True)
    seller_id = db.Column(db.Integer, db.ForeignKey("sellers.id"), nullable=True, index=True)

    settlement_date = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    next_settlement_date = db.Column(db.DateTime(timezone=True), nullable=True)

    total_sales_cents = db.Column(db.Integer, nullable=False, default=0)
    commission_cents = db.Column(db.Integer, nullable=False, default=0)
    commission_rate_applied = db.Column(db.Numeric(5, 4, asdecimal=True), nullable=True)

    status = db.Column(db.String(16), nullable=False, default="pendente", index=True)

    # Reference to the rendered receipt (explicit follow-up action)
    receipt_url = db.Column(db.String(512), nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    suitcase = db.relationship("Suitcase", backref=db.backref("settlements", lazy=True))
    seller = db.relationship("Seller")
    sold_items = db.relationship(
        "SoldItemRecord",
        lazy="select",
        order_by="SoldItemRecord.id",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return f"<Settlement id={self.id} suitcase_id={self.suitcase_id} status={self.status}>"

    def to_dict(self, include_items: bool = False) -> dict:
        rate = self.commission_rate_applied
        data = {
            "id": self.id,
            "suitcase_id": self.suitcase_id,
            "seller_id": self.seller_id,
            "settlement_date": to_utc_z(self.settlement_date),
            "next_settlement_date": to_utc_z(self.next_settlement_date),
            "total_sales_cents": self.total_sales_cents,
            "total_sales": format_cents(self.total_sales_cents),
            "commission_cents": self.commission_cents,
            "commission_amount": format_cents(self.commission_cents),
            "commission_rate_applied": str(Decimal(rate)) if rate is not None else None,
            "status": self.status,
            "receipt_url": self.receipt_url,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_items:
            data["sold_items"] = [record.to_dict() for record in self.sold_items]
        return data


class SoldItemRecord(db.Model):
    """
    One sold suitcase item inside a settlement.

    suitcase_item_id is a plain integer: the suitcase item row itself is
    removed by reconciliation cleanup once the settlement is done.
    """
    __tablename__ = "sold_item_records"
    __table_args__ = (
        db.Index("ix_sold_items_settlement", "settlement_id"),
        db.Index("ix_sold_items_inventory", "inventory_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    settlement_id = db.Column(
        db.Integer, db.ForeignKey("settlements.id", ondelete="SET NULL"), nullable=True
    )
    suitcase_item_id = db.Column(db.Integer, nullable=False, index=True)
    inventory_id = db.Column(db.Integer, db.ForeignKey("inventory_items.id"), nullable=False)

    # Price at time of sale
    price_cents = db.Column(db.Integer, nullable=False, default=0)
    quantity = db.Column(db.Integer, nullable=False, default=1)

    customer_name = db.Column(db.String(255), nullable=True)
    payment_method = db.Column(db.String(64), nullable=True)
    sale_date = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    # Set instead of deleting when reversals retain history
    voided_at = db.Column(db.DateTime(timezone=True), nullable=True)
    voided_settlement_id = db.Column(db.Integer, nullable=True)

    product = db.relationship("InventoryItem")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "settlement_id": self.settlement_id,
            "suitcase_item_id": self.suitcase_item_id,
            "inventory_id": self.inventory_id,
            "price_cents": self.price_cents,
            "price": format_cents(self.price_cents),
            "quantity": self.quantity,
            "customer_name": self.customer_name,
            "payment_method": self.payment_method,
            "sale_date": to_utc_z(self.sale_date),
            "voided_at": to_utc_z(self.voided_at),
            "voided_settlement_id": self.voided_settlement_id,
            "product": self.product.to_dict() if self.product else None,
        }


class SettlementLock(db.Model):
    """Exclusive ownership of a suitcase's settlement slot while a workflow runs."""
    __tablename__ = "settlement_locks"

    id = db.Column(db.Integer, primary_key=True)
    suitcase_id = db.Column(db.Integer, db.ForeignKey("suitcases.id"), nullable=False, unique=True)
    token = db.Column(db.String(64), nullable=False)
    acquired_at = db.Column(db.DateTime(timezone=True), nullable=False)
