from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from maleta.time_utils import to_utc_z


class Seller(db.Model):
    """Field reseller who carries a suitcase and earns commission on its sales."""
    __tablename__ = "sellers"
    __table_args__ = (
        db.CheckConstraint(
            "commission_rate IS NULL OR (commission_rate >= 0 AND commission_rate <= 1)",
            name="ck_sellers_commission_rate_range",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(32), nullable=True)
    email = db.Column(db.String(255), nullable=True)

    # Fraction of sales owed to the seller; NULL -> Config.DEFAULT_COMMISSION_RATE
    commission_rate = db.Column(db.Numeric(5, 4, asdecimal=True), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        rate = self.commission_rate
        return {
            "id": self.id,
            "name": self.name,
            "phone": self.phone,
            "email": self.email,
            "commission_rate": str(Decimal(rate)) if rate is not None else None,
            "is_active": self.is_active,
        }


class Suitcase(db.Model):
    """
    Mobile inventory container (maleta) assigned to a seller.

    status: in_use | returned | lost | in_audit | in_replenishment
    """
    __tablename__ = "suitcases"
    __table_args__ = (
        db.Index("ix_suitcases_city_neighborhood", "city", "neighborhood"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(32), nullable=False, unique=True)
    seller_id = db.Column(db.Integer, db.ForeignKey("sellers.id"), nullable=True, index=True)
    status = db.Column(db.String(32), nullable=False, default="in_use", index=True)

    city = db.Column(db.String(128), nullable=True)
    neighborhood = db.Column(db.String(128), nullable=True)

    next_settlement_date = db.Column(db.DateTime(timezone=True), nullable=True)
    sent_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    seller = db.relationship("Seller", backref=db.backref("suitcases", lazy=True))

    def __repr__(self) -> str:
        return f"<Suitcase id={self.id} code={self.code!r} seller_id={self.seller_id}>"

    def to_dict(self, include_seller: bool = False) -> dict:
        data = {
            "id": self.id,
            "code": self.code,
            "seller_id": self.seller_id,
            "status": self.status,
            "city": self.city,
            "neighborhood": self.neighborhood,
            "next_settlement_date": to_utc_z(self.next_settlement_date),
            "sent_at": to_utc_z(self.sent_at),
            "created_at": to_utc_z(self.created_at),
        }
        if include_seller:
            data["seller"] = self.seller.to_dict() if self.seller else None
        return data


class SuitcaseItem(db.Model):
    """
    One inventory item checked out into a suitcase.

    status: in_possession | sold | returned | lost (see services.item_status).
    Status writes go through item_status.transition_item so the state
    machine is enforced in one place.
    """
    __tablename__ = "suitcase_items"
    __table_args__ = (
        db.CheckConstraint("quantity >= 1", name="ck_suitcase_items_quantity_positive"),
        db.Index("ix_suitcase_items_suitcase_status", "suitcase_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    suitcase_id = db.Column(db.Integer, db.ForeignKey("suitcases.id"), nullable=False, index=True)
    inventory_id = db.Column(db.Integer, db.ForeignKey("inventory_items.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False, default=1)
    status = db.Column(db.String(16), nullable=False, default="in_possession", index=True)

    added_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    product = db.relationship("InventoryItem", lazy="joined")
    sale_info = db.relationship("SuitcaseItemSale", uselist=False, lazy="select")

    def __repr__(self) -> str:
        return f"<SuitcaseItem id={self.id} suitcase_id={self.suitcase_id} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "suitcase_id": self.suitcase_id,
            "inventory_id": self.inventory_id,
            "quantity": self.quantity,
            "status": self.status,
            "added_at": to_utc_z(self.added_at),
            "product": self.product.to_dict() if self.product else None,
            "sale_info": self.sale_info.to_dict() if self.sale_info else None,
        }


class SuitcaseItemSale(db.Model):
    """Point-of-sale annotation entered by the seller before settlement."""
    __tablename__ = "suitcase_item_sales"
    __table_args__ = ({"sqlite_autoincrement": True},)

    id = db.Column(db.Integer, primary_key=True)
    suitcase_item_id = db.Column(
        db.Integer, db.ForeignKey("suitcase_items.id"), nullable=False, unique=True
    )
    customer_name = db.Column(db.String(255), nullable=True)
    payment_method = db.Column(db.String(64), nullable=True)
    sold_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "suitcase_item_id": self.suitcase_item_id,
            "customer_name": self.customer_name,
            "payment_method": self.payment_method,
            "sold_at": to_utc_z(self.sold_at),
        }
