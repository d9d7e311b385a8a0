# Overview: Sales analytics over settled sold-item records.

from __future__ import annotations

from datetime import timedelta

from sqlalchemy import func

from ..extensions import db
from ..models import InventoryItem, Settlement, SoldItemRecord
from maleta.time_utils import utcnow
from .suitcase_item_service import get_suitcase


FREQUENCY_HIGH = "alta"
FREQUENCY_MEDIUM = "média"
FREQUENCY_LOW = "baixa"


def classify_frequency(count: int) -> str:
    if count > 5:
        return FREQUENCY_HIGH
    if count > 2:
        return FREQUENCY_MEDIUM
    return FREQUENCY_LOW


def _sold_rows_query():
    return (
        db.session.query(
            SoldItemRecord.inventory_id,
            func.count(SoldItemRecord.id).label("count"),
            func.coalesce(func.sum(SoldItemRecord.price_cents), 0).label("total_value_cents"),
        )
        .join(Settlement, Settlement.id == SoldItemRecord.settlement_id)
    )


def _with_products(rows) -> list[dict]:
    ids = [row.inventory_id for row in rows]
    products = {
        p.id: p for p in db.session.query(InventoryItem).filter(InventoryItem.id.in_(ids)).all()
    } if ids else {}
    return [
        {
            "inventory_id": row.inventory_id,
            "count": int(row.count),
            "total_value_cents": int(row.total_value_cents),
            "product": products[row.inventory_id].to_dict() if row.inventory_id in products else None,
        }
        for row in rows
    ]


def get_top_sold_items(suitcase_id: int, limit: int = 5) -> list[dict]:
    """Most sold inventory items across every settlement of a suitcase."""
    get_suitcase(suitcase_id)
    rows = (
        _sold_rows_query()
        .filter(Settlement.suitcase_id == suitcase_id)
        .group_by(SoldItemRecord.inventory_id)
        .order_by(func.count(SoldItemRecord.id).desc(), SoldItemRecord.inventory_id)
        .limit(limit)
        .all()
    )
    return _with_products(rows)


def get_popular_items(seller_id: int, limit: int = 5, days: int = 180) -> list[dict]:
    """Items a seller sold most over the last `days` days."""
    since = utcnow() - timedelta(days=days)
    rows = (
        _sold_rows_query()
        .filter(Settlement.seller_id == seller_id, Settlement.settlement_date >= since)
        .group_by(SoldItemRecord.inventory_id)
        .order_by(func.count(SoldItemRecord.id).desc(), SoldItemRecord.inventory_id)
        .limit(limit)
        .all()
    )
    return _with_products(rows)


def get_item_sales_frequency(inventory_id: int, seller_id: int, days: int = 90) -> dict:
    """How often a seller sold an inventory item in the last `days` days."""
    since = utcnow() - timedelta(days=days)
    count = (
        db.session.query(func.count(SoldItemRecord.id))
        .join(Settlement, Settlement.id == SoldItemRecord.settlement_id)
        .filter(
            SoldItemRecord.inventory_id == inventory_id,
            Settlement.seller_id == seller_id,
            Settlement.settlement_date >= since,
        )
        .scalar()
    ) or 0
    return {"count": int(count), "frequency": classify_frequency(int(count))}
