# Overview: Service-layer operations for settlements (acertos); the end-to-end settlement workflow.

# backend/maleta/services/settlement_service.py
"""
Suitcase Settlement Service

WHY: Periodically a suitcase is reconciled against what the seller actually
sold. The seller brings the suitcase back, the operator scans what is still
inside, and everything NOT scanned is taken as sold
(assume-sold-unless-confirmed-present). Sales and commission are recorded,
the units still present go back to stock, and the suitcase is emptied.

WORKFLOW (create_settlement):
1. Load suitcase and seller (commission rate).
2. Snapshot the suitcase items currently in_possession (S).
3. sold = S - items_present (set difference by id, after the fetch, so an
   empty items_present simply means "everything sold").
4. total_sales / commission over sold.
5. Update the suitcase's pendente settlement in place, or insert a new one
   already concluido.
6. Each sold item: status -> sold and one SoldItemRecord (same commit).
7. Persist next_settlement_date on the suitcase, if given.
8. Present items go back to stock; cleanup empties the suitcase.
9. Return the settlement re-read from the database.

CONSISTENCY:
- Steps 5-7 each commit separately and are run through a Saga: if one
  fails, the completed ones are compensated in reverse order and the
  original error is raised. Nothing is retried automatically, so no
  financial record is written twice.
- Step 8 is idempotent and never compensated: once steps 5-7 are durable a
  cleanup failure is logged and the settlement is still returned. Leftover
  items can be cleared by re-running cleanup.
- The whole workflow holds the suitcase's settlement slot lock, so two
  concurrent settlements of the same suitcase cannot both pass the
  pendente lookup.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterable

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Seller, Settlement, SoldItemRecord, Suitcase, SuitcaseItem
from maleta.time_utils import normalize_datetime, utcnow
from .commission import calculate_commission, resolve_commission_rate
from .concurrency import (
    acquire_settlement_lock,
    commit_or_raise,
    lock_for_update,
    release_settlement_lock,
)
from .cleanup_service import cleanup_suitcase
from .errors import (
    MaletaError,
    PersistenceFailure,
    SellerNotFound,
    SettlementNotFound,
)
from .item_status import ITEM_STATUS_IN_POSSESSION, ITEM_STATUS_SOLD, transition_item
from .saga import Saga
from .suitcase_item_service import get_suitcase, get_suitcase_items, restock_item

logger = logging.getLogger(__name__)


# =============================================================================
# SETTLEMENT STATUS CONSTANTS
# =============================================================================

SETTLEMENT_STATUS_PENDING = "pendente"
SETTLEMENT_STATUS_COMPLETED = "concluido"

VALID_SETTLEMENT_STATUSES = {SETTLEMENT_STATUS_PENDING, SETTLEMENT_STATUS_COMPLETED}


class SettlementError(ValueError):
    """Raised for invalid settlement input."""
    pass


# =============================================================================
# HELPERS
# =============================================================================

def _normalize_item_ids(items_present: Iterable | None) -> set[int]:
    """Accept ids as ints, digit strings or {"id": ...} dicts."""
    ids: set[int] = set()
    for entry in items_present or ():
        raw = entry.get("id") if isinstance(entry, dict) else entry
        try:
            ids.add(int(raw))
        except (TypeError, ValueError):
            raise SettlementError(f"Invalid item id in items_present: {entry!r}")
    return ids


def _resolve_seller(suitcase: Suitcase, seller_id: int | None) -> Seller | None:
    if seller_id is None:
        seller_id = suitcase.seller_id
    if seller_id is None:
        return None
    seller = db.session.get(Seller, seller_id)
    if seller is None:
        raise SellerNotFound(f"Seller {seller_id} not found")
    return seller


def _sale_snapshot(item: SuitcaseItem) -> dict:
    """Plain values of a sold item, captured before any mutation."""
    sale_info = item.sale_info
    return {
        "suitcase_item_id": item.id,
        "inventory_id": item.inventory_id,
        "price_cents": item.product.price_cents if item.product else 0,
        "quantity": item.quantity,
        "customer_name": sale_info.customer_name if sale_info else None,
        "payment_method": sale_info.payment_method if sale_info else None,
    }


# =============================================================================
# SAGA STEPS
# =============================================================================

def _write_settlement(
    *,
    suitcase_id: int,
    seller_id: int | None,
    settlement_date: datetime,
    next_settlement_date: datetime | None,
    total_sales_cents: int,
    commission_cents: int,
    rate,
    created_by_user_id: int | None,
) -> dict:
    """
    Finalize the suitcase's pendente settlement, or insert a concluido one.

    Returns the data the compensation needs.
    """
    pending = lock_for_update(
        db.session.query(Settlement).filter_by(
            suitcase_id=suitcase_id, status=SETTLEMENT_STATUS_PENDING
        )
    ).first()

    if pending is not None:
        previous = {
            "settlement_date": pending.settlement_date,
            "next_settlement_date": pending.next_settlement_date,
            "total_sales_cents": pending.total_sales_cents,
            "commission_cents": pending.commission_cents,
            "commission_rate_applied": pending.commission_rate_applied,
            "status": pending.status,
        }
        pending.settlement_date = settlement_date
        pending.next_settlement_date = next_settlement_date
        pending.total_sales_cents = total_sales_cents
        pending.commission_cents = commission_cents
        pending.commission_rate_applied = rate
        pending.status = SETTLEMENT_STATUS_COMPLETED
        if pending.seller_id is None:
            pending.seller_id = seller_id
        commit_or_raise(f"settlement {pending.id} of suitcase {suitcase_id}")
        logger.info("Finalized pending settlement %s for suitcase %s", pending.id, suitcase_id)
        return {"settlement_id": pending.id, "previous": previous}

    settlement = Settlement(
        suitcase_id=suitcase_id,
        seller_id=seller_id,
        settlement_date=settlement_date,
        next_settlement_date=next_settlement_date,
        total_sales_cents=total_sales_cents,
        commission_cents=commission_cents,
        commission_rate_applied=rate,
        status=SETTLEMENT_STATUS_COMPLETED,
        created_by_user_id=created_by_user_id,
    )
    db.session.add(settlement)
    commit_or_raise(f"new settlement of suitcase {suitcase_id}")
    logger.info("Created settlement %s for suitcase %s", settlement.id, suitcase_id)
    return {"settlement_id": settlement.id, "previous": None}


def _undo_settlement_write(written: dict) -> None:
    settlement = db.session.get(Settlement, written["settlement_id"])
    if settlement is None:
        return
    if written["previous"] is None:
        db.session.delete(settlement)
    else:
        for key, value in written["previous"].items():
            setattr(settlement, key, value)


def _sell_item(settlement_id: int, snapshot: dict, sale_date: datetime) -> int:
    """in_possession -> sold plus its SoldItemRecord, in one commit."""
    item = lock_for_update(
        db.session.query(SuitcaseItem).filter_by(id=snapshot["suitcase_item_id"])
    ).first()
    if item is None:
        raise PersistenceFailure(
            f"Suitcase item {snapshot['suitcase_item_id']} disappeared during settlement {settlement_id}"
        )
    transition_item(item, ITEM_STATUS_SOLD)

    record = SoldItemRecord(
        settlement_id=settlement_id,
        suitcase_item_id=snapshot["suitcase_item_id"],
        inventory_id=snapshot["inventory_id"],
        price_cents=snapshot["price_cents"],
        quantity=snapshot["quantity"],
        customer_name=snapshot["customer_name"],
        payment_method=snapshot["payment_method"],
        sale_date=sale_date,
    )
    db.session.add(record)
    commit_or_raise(f"sale of suitcase item {item.id} in settlement {settlement_id}")
    return record.id


def _undo_sell_item(record_id: int) -> None:
    record = db.session.get(SoldItemRecord, record_id)
    if record is None:
        return
    item = db.session.get(SuitcaseItem, record.suitcase_item_id)
    if item is not None:
        transition_item(item, ITEM_STATUS_IN_POSSESSION, compensation=True)
    db.session.delete(record)


def _set_next_settlement_date(suitcase_id: int, next_settlement_date: datetime):
    suitcase = get_suitcase(suitcase_id)
    previous = suitcase.next_settlement_date
    suitcase.next_settlement_date = next_settlement_date
    commit_or_raise(f"next settlement date of suitcase {suitcase_id}")
    return previous


# =============================================================================
# SETTLEMENT CREATION
# =============================================================================

def create_settlement(
    suitcase_id: int,
    seller_id: int | None,
    settlement_date,
    next_settlement_date=None,
    items_present: Iterable | None = None,
    *,
    created_by_user_id: int | None = None,
) -> Settlement:
    """
    Settle a suitcase: everything in_possession and not in items_present is sold.

    Args:
        suitcase_id: Suitcase being settled
        seller_id: Seller credited (defaults to the suitcase's seller)
        settlement_date: Business date of the settlement
        next_settlement_date: Optional next visit, persisted on the suitcase
        items_present: Suitcase item ids scanned as still in the suitcase
        created_by_user_id: Operator recording the settlement

    Returns:
        The settlement re-read from the database, sold_items loaded

    Raises:
        SuitcaseNotFound, SellerNotFound
        SettlementInProgress: another settlement of this suitcase is running
        PersistenceFailure: a write failed; completed steps were compensated
    """
    settlement_dt = normalize_datetime(settlement_date)
    if settlement_dt is None:
        raise SettlementError("settlement_date is required")
    next_dt = normalize_datetime(next_settlement_date)
    present_ids = _normalize_item_ids(items_present)

    get_suitcase(suitcase_id)

    token = acquire_settlement_lock(suitcase_id)
    try:
        settlement_id = _run_settlement(
            suitcase_id=suitcase_id,
            seller_id=seller_id,
            settlement_dt=settlement_dt,
            next_dt=next_dt,
            present_ids=present_ids,
            created_by_user_id=created_by_user_id,
        )
    finally:
        release_settlement_lock(suitcase_id, token)

    db.session.expire_all()
    return get_settlement_by_id(settlement_id)


def _run_settlement(
    *,
    suitcase_id: int,
    seller_id: int | None,
    settlement_dt: datetime,
    next_dt: datetime | None,
    present_ids: set[int],
    created_by_user_id: int | None,
) -> int:
    suitcase = get_suitcase(suitcase_id)
    seller = _resolve_seller(suitcase, seller_id)
    rate = resolve_commission_rate(
        seller.commission_rate if seller else None,
        default=current_app.config.get("DEFAULT_COMMISSION_RATE"),
    )

    in_possession = get_suitcase_items(suitcase_id, status=ITEM_STATUS_IN_POSSESSION)
    held_ids = {item.id for item in in_possession}

    sold = [_sale_snapshot(item) for item in in_possession if item.id not in present_ids]
    present_held = sorted(present_ids & held_ids)

    unknown = present_ids - held_ids
    if unknown:
        logger.warning(
            "Settlement of suitcase %s: ignoring items_present not in_possession here: %s",
            suitcase_id, sorted(unknown),
        )

    result = calculate_commission((s["price_cents"] for s in sold), rate)
    logger.info(
        "Settling suitcase %s: %s in possession, %s present, %s sold, total=%s commission=%s",
        suitcase_id, len(held_ids), len(present_held), len(sold),
        result.total_sales_cents, result.commission_cents,
    )

    saga = Saga(f"settlement suitcase={suitcase_id}")
    try:
        written = saga.run(
            "write settlement",
            lambda: _write_settlement(
                suitcase_id=suitcase_id,
                seller_id=seller.id if seller else None,
                settlement_date=settlement_dt,
                next_settlement_date=next_dt,
                total_sales_cents=result.total_sales_cents,
                commission_cents=result.commission_cents,
                rate=result.rate,
                created_by_user_id=created_by_user_id,
            ),
            compensate=_undo_settlement_write,
        )
        settlement_id = written["settlement_id"]

        sale_date = utcnow()
        for snapshot in sold:
            saga.run(
                f"sell item {snapshot['suitcase_item_id']}",
                lambda snapshot=snapshot: _sell_item(settlement_id, snapshot, sale_date),
                compensate=_undo_sell_item,
            )

        if next_dt is not None:
            saga.run(
                "next settlement date",
                lambda: _set_next_settlement_date(suitcase_id, next_dt),
                compensate=lambda previous: setattr(
                    get_suitcase(suitcase_id), "next_settlement_date", previous
                ),
            )
    except Exception as exc:
        logger.exception("Settlement of suitcase %s failed; compensating", suitcase_id)
        failed = saga.compensate()
        if failed:
            logger.error(
                "Settlement of suitcase %s: compensations failed for %s; manual review needed",
                suitcase_id, failed,
            )
        if isinstance(exc, SQLAlchemyError):
            raise PersistenceFailure(f"Settlement of suitcase {suitcase_id} failed") from exc
        raise

    _finalize_suitcase(suitcase_id, settlement_id, present_held)
    return settlement_id


def _finalize_suitcase(suitcase_id: int, settlement_id: int, present_ids: list[int]) -> None:
    """
    Return present items to stock and empty the suitcase.

    Runs after the settlement is durable: failures are logged, never raised.
    """
    for item_id in present_ids:
        try:
            item = db.session.get(SuitcaseItem, item_id)
            if item is not None and item.status == ITEM_STATUS_IN_POSSESSION:
                restock_item(item)
                commit_or_raise(f"return of present item {item_id}")
        except (MaletaError, SQLAlchemyError):
            db.session.rollback()
            logger.warning(
                "Settlement %s: could not return present item %s to stock; cleanup will retry",
                settlement_id, item_id, exc_info=True,
            )

    try:
        cleanup_suitcase(suitcase_id)
    except MaletaError:
        db.session.rollback()
        logger.error(
            "Settlement %s is recorded but suitcase %s was not fully emptied; re-run cleanup",
            settlement_id, suitcase_id, exc_info=True,
        )


# =============================================================================
# QUERIES
# =============================================================================

def get_settlement_by_id(settlement_id: int) -> Settlement:
    """Settlement with its sold-item records loaded."""
    settlement = db.session.get(Settlement, settlement_id)
    if settlement is None:
        raise SettlementNotFound(f"Settlement {settlement_id} not found")
    # Load the joined rows while the settlement is known to exist
    _ = settlement.sold_items
    return settlement


def get_settlement_details(settlement_id: int) -> dict:
    """
    Settlement payload with joined suitcase, seller and sold items plus
    cost and profit totals.

    total_cost = sum of the sold products' unit cost
    net_profit = total_sales - commission - total_cost
    """
    settlement = get_settlement_by_id(settlement_id)
    sold_items = list(settlement.sold_items)

    total_cost_cents = sum(
        (record.product.unit_cost_cents or 0) if record.product else 0
        for record in sold_items
    )
    net_profit_cents = (
        settlement.total_sales_cents - settlement.commission_cents - total_cost_cents
    )

    data = settlement.to_dict()
    data.update({
        "suitcase": settlement.suitcase.to_dict(include_seller=True) if settlement.suitcase else None,
        "seller": settlement.seller.to_dict() if settlement.seller else None,
        "sold_items": [record.to_dict() for record in sold_items],
        "total_cost_cents": total_cost_cents,
        "net_profit_cents": net_profit_cents,
    })
    return data


def list_settlements(
    *,
    status: str | None = None,
    seller_id: int | None = None,
    suitcase_id: int | None = None,
    date_from=None,
    date_to=None,
    limit: int = 100,
) -> list[Settlement]:
    """Settlements newest first, with optional filters (date bounds inclusive)."""
    query = db.session.query(Settlement)
    if status is not None:
        if status not in VALID_SETTLEMENT_STATUSES:
            raise SettlementError(f"Invalid settlement status '{status}'")
        query = query.filter(Settlement.status == status)
    if seller_id is not None:
        query = query.filter(Settlement.seller_id == seller_id)
    if suitcase_id is not None:
        query = query.filter(Settlement.suitcase_id == suitcase_id)
    if (dt := normalize_datetime(date_from)) is not None:
        query = query.filter(Settlement.settlement_date >= dt)
    if (dt := normalize_datetime(date_to)) is not None:
        query = query.filter(Settlement.settlement_date <= dt)

    return (
        query.order_by(Settlement.settlement_date.desc(), Settlement.id.desc())
        .limit(limit)
        .all()
    )


def get_settlements_by_suitcase(suitcase_id: int) -> list[Settlement]:
    get_suitcase(suitcase_id)
    return list_settlements(suitcase_id=suitcase_id, limit=1000)


# =============================================================================
# STATUS UPDATES
# =============================================================================

def update_settlement_status(settlement_id: int, status: str) -> Settlement:
    """
    Set a settlement's status directly.

    Moving a settlement back to pendente fails with PersistenceFailure when
    the suitcase already has another pendente settlement, and with
    SettlementError when it already has sold items: finalizing it again
    would overwrite its totals.
    """
    if status not in VALID_SETTLEMENT_STATUSES:
        raise SettlementError(
            f"Invalid settlement status '{status}'. Must be one of: "
            f"{', '.join(sorted(VALID_SETTLEMENT_STATUSES))}"
        )

    settlement = get_settlement_by_id(settlement_id)
    if status == SETTLEMENT_STATUS_PENDING and settlement.status != status and settlement.sold_items:
        raise SettlementError(
            f"Settlement {settlement_id} already has sold items and cannot be reopened"
        )
    if settlement.status != status:
        settlement.status = status
        commit_or_raise(f"status of settlement {settlement_id}")
        logger.info("Settlement %s status set to %s", settlement_id, status)

    db.session.expire_all()
    return get_settlement_by_id(settlement_id)
