# Overview: Settlement reversal (deletion) with item status restoration.

# backend/maleta/services/reversal_service.py
"""
Settlement Reversal

WHY: A settlement recorded by mistake must be undone: the items it marked
sold go back into the suitcase as in_possession and the settlement is
removed. Only administrators may do this.

STEPS:
1. Authorization (is_admin). Denied callers get PermissionDenied and
   nothing is touched.
2. Load the settlement and its sold-item records.
3. concluido settlements: every referenced item returns to in_possession.
   Items that cleanup already removed are re-attached to the suitcase from
   their sold-item record (same id, inventory item and quantity).
4. Sold-item records follow REVERSAL_SOLD_ITEMS_POLICY:
   - purge:  deleted with the settlement
   - retain: detached and voided (voided_at, voided_settlement_id) for audit
5. The settlement row is deleted.

LOCKING: the reversal holds the suitcase's settlement slot, so it never
interleaves with a settlement of the same suitcase.

RETRY-SAFE, NOT ATOMIC: step 3 commits per item. A failure midway leaves
some items restored; running the reversal again re-applies the restore,
which is a no-op for items already in_possession. Once the settlement is
gone a repeated call returns False.
"""

from __future__ import annotations

import logging

from flask import current_app

from ..extensions import db
from ..models import Settlement, SoldItemRecord, SuitcaseItem, SuitcaseItemSale
from maleta.time_utils import utcnow
from .authorization_service import require_admin
from .concurrency import acquire_settlement_lock, commit_or_raise, release_settlement_lock
from .item_status import ITEM_STATUS_IN_POSSESSION, transition_item
from .settlement_service import SETTLEMENT_STATUS_COMPLETED

logger = logging.getLogger(__name__)


POLICY_PURGE = "purge"
POLICY_RETAIN = "retain"
VALID_POLICIES = {POLICY_PURGE, POLICY_RETAIN}


def _sold_items_policy() -> str:
    policy = current_app.config.get("REVERSAL_SOLD_ITEMS_POLICY", POLICY_PURGE)
    if policy not in VALID_POLICIES:
        raise ValueError(f"Invalid REVERSAL_SOLD_ITEMS_POLICY '{policy}'")
    return policy


def _restore_item(settlement: Settlement, record: SoldItemRecord) -> bool:
    """
    Put one sold item back in the suitcase as in_possession (no commit).

    Returns True if anything changed.
    """
    item = db.session.get(SuitcaseItem, record.suitcase_item_id)
    if item is None:
        item = SuitcaseItem(
            id=record.suitcase_item_id,
            suitcase_id=settlement.suitcase_id,
            inventory_id=record.inventory_id,
            quantity=record.quantity or 1,
            status=ITEM_STATUS_IN_POSSESSION,
        )
        db.session.add(item)
        if record.customer_name or record.payment_method:
            db.session.add(SuitcaseItemSale(
                suitcase_item_id=record.suitcase_item_id,
                customer_name=record.customer_name,
                payment_method=record.payment_method,
            ))
        return True

    return transition_item(item, ITEM_STATUS_IN_POSSESSION, compensation=True)


def delete_settlement(settlement_id: int, actor_user_id: int | None) -> bool:
    """
    Reverse and delete a settlement (administrators only).

    Returns:
        True when the settlement was deleted, False when it does not exist

    Raises:
        PermissionDenied: caller is not an administrator
        InvalidItemState: a referenced item is returned/lost, not sold
        SettlementInProgress: a settlement of the same suitcase is running
        PersistenceFailure: a write failed (safe to retry)
    """
    require_admin(actor_user_id, "delete settlements")

    settlement = db.session.get(Settlement, settlement_id)
    if settlement is None:
        logger.info("Reversal of settlement %s: not found, nothing to do", settlement_id)
        return False

    policy = _sold_items_policy()
    suitcase_id = settlement.suitcase_id

    token = acquire_settlement_lock(suitcase_id)
    try:
        return _reverse_settlement(settlement_id, policy, actor_user_id)
    finally:
        release_settlement_lock(suitcase_id, token)


def _reverse_settlement(settlement_id: int, policy: str, actor_user_id: int | None) -> bool:
    """Restore, detach and delete while the suitcase slot is held."""
    settlement = db.session.get(Settlement, settlement_id)
    if settlement is None:
        return False
    suitcase_id = settlement.suitcase_id
    records = list(settlement.sold_items)

    if settlement.status == SETTLEMENT_STATUS_COMPLETED:
        restored = 0
        for record in records:
            try:
                changed = _restore_item(settlement, record)
                commit_or_raise(
                    f"restore of item {record.suitcase_item_id} from settlement {settlement_id}"
                )
            except Exception:
                db.session.rollback()
                logger.error(
                    "Reversal of settlement %s (suitcase %s) stopped at item %s; "
                    "%s item(s) restored so far, retry is safe",
                    settlement_id, suitcase_id, record.suitcase_item_id, restored,
                )
                raise
            if changed:
                restored += 1
        logger.info(
            "Reversal of settlement %s: %s of %s item(s) returned to suitcase %s",
            settlement_id, restored, len(records), suitcase_id,
        )

    if policy == POLICY_PURGE:
        for record in records:
            db.session.delete(record)
    else:
        voided_at = utcnow()
        for record in records:
            record.settlement_id = None
            record.voided_settlement_id = settlement_id
            record.voided_at = voided_at

    db.session.delete(settlement)
    commit_or_raise(f"deletion of settlement {settlement_id}")
    db.session.expire_all()

    logger.info(
        "Settlement %s of suitcase %s deleted by user %s (sold items: %s)",
        settlement_id, suitcase_id, actor_user_id, policy,
    )
    return True
