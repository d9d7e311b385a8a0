# Overview: Reconciliation cleanup; guarantees a settled suitcase holds no items.

"""
Reconciliation Cleanup

POST-CONDITION: after a settlement the suitcase holds zero SuitcaseItems;
the physical suitcase is emptied and waits for fresh stock.

- Idempotent: running it on an empty suitcase is a no-op, so it is safe to
  re-run after a partial failure (API: POST /api/suitcases/<id>/cleanup,
  CLI: flask settlements cleanup <id>).
- Items still in_possession are units that physically came back; they are
  returned to stock before deletion so inventory stays consistent.
- Sale annotations of removed items are removed with them.
"""

from __future__ import annotations

import logging
import time

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import SuitcaseItem, SuitcaseItemSale
from .errors import InconsistentCleanup, PersistenceFailure
from .item_status import ITEM_STATUS_IN_POSSESSION
from .suitcase_item_service import get_suitcase, restock_item

logger = logging.getLogger(__name__)


def _attached_item_ids(suitcase_id: int) -> list[int]:
    rows = db.session.query(SuitcaseItem.id).filter_by(suitcase_id=suitcase_id).all()
    return [row.id for row in rows]


def _cleanup_pass(suitcase_id: int) -> int:
    items = (
        db.session.query(SuitcaseItem)
        .filter_by(suitcase_id=suitcase_id)
        .order_by(SuitcaseItem.id)
        .all()
    )
    if not items:
        return 0

    for item in items:
        if item.status == ITEM_STATUS_IN_POSSESSION:
            logger.warning(
                "Cleanup of suitcase %s: item %s still in_possession, returning %s unit(s) to stock",
                suitcase_id, item.id, item.quantity,
            )
            restock_item(item)

    ids = [item.id for item in items]
    db.session.query(SuitcaseItemSale).filter(
        SuitcaseItemSale.suitcase_item_id.in_(ids)
    ).delete(synchronize_session="fetch")
    db.session.query(SuitcaseItem).filter(
        SuitcaseItem.id.in_(ids)
    ).delete(synchronize_session="fetch")
    db.session.commit()
    db.session.expire_all()
    return len(ids)


def cleanup_suitcase(suitcase_id: int, *, max_attempts: int | None = None) -> int:
    """
    Remove every item still attached to the suitcase, whatever its status.

    Retries failed passes with exponential backoff.

    Returns:
        Number of item rows removed (0 when already empty)

    Raises:
        SuitcaseNotFound: unknown suitcase
        InconsistentCleanup: items remain after max_attempts passes
        PersistenceFailure: the final verification query itself failed
    """
    get_suitcase(suitcase_id)

    if max_attempts is None:
        max_attempts = int(current_app.config.get("CLEANUP_MAX_ATTEMPTS", 3))
    backoff_base = float(current_app.config.get("RETRY_BACKOFF_BASE", 0.1))

    removed = 0
    for attempt in range(1, max_attempts + 1):
        try:
            removed += _cleanup_pass(suitcase_id)
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.warning(
                "Cleanup pass %s/%s for suitcase %s failed: %s",
                attempt, max_attempts, suitcase_id, exc,
            )

        try:
            remaining = _attached_item_ids(suitcase_id)
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise PersistenceFailure(
                f"Could not verify cleanup of suitcase {suitcase_id}"
            ) from exc

        if not remaining:
            if removed:
                logger.info("Cleanup of suitcase %s removed %s item(s)", suitcase_id, removed)
            return removed

        if attempt < max_attempts:
            time.sleep(backoff_base * (2 ** (attempt - 1)))

    logger.error(
        "Suitcase %s still holds items %s after %s cleanup attempts",
        suitcase_id, remaining, max_attempts,
    )
    raise InconsistentCleanup(
        f"Suitcase {suitcase_id} still holds {len(remaining)} item(s) after cleanup",
        suitcase_id=suitcase_id,
        remaining_item_ids=remaining,
    )
