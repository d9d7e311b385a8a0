# Overview: Service-layer operations for concurrency; row locks, retries and settlement slot locks.

from __future__ import annotations

import logging
import time
import uuid
from datetime import timedelta

from flask import current_app
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..models import SettlementLock
from maleta.time_utils import utcnow
from .errors import PersistenceFailure, SettlementInProgress

logger = logging.getLogger(__name__)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def _backoff_base() -> float:
    return float(current_app.config.get("RETRY_BACKOFF_BASE", 0.1))


def run_with_retry(func, *, attempts: int = 3, backoff_base: float | None = None):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts). Once attempts are exhausted the error is
    raised as PersistenceFailure; other SQLAlchemy errors are raised as
    PersistenceFailure right away.
    """
    if backoff_base is None:
        backoff_base = _backoff_base()
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise PersistenceFailure(str(exc)) from exc
            time.sleep(backoff_base * (2 ** attempt))
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise PersistenceFailure(str(exc)) from exc


def commit_or_raise(context: str) -> None:
    """Commit the session; roll back and raise PersistenceFailure on failure."""
    try:
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.error("Commit failed (%s): %s", context, exc)
        raise PersistenceFailure(f"Failed to persist {context}") from exc


# =============================================================================
# SETTLEMENT SLOT LOCK
# =============================================================================

def acquire_settlement_lock(suitcase_id: int) -> str:
    """
    Take exclusive ownership of a suitcase's settlement slot.

    The unique constraint on settlement_locks.suitcase_id makes the insert the
    arbiter: a second concurrent caller gets an IntegrityError. A lock older
    than SETTLEMENT_LOCK_TTL_SECONDS is considered abandoned and taken over.

    Returns the lock token to pass to release_settlement_lock.
    """
    token = uuid.uuid4().hex
    ttl = timedelta(seconds=current_app.config.get("SETTLEMENT_LOCK_TTL_SECONDS", 300))

    stale = db.session.query(SettlementLock).filter(
        SettlementLock.suitcase_id == suitcase_id,
        SettlementLock.acquired_at < utcnow() - ttl,
    ).first()
    if stale is not None:
        logger.warning(
            "Taking over abandoned settlement lock for suitcase %s (acquired %s)",
            suitcase_id, stale.acquired_at,
        )
        db.session.delete(stale)
        commit_or_raise(f"stale lock removal for suitcase {suitcase_id}")

    db.session.add(SettlementLock(suitcase_id=suitcase_id, token=token, acquired_at=utcnow()))
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        raise SettlementInProgress(
            f"A settlement is already in progress for suitcase {suitcase_id}"
        ) from exc
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise PersistenceFailure(f"Failed to lock suitcase {suitcase_id}") from exc
    return token


def release_settlement_lock(suitcase_id: int, token: str) -> None:
    """Release the slot if we still own it. Failures are logged, not raised."""
    try:
        db.session.rollback()
        db.session.query(SettlementLock).filter_by(
            suitcase_id=suitcase_id, token=token
        ).delete(synchronize_session=False)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Failed to release settlement lock for suitcase %s", suitcase_id)


def force_release_settlement_lock(suitcase_id: int) -> bool:
    """Drop whatever lock is held for the suitcase (operator action)."""
    deleted = db.session.query(SettlementLock).filter_by(
        suitcase_id=suitcase_id
    ).delete(synchronize_session=False)
    commit_or_raise(f"lock release for suitcase {suitcase_id}")
    return bool(deleted)
