# backend/maleta/routes/system.py
"""
System health endpoint.

Reports database reachability plus the settlement-side signals an operator
needs after an incident: held settlement locks (and how many look
abandoned) and pendente settlements.
"""

import time
from datetime import timedelta

from flask import Blueprint, current_app

from ..extensions import db
from ..models import Settlement, SettlementLock, Suitcase
from maleta.time_utils import utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        suitcase_count = db.session.query(Suitcase).count()
        pending_count = db.session.query(Settlement).filter_by(status="pendente").count()

        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "suitcases": suitcase_count,
                "pending_settlements": pending_count,
            }
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


def check_settlement_locks() -> dict:
    """Locks past their TTL mean a settlement workflow died mid-run."""
    start_time = time.time()
    try:
        ttl = timedelta(seconds=current_app.config.get("SETTLEMENT_LOCK_TTL_SECONDS", 300))
        held = db.session.query(SettlementLock).count()
        stale = db.session.query(SettlementLock).filter(
            SettlementLock.acquired_at < utcnow() - ttl
        ).count()

        elapsed_ms = (time.time() - start_time) * 1000
        result = {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {"held": held, "stale": stale},
        }
        if stale:
            result["status"] = "degraded"
            result["warning"] = f"{stale} abandoned settlement lock(s)"
        return result
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Settlement lock health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Settlement lock check error"
        }


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: healthy or degraded
    - 503: one or more checks unhealthy
    """
    start_time = time.time()

    database_health = check_database_health()
    lock_health = check_settlement_locks()

    all_checks = [database_health, lock_health]
    if any(check["status"] == "unhealthy" for check in all_checks):
        overall_status = "unhealthy"
        http_status = 503
    elif any(check["status"] == "degraded" for check in all_checks):
        overall_status = "degraded"
        http_status = 200  # Degraded is still operational
    else:
        overall_status = "healthy"
        http_status = 200

    total_elapsed_ms = (time.time() - start_time) * 1000

    response = {
        "status": overall_status,
        "timestamp": utcnow().isoformat() + "Z",
        "total_latency_ms": round(total_elapsed_ms, 2),
        "checks": {
            "database": database_health,
            "settlement_locks": lock_health,
        }
    }

    return response, http_status
