# Overview: Flask API routes for settlements; parses input and returns JSON responses.

# backend/maleta/routes/settlements.py
"""
Settlement API Routes

DESIGN:
- POST creates a settlement from the list of items scanned as present
- GET lists settlements (filters) or returns one with joined details
- PATCH changes the status (pendente <-> concluido)
- DELETE reverses a settlement (administrators only)
- POST .../receipt renders the receipt and stores its URL

Every route identifies the caller from X-User-Id (require_user).
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_user
from ..services import receipt_service, reversal_service, settlement_service
from ..services.errors import (
    InvalidCommissionRate,
    InvalidItemState,
    NotFoundError,
    PermissionDenied,
    PersistenceFailure,
    SettlementInProgress,
)
from ..services.settlement_service import SettlementError
from ..validation import (
    ValidationError,
    coerce_datetime,
    coerce_id_list,
    coerce_int,
    require_json_object,
)


settlements_bp = Blueprint("settlements", __name__, url_prefix="/api/settlements")


# =============================================================================
# SETTLEMENT CREATION
# =============================================================================

@settlements_bp.post("")
@require_user
def create_settlement_route():
    """
    Settle a suitcase.

    Request body:
    {
        "suitcase_id": 1,
        "seller_id": 2,                 (optional, default: suitcase's seller)
        "settlement_date": "2026-10-01T12:00:00Z",
        "next_settlement_date": "...",  (optional)
        "items_present": [10, 12]       (suitcase item ids still in the suitcase)
    }

    Returns:
        201: Settlement created
        400: Invalid input, invalid commission rate, or an item left
             in_possession while the settlement was running
        404: Suitcase or seller not found
        409: Another settlement of this suitcase is running
        503: Persistence failure (completed steps were compensated)
    """
    try:
        data = require_json_object(request.get_json(silent=True))

        suitcase_id = coerce_int(data.get("suitcase_id"), "suitcase_id", required=True)
        seller_id = coerce_int(data.get("seller_id"), "seller_id")
        settlement_date = coerce_datetime(data.get("settlement_date"), "settlement_date", required=True)
        next_settlement_date = coerce_datetime(data.get("next_settlement_date"), "next_settlement_date")
        items_present = coerce_id_list(data.get("items_present"), "items_present")

        settlement = settlement_service.create_settlement(
            suitcase_id=suitcase_id,
            seller_id=seller_id,
            settlement_date=settlement_date,
            next_settlement_date=next_settlement_date,
            items_present=items_present,
            created_by_user_id=g.current_user.id,
        )

        return jsonify({"settlement": settlement.to_dict(include_items=True)}), 201

    except (ValidationError, SettlementError, InvalidCommissionRate) as e:
        return jsonify({"error": str(e)}), 400
    except InvalidItemState as e:
        return jsonify({"error": str(e), "item_id": e.item_id, "status": e.status}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except SettlementInProgress as e:
        return jsonify({"error": str(e)}), 409
    except PersistenceFailure as e:
        return jsonify({"error": str(e)}), 503
    except Exception:
        current_app.logger.exception("Failed to create settlement")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# SETTLEMENT QUERIES
# =============================================================================

@settlements_bp.get("")
@require_user
def list_settlements_route():
    """
    List settlements, newest first.

    Query params: status, seller_id, suitcase_id, date_from, date_to, limit
    """
    try:
        args = request.args
        limit = coerce_int(args.get("limit"), "limit", minimum=1) or 100

        settlements = settlement_service.list_settlements(
            status=args.get("status") or None,
            seller_id=coerce_int(args.get("seller_id"), "seller_id"),
            suitcase_id=coerce_int(args.get("suitcase_id"), "suitcase_id"),
            date_from=coerce_datetime(args.get("date_from"), "date_from"),
            date_to=coerce_datetime(args.get("date_to"), "date_to"),
            limit=min(limit, 500),
        )

        return jsonify({
            "settlements": [s.to_dict() for s in settlements],
            "count": len(settlements),
        }), 200

    except (ValidationError, SettlementError) as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to list settlements")
        return jsonify({"error": "Internal server error"}), 500


@settlements_bp.get("/<int:settlement_id>")
@require_user
def get_settlement_route(settlement_id: int):
    """Settlement with suitcase, seller, sold items, cost and net profit."""
    try:
        details = settlement_service.get_settlement_details(settlement_id)
        return jsonify({"settlement": details}), 200

    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to get settlement")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# STATUS / REVERSAL / RECEIPT
# =============================================================================

@settlements_bp.patch("/<int:settlement_id>/status")
@require_user
def update_settlement_status_route(settlement_id: int):
    """
    Request body: {"status": "pendente" | "concluido"}

    Returns:
        200: Updated settlement
        400: Invalid status
        404: Settlement not found
        503: Suitcase already has a pendente settlement
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        status = data.get("status")
        if not status:
            return jsonify({"error": "status required"}), 400

        settlement = settlement_service.update_settlement_status(settlement_id, status)
        return jsonify({"settlement": settlement.to_dict()}), 200

    except (ValidationError, SettlementError) as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except PersistenceFailure as e:
        return jsonify({"error": str(e)}), 503
    except Exception:
        current_app.logger.exception("Failed to update settlement status")
        return jsonify({"error": "Internal server error"}), 500


@settlements_bp.delete("/<int:settlement_id>")
@require_user
def delete_settlement_route(settlement_id: int):
    """
    Reverse a settlement: sold items go back to the suitcase, then the
    settlement is deleted.

    Returns:
        200: Deleted
        403: Caller is not an administrator
        404: Settlement not found
        409: A settlement of the same suitcase is running
        503: Persistence failure (retry is safe)
    """
    try:
        deleted = reversal_service.delete_settlement(settlement_id, g.current_user.id)
        if not deleted:
            return jsonify({"error": f"Settlement {settlement_id} not found"}), 404
        return jsonify({"deleted": True, "settlement_id": settlement_id}), 200

    except PermissionDenied as e:
        return jsonify({"error": str(e)}), 403
    except InvalidItemState as e:
        return jsonify({"error": str(e), "item_id": e.item_id, "status": e.status}), 400
    except SettlementInProgress as e:
        return jsonify({"error": str(e)}), 409
    except PersistenceFailure as e:
        return jsonify({"error": str(e)}), 503
    except Exception:
        current_app.logger.exception("Failed to delete settlement")
        return jsonify({"error": "Internal server error"}), 500


@settlements_bp.post("/<int:settlement_id>/receipt")
@require_user
def generate_receipt_route(settlement_id: int):
    try:
        settlement = receipt_service.generate_receipt(settlement_id)
        return jsonify({"settlement": settlement.to_dict(), "receipt_url": settlement.receipt_url}), 200

    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except PersistenceFailure as e:
        return jsonify({"error": str(e)}), 503
    except Exception:
        current_app.logger.exception("Failed to generate receipt")
        return jsonify({"error": "Internal server error"}), 500
