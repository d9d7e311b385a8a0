# Overview: Flask API routes for suitcases and their items; parses input and returns JSON responses.

# backend/maleta/routes/suitcases.py
"""
Suitcase API Routes

Suitcase contents (add, quantity, return, lost, sale annotations), manual
re-run of reconciliation cleanup, and per-suitcase / per-seller sales
analytics.
"""

from flask import Blueprint, request, jsonify, current_app

from ..decorators import require_user
from ..services import (
    analytics_service,
    cleanup_service,
    settlement_service,
    suitcase_item_service,
)
from ..services.errors import (
    InconsistentCleanup,
    InsufficientStock,
    InvalidItemState,
    NotFoundError,
    PersistenceFailure,
)
from ..validation import (
    ValidationError,
    coerce_datetime,
    coerce_int,
    coerce_optional_str,
    require_json_object,
)


suitcases_bp = Blueprint("suitcases", __name__, url_prefix="/api/suitcases")
suitcase_items_bp = Blueprint("suitcase_items", __name__, url_prefix="/api/suitcase-items")
analytics_bp = Blueprint("analytics", __name__, url_prefix="/api")


def _state_error(e: InvalidItemState):
    return jsonify({"error": str(e), "item_id": e.item_id, "status": e.status}), 400


# =============================================================================
# SUITCASE CONTENTS
# =============================================================================

@suitcases_bp.get("/<int:suitcase_id>/items")
@require_user
def list_suitcase_items_route(suitcase_id: int):
    """Items attached to the suitcase. Optional ?status= filter."""
    try:
        suitcase = suitcase_item_service.get_suitcase(suitcase_id)
        items = suitcase_item_service.get_suitcase_items(
            suitcase_id, status=request.args.get("status") or None
        )
        return jsonify({
            "suitcase": suitcase.to_dict(include_seller=True),
            "items": [item.to_dict() for item in items],
            "count": len(items),
        }), 200

    except InvalidItemState as e:
        return _state_error(e)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to list suitcase items")
        return jsonify({"error": "Internal server error"}), 500


@suitcases_bp.post("/<int:suitcase_id>/items")
@require_user
def add_suitcase_item_route(suitcase_id: int):
    """
    Check an inventory item out into the suitcase.

    Request body:
    {
        "inventory_id": 5,
        "quantity": 2   (optional, default: 1)
    }

    Returns:
        201: Suitcase item (new or merged)
        400: Invalid input or insufficient stock
        404: Suitcase or inventory item not found
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        inventory_id = coerce_int(data.get("inventory_id"), "inventory_id", required=True)
        quantity = coerce_int(data.get("quantity"), "quantity", minimum=1) or 1

        item = suitcase_item_service.add_item_to_suitcase(suitcase_id, inventory_id, quantity)
        return jsonify({"item": item.to_dict()}), 201

    except (ValidationError, InsufficientStock) as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except PersistenceFailure as e:
        return jsonify({"error": str(e)}), 503
    except Exception:
        current_app.logger.exception("Failed to add suitcase item")
        return jsonify({"error": "Internal server error"}), 500


@suitcases_bp.post("/<int:suitcase_id>/cleanup")
@require_user
def cleanup_suitcase_route(suitcase_id: int):
    """Re-run reconciliation cleanup after a partially failed settlement."""
    try:
        removed = cleanup_service.cleanup_suitcase(suitcase_id)
        return jsonify({"suitcase_id": suitcase_id, "removed": removed}), 200

    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except InconsistentCleanup as e:
        return jsonify({"error": str(e), "remaining_item_ids": e.remaining_item_ids}), 503
    except PersistenceFailure as e:
        return jsonify({"error": str(e)}), 503
    except Exception:
        current_app.logger.exception("Failed to clean up suitcase")
        return jsonify({"error": "Internal server error"}), 500


@suitcases_bp.get("/<int:suitcase_id>/settlements")
@require_user
def suitcase_settlements_route(suitcase_id: int):
    try:
        settlements = settlement_service.get_settlements_by_suitcase(suitcase_id)
        return jsonify({
            "settlements": [s.to_dict() for s in settlements],
            "count": len(settlements),
        }), 200

    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to list suitcase settlements")
        return jsonify({"error": "Internal server error"}), 500


@suitcases_bp.get("/<int:suitcase_id>/top-items")
@require_user
def top_items_route(suitcase_id: int):
    try:
        limit = coerce_int(request.args.get("limit"), "limit", minimum=1) or 5
        items = analytics_service.get_top_sold_items(suitcase_id, limit=limit)
        return jsonify({"items": items}), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to compute top items")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# SINGLE ITEM OPERATIONS
# =============================================================================

@suitcase_items_bp.patch("/<int:item_id>/quantity")
@require_user
def update_item_quantity_route(item_id: int):
    """
    Request body: {"quantity": 3}

    Stock moves by the difference. Only in_possession items can change.
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        quantity = coerce_int(data.get("quantity"), "quantity", required=True, minimum=1)

        item = suitcase_item_service.update_item_quantity(item_id, quantity)
        return jsonify({"item": item.to_dict()}), 200

    except InvalidItemState as e:
        return _state_error(e)
    except (ValidationError, InsufficientStock) as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except PersistenceFailure as e:
        return jsonify({"error": str(e)}), 503
    except Exception:
        current_app.logger.exception("Failed to update item quantity")
        return jsonify({"error": "Internal server error"}), 500


@suitcase_items_bp.post("/<int:item_id>/return")
@require_user
def return_item_route(item_id: int):
    try:
        item = suitcase_item_service.return_item_to_inventory(item_id)
        return jsonify({"item": item.to_dict()}), 200

    except InvalidItemState as e:
        return _state_error(e)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except PersistenceFailure as e:
        return jsonify({"error": str(e)}), 503
    except Exception:
        current_app.logger.exception("Failed to return item")
        return jsonify({"error": "Internal server error"}), 500


@suitcase_items_bp.post("/<int:item_id>/lost")
@require_user
def mark_item_lost_route(item_id: int):
    try:
        item = suitcase_item_service.mark_item_lost(item_id)
        return jsonify({"item": item.to_dict()}), 200

    except InvalidItemState as e:
        return _state_error(e)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except PersistenceFailure as e:
        return jsonify({"error": str(e)}), 503
    except Exception:
        current_app.logger.exception("Failed to mark item lost")
        return jsonify({"error": "Internal server error"}), 500


@suitcase_items_bp.put("/<int:item_id>/sale-info")
@require_user
def record_sale_info_route(item_id: int):
    """
    Annotate who bought an item before the settlement happens.

    Request body:
    {
        "customer_name": "Ana",       (optional)
        "payment_method": "pix",      (optional)
        "sold_at": "2026-10-01T..."   (optional)
    }
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        sale = suitcase_item_service.record_sale_info(
            item_id,
            customer_name=coerce_optional_str(data.get("customer_name"), "customer_name", 255),
            payment_method=coerce_optional_str(data.get("payment_method"), "payment_method", 64),
            sold_at=coerce_datetime(data.get("sold_at"), "sold_at"),
        )
        return jsonify({"sale_info": sale.to_dict()}), 200

    except InvalidItemState as e:
        return _state_error(e)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except PersistenceFailure as e:
        return jsonify({"error": str(e)}), 503
    except Exception:
        current_app.logger.exception("Failed to record sale info")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# SALES ANALYTICS
# =============================================================================

@analytics_bp.get("/sellers/<int:seller_id>/popular-items")
@require_user
def popular_items_route(seller_id: int):
    try:
        limit = coerce_int(request.args.get("limit"), "limit", minimum=1) or 5
        days = coerce_int(request.args.get("days"), "days", minimum=1) or 180
        items = analytics_service.get_popular_items(seller_id, limit=limit, days=days)
        return jsonify({"seller_id": seller_id, "days": days, "items": items}), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to compute popular items")
        return jsonify({"error": "Internal server error"}), 500


@analytics_bp.get("/inventory/<int:inventory_id>/sales-frequency")
@require_user
def sales_frequency_route(inventory_id: int):
    try:
        seller_id = coerce_int(request.args.get("seller_id"), "seller_id", required=True)
        days = coerce_int(request.args.get("days"), "days", minimum=1) or 90
        result = analytics_service.get_item_sales_frequency(inventory_id, seller_id, days=days)
        return jsonify(result), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to compute sales frequency")
        return jsonify({"error": "Internal server error"}), 500
