# Overview: Flask API routes for shift operations; parses input and returns JSON responses.

"""
Shift API Routes

WHY: Cashiers count the drawer in and out; managers review the summary.

DESIGN:
- Shift lifecycle: open -> close (immutable once closed)
- Manual cash movements (till top-up, bank drop) logged with a reason
- Summary is a read-side aggregation, never stored
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_actor, require_location
from ..services import shift_service
from ..validation import ConflictError, NotFoundError, ValidationError


shifts_bp = Blueprint("shifts", __name__, url_prefix="/api/shifts")


def _error(e, status: int):
    return jsonify({"error": str(e), "details": getattr(e, "details", {})}), status


@shifts_bp.post("")
@shifts_bp.post("/")
@require_actor
@require_location
def open_shift_route():
    """
    Open a shift for the acting user.

    Request body: {"starting_cash": "100.00"}
    """
    try:
        data = request.get_json() or {}

        shift = shift_service.open_shift(g.current_user.id, g.location_id, data.get("starting_cash"))
        return jsonify({"shift": shift.to_dict()}), 201

    except ValidationError as e:
        return _error(e, 400)
    except NotFoundError as e:
        return _error(e, 404)
    except Exception:
        current_app.logger.exception("Failed to open shift")
        return jsonify({"error": "Internal server error"}), 500


@shifts_bp.get("/current")
@require_actor
def current_shift_route():
    """The acting user's open shift, or {"shift": null}."""
    shift = shift_service.get_open_shift(g.current_user.id)
    return jsonify({"shift": shift.to_dict() if shift else None}), 200


@shifts_bp.get("")
@shifts_bp.get("/")
@require_actor
@require_location
def list_shifts_route():
    try:
        limit = min(int(request.args.get("limit", 20)), 100)
    except ValueError:
        return jsonify({"error": "limit must be an integer"}), 400
    shifts = shift_service.list_shifts(g.location_id, limit=limit)
    return jsonify({"shifts": [s.to_dict() for s in shifts]}), 200


@shifts_bp.post("/<int:shift_id>/close")
@require_actor
def close_shift_route(shift_id: int):
    """
    Close a shift and calculate cash variance.

    Request body:
    {
        "ending_cash": "245.50",
        "notes": "Short one coin roll",  (optional)
        "manager_override": false  (optional)
    }

    Returns:
        200: Closed shift with expected_cash and cash_variance
        400: ending_cash missing or invalid
        409: Shift already closed, or not the owner
    """
    try:
        data = request.get_json() or {}

        shift = shift_service.close_shift(
            shift_id,
            data.get("ending_cash"),
            g.current_user.id,
            notes=data.get("notes"),
            manager_override=bool(data.get("manager_override")) and g.current_user.is_manager,
        )
        return jsonify({"shift": shift.to_dict()}), 200

    except ValidationError as e:
        return _error(e, 400)
    except NotFoundError as e:
        return _error(e, 404)
    except ConflictError as e:
        return _error(e, 409)
    except Exception:
        current_app.logger.exception("Failed to close shift")
        return jsonify({"error": "Internal server error"}), 500


@shifts_bp.post("/<int:shift_id>/cash")
@require_actor
def cash_movement_route(shift_id: int):
    """
    Record a manual drawer movement.

    Request body: {"kind": "CASH_OUT", "amount": "200.00", "reason": "Bank drop"}
    """
    try:
        data = request.get_json() or {}

        entry = shift_service.record_cash_movement(
            shift_id,
            data.get("kind"),
            data.get("amount"),
            g.current_user.id,
            reason=data.get("reason"),
        )
        return jsonify({"transaction": entry.to_dict()}), 201

    except ValidationError as e:
        return _error(e, 400)
    except NotFoundError as e:
        return _error(e, 404)
    except ConflictError as e:
        return _error(e, 409)
    except Exception:
        current_app.logger.exception("Failed to record cash movement")
        return jsonify({"error": "Internal server error"}), 500


@shifts_bp.get("/<int:shift_id>/transactions")
@require_actor
def shift_transactions_route(shift_id: int):
    try:
        entries = shift_service.list_drawer_transactions(shift_id)
        return jsonify({"transactions": [e.to_dict() for e in entries]}), 200
    except NotFoundError as e:
        return _error(e, 404)


@shifts_bp.get("/<int:shift_id>/summary")
@require_actor
def shift_summary_route(shift_id: int):
    try:
        return jsonify(shift_service.get_shift_summary(shift_id)), 200
    except NotFoundError as e:
        return _error(e, 404)
    except Exception:
        current_app.logger.exception("Failed to build shift summary")
        return jsonify({"error": "Internal server error"}), 500
