# Overview: Flask API routes for order operations; parses input and returns JSON responses.

"""
Order API Routes

WHY: The register quotes carts while the cashier builds them, then commits
the sale once payment is taken. Kitchen and delivery screens move orders
along their lifecycle; refunds mirror a committed order.

DESIGN:
- Quote and commit share the same pricing code; commit never trusts
  client-side totals
- Commit and refund accept client_request_id so a retried request returns
  the order already created
- Errors carry the conflicting record in "details"
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_actor, require_location
from ..models.orders import CHANNEL_REGISTER
from ..services import order_lifecycle, order_service, refund_service
from ..validation import ConflictError, IntegrityError, NotFoundError, ValidationError


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


def _error(e, status: int):
    return jsonify({"error": str(e), "details": getattr(e, "details", {})}), status


# =============================================================================
# QUOTE / COMMIT
# =============================================================================

@orders_bp.post("/quote")
@require_actor
@require_location
def quote_order_route():
    """
    Price a cart without persisting anything.

    Request body:
    {
        "order_type": "DINE_IN",
        "items": [{"product_id": 1, "quantity": 2, "option_ids": [3], "addons": [{"addon_id": 4, "quantity": 1}]}],
        "discount": {"kind": "PERCENT", "value": "10"},  (optional)
        "delivery_zone_id": 2,  (DELIVERY only)
        "amount_tendered": "20.00"  (optional)
    }
    """
    try:
        data = request.get_json() or {}

        quote = order_service.quote_order(
            location_id=g.location_id,
            items=data.get("items") or [],
            order_type=data.get("order_type"),
            manual_discount=order_service.parse_manual_discount(data.get("discount")),
            delivery_zone_id=data.get("delivery_zone_id"),
            amount_tendered=data.get("amount_tendered"),
        )
        return jsonify({"quote": quote}), 200

    except ValidationError as e:
        return _error(e, 400)
    except NotFoundError as e:
        return _error(e, 404)
    except Exception:
        current_app.logger.exception("Failed to quote order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("")
@orders_bp.post("/")
@require_actor
@require_location
def commit_order_route():
    """
    Commit a sale.

    Request body: same as /quote plus
    {
        "payment_method": "cash",
        "channel": "REGISTER",  (optional)
        "customer_id": 12,  (optional, omitted for walk-in)
        "notes": "No onions",  (optional)
        "client_request_id": "c1b9..."  (optional, idempotency key)
    }

    Returns:
        201: Order committed
        400: Invalid cart, missing delivery zone, tender below total
        409: Order number could not be allocated
    """
    try:
        data = request.get_json() or {}

        order = order_service.commit_order(
            location_id=g.location_id,
            user_id=g.current_user.id,
            items=data.get("items") or [],
            order_type=data.get("order_type"),
            payment_method=data.get("payment_method"),
            channel=data.get("channel") or CHANNEL_REGISTER,
            manual_discount=order_service.parse_manual_discount(data.get("discount")),
            delivery_zone_id=data.get("delivery_zone_id"),
            customer_id=data.get("customer_id"),
            amount_tendered=data.get("amount_tendered"),
            notes=data.get("notes"),
            client_request_id=data.get("client_request_id"),
        )
        return jsonify({"order": order.to_dict(include_items=True)}), 201

    except ValidationError as e:
        return _error(e, 400)
    except NotFoundError as e:
        return _error(e, 404)
    except ConflictError as e:
        return _error(e, 409)
    except IntegrityError as e:
        current_app.logger.error("Order commit integrity failure: %s", e)
        return _error(e, 500)
    except Exception:
        current_app.logger.exception("Failed to commit order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/<int:order_id>")
@require_actor
def get_order_route(order_id: int):
    try:
        order = order_service.get_order(order_id, g.current_user.company_id)
        return jsonify({"order": order.to_dict(include_items=True)}), 200
    except NotFoundError as e:
        return _error(e, 404)
    except Exception:
        current_app.logger.exception("Failed to load order")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# LIFECYCLE
# =============================================================================

@orders_bp.post("/<int:order_id>/status")
@require_actor
def update_order_status_route(order_id: int):
    """
    Move an order one step along its lifecycle.

    Request body: {"status": "PREPARING"}
    """
    try:
        data = request.get_json() or {}
        if not data.get("status"):
            return jsonify({"error": "status required"}), 400

        order_service.get_order(order_id, g.current_user.company_id)
        order = order_lifecycle.transition_order_status(order_id, data["status"], g.current_user.id)
        return jsonify({"order": order.to_dict()}), 200

    except ValidationError as e:
        return _error(e, 400)
    except NotFoundError as e:
        return _error(e, 404)
    except ConflictError as e:
        return _error(e, 409)
    except Exception:
        current_app.logger.exception("Failed to update order status")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<int:order_id>/payment")
@require_actor
def mark_order_paid_route(order_id: int):
    """
    Confirm payment of a pending order.

    Request body: {"amount_tendered": "30.00"}  (optional, cash only)
    """
    try:
        data = request.get_json(silent=True) or {}
        order_service.get_order(order_id, g.current_user.company_id)
        order = order_lifecycle.mark_order_paid(order_id, g.current_user.id, data.get("amount_tendered"))
        return jsonify({"order": order.to_dict()}), 200

    except ValidationError as e:
        return _error(e, 400)
    except NotFoundError as e:
        return _error(e, 404)
    except ConflictError as e:
        return _error(e, 409)
    except Exception:
        current_app.logger.exception("Failed to record order payment")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# REFUND
# =============================================================================

@orders_bp.post("/<int:order_id>/refund")
@require_actor
def refund_order_route(order_id: int):
    """
    Refund a completed, paid order in full.

    Request body:
    {
        "disbursement_method": "cash",  (optional, defaults to original method)
        "reason": "Wrong order",  (optional)
        "client_request_id": "..."  (optional)
    }

    Returns:
        201: Refund order created
        409: Already refunded or not refundable
    """
    try:
        data = request.get_json(silent=True) or {}

        order_service.get_order(order_id, g.current_user.company_id)
        refund = refund_service.refund_order(
            order_id,
            g.current_user.id,
            disbursement_method=data.get("disbursement_method"),
            reason=data.get("reason"),
            client_request_id=data.get("client_request_id"),
        )
        return jsonify({"refund": refund.to_dict(include_items=True)}), 201

    except ValidationError as e:
        return _error(e, 400)
    except NotFoundError as e:
        return _error(e, 404)
    except ConflictError as e:
        return _error(e, 409)
    except IntegrityError as e:
        current_app.logger.error("Refund integrity failure: %s", e)
        return _error(e, 500)
    except Exception:
        current_app.logger.exception("Failed to refund order")
        return jsonify({"error": "Internal server error"}), 500
