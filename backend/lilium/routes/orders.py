# backend/lilium/routes/orders.py
"""
Order routes.

SECURITY: All routes require an actor (gateway headers).
- Shop owners create, list and cancel their own orders
- Status changes are checked against the role policy by the engine
- Stats are admin-only; location admins see their zones only
"""
from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_actor, require_role
from ..errors import EngineError, Forbidden
from ..models import ZONES
from ..policies import LOCATION_ADMIN, SUPER_ADMIN
from ..services.bootstrap import get_engine
from ..validation import (
    parse_choice,
    parse_create_order,
    parse_order_filters,
    parse_text,
    parse_transition,
)

orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@orders_bp.post("")
@require_actor
def create_order_route():
    """Create one order directly (flat delivery fee, no promotions)."""
    payload = request.get_json(silent=True) or {}
    try:
        data = parse_create_order(payload, g.actor)
        order = get_engine().orders.create_order(data)
        return jsonify({"order": order.to_dict(include_history=True)}), 201
    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("")
@require_actor
def list_orders_route():
    try:
        filters = parse_order_filters(request.args)
        orders, pagination = get_engine().orders.list_orders(filters, g.actor)
        return jsonify({
            "orders": [o.to_dict(include_lines=False) for o in orders],
            "pagination": pagination,
        }), 200
    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list orders")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/stats")
@require_actor
@require_role(SUPER_ADMIN, LOCATION_ADMIN)
def order_stats_route():
    """
    Counts by status and delivered revenue.

    Location admins must name one of their zones (or have exactly one).
    """
    try:
        zone = parse_choice(request.args.get("zone"), "zone", ZONES, required=False)
        actor = g.actor
        if actor.role == LOCATION_ADMIN:
            if zone is None and len(actor.zones) == 1:
                zone = actor.zones[0]
            if zone is None or zone not in actor.zones:
                raise Forbidden("Location admins may only view stats for their zones", {"zones": list(actor.zones)})
        return jsonify({"stats": get_engine().orders.stats(zone)}), 200
    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to compute order stats")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/<int:order_id>")
@require_actor
def get_order_route(order_id: int):
    try:
        order = get_engine().orders.get_order(order_id, g.actor)
        return jsonify({"order": order.to_dict(include_history=True)}), 200
    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<int:order_id>/status")
@require_actor
def transition_order_route(order_id: int):
    """
    Move an order through the status machine.

    Body: {"status": "CONFIRMED", "note": "optional"}
    """
    payload = request.get_json(silent=True) or {}
    try:
        data = parse_transition(payload)
        order = get_engine().orders.transition(order_id, data.status, data.note, g.actor)
        return jsonify({"order": order.to_dict(include_history=True)}), 200
    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to transition order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<int:order_id>/cancel")
@require_actor
def cancel_order_route(order_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        reason = parse_text(payload.get("reason"), "reason", max_length=255)
        order = get_engine().orders.cancel(order_id, g.actor, reason)
        return jsonify({"order": order.to_dict(include_history=True)}), 200
    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to cancel order")
        return jsonify({"error": "Internal server error"}), 500
