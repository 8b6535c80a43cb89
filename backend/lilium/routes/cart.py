# backend/lilium/routes/cart.py
"""
Cart routes: pricing preview, checkout and the saved cart.

Checkout creates one order per vendor in a single transaction. Saved carts
belong to the calling actor.
"""
from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_actor
from ..services.bootstrap import get_engine
from ..errors import EngineError
from ..validation import parse_checkout, parse_items

cart_bp = Blueprint("cart", __name__, url_prefix="/api/cart")


@cart_bp.post("/summary")
@require_actor
def cart_summary_route():
    """
    Price a cart without placing it.

    Body: {"address_id": 1, "items": [{"product_id": 1, "quantity": 5}]}
    """
    payload = request.get_json(silent=True) or {}
    try:
        data = parse_checkout(payload, g.actor)
        summary = get_engine().orders.cart_summary(data.buyer_id, data.address_id, data.items)
        return jsonify({"summary": summary}), 200
    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to summarize cart")
        return jsonify({"error": "Internal server error"}), 500


@cart_bp.post("/checkout")
@require_actor
def checkout_route():
    payload = request.get_json(silent=True) or {}
    try:
        data = parse_checkout(payload, g.actor)
        orders = get_engine().orders.checkout(data)
        return jsonify({
            "orders": [o.to_dict() for o in orders],
            "total": sum(o.total for o in orders),
        }), 201
    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to checkout cart")
        return jsonify({"error": "Internal server error"}), 500


@cart_bp.get("/saved")
@require_actor
def get_saved_cart_route():
    items = get_engine().carts.get(g.actor.id)
    return jsonify({"items": items}), 200


@cart_bp.put("/saved")
@require_actor
def save_cart_route():
    payload = request.get_json(silent=True) or {}
    try:
        items = parse_items(payload.get("items"))
        saved = get_engine().carts.save(g.actor.id, items)
        return jsonify({"items": saved}), 200
    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to save cart")
        return jsonify({"error": "Internal server error"}), 500


@cart_bp.post("/saved/merge")
@require_actor
def merge_cart_route():
    """Merge a local cart into the saved one (e.g., after logging in on another device)."""
    payload = request.get_json(silent=True) or {}
    try:
        items = parse_items(payload.get("items"))
        merged = get_engine().carts.merge(g.actor.id, items)
        return jsonify({"items": merged}), 200
    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to merge cart")
        return jsonify({"error": "Internal server error"}), 500


@cart_bp.delete("/saved")
@require_actor
def clear_cart_route():
    try:
        removed = get_engine().carts.clear(g.actor.id)
        return jsonify({"cleared": removed}), 200
    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to clear cart")
        return jsonify({"error": "Internal server error"}), 500
