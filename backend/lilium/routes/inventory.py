# backend/lilium/routes/inventory.py
"""
Inventory routes.

SECURITY: Admin roles only.
- Super and location admins manage any product
- Company admins manage their own company's products only

Every change goes through the stock ledger and leaves a history record.
"""
from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_actor, require_role
from ..errors import EngineError, Forbidden, ProductsNotFound
from ..policies import COMPANY_ADMIN, LOCATION_ADMIN, SUPER_ADMIN, ensure_can_manage_stock
from ..services.bootstrap import get_engine
from ..validation import parse_int, parse_stock_adjust, parse_stock_return

inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")

STOCK_ROLES = (SUPER_ADMIN, LOCATION_ADMIN, COMPANY_ADMIN)


def _managed_product(engine, product_id: int):
    product = engine.stock.products.get(product_id)
    if product is None:
        raise ProductsNotFound("Product not found", {"product_ids": [product_id]})
    ensure_can_manage_stock(g.actor, product)
    return product


@inventory_bp.post("/adjust")
@require_actor
@require_role(*STOCK_ROLES)
def adjust_stock_route():
    """
    Manual stock correction.

    Body: {"product_id": 1, "delta": -3, "note": "damaged"}
    """
    payload = request.get_json(silent=True) or {}
    try:
        data = parse_stock_adjust(payload)
        engine = get_engine()
        _managed_product(engine, data.product_id)
        record = engine.stock.adjust(data.product_id, data.delta, data.note, g.actor.id)
        return jsonify({"record": record.to_dict()}), 201
    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to adjust stock")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.post("/returns")
@require_actor
@require_role(*STOCK_ROLES)
def record_return_route():
    payload = request.get_json(silent=True) or {}
    try:
        data = parse_stock_return(payload)
        engine = get_engine()
        _managed_product(engine, data.product_id)
        record = engine.stock.record_return(
            data.product_id, data.quantity, data.order_id, data.note, g.actor.id
        )
        return jsonify({"record": record.to_dict()}), 201
    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to record return")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/history")
@require_actor
@require_role(*STOCK_ROLES)
def stock_history_route():
    """Stock change records for ?product_id= and/or ?order_id= (newest first per product)."""
    try:
        product_id = parse_int(request.args.get("product_id"), "product_id", required=False, minimum=1)
        order_id = parse_int(request.args.get("order_id"), "order_id", required=False, minimum=1)
        limit = parse_int(request.args.get("limit"), "limit", required=False, minimum=1, maximum=500) or 100
        engine = get_engine()
        if product_id is not None:
            _managed_product(engine, product_id)
        elif g.actor.role == COMPANY_ADMIN:
            # Order-wide history spans vendors; company admins must name a product
            return jsonify({"error": "product_id is required", "code": "VALIDATION_FAILED", "details": {}}), 400
        records = engine.stock.history(product_id=product_id, order_ref=order_id, limit=limit)
        return jsonify({"records": [r.to_dict() for r in records]}), 200
    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load stock history")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/low-stock")
@require_actor
@require_role(*STOCK_ROLES)
def low_stock_route():
    try:
        threshold = parse_int(request.args.get("threshold"), "threshold", required=False, minimum=0)
        company_id = parse_int(request.args.get("company_id"), "company_id", required=False, minimum=1)
        if g.actor.role == COMPANY_ADMIN:
            if g.actor.company_id is None:
                raise Forbidden("Company admin has no company", {})
            company_id = g.actor.company_id
        report = get_engine().stock.low_stock(threshold=threshold, company_id=company_id)
        return jsonify(report), 200
    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load low stock report")
        return jsonify({"error": "Internal server error"}), 500
