# backend/lilium/routes/payouts.py
"""
Payout routes.

SECURITY:
- Company admins request and cancel payouts for their own company
- Super admins request payouts for any company and drive the status machine
- Listing is scoped to the caller's company for company admins
"""
from dataclasses import replace

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_actor, require_role
from ..errors import EngineError, Forbidden
from ..policies import (
    COMPANY_ADMIN,
    LOCATION_ADMIN,
    SUPER_ADMIN,
    ensure_can_read_company,
    ensure_can_request_payout,
)
from ..services.bootstrap import get_engine
from ..validation import (
    parse_create_payout,
    parse_id_list,
    parse_payout_filters,
    parse_payout_status,
    parse_text,
)

payouts_bp = Blueprint("payouts", __name__, url_prefix="/api/payouts")


@payouts_bp.post("")
@require_actor
@require_role(SUPER_ADMIN, COMPANY_ADMIN)
def create_payout_route():
    """
    Request a payout.

    Body: {"company_id": 1, "method": "BANK_TRANSFER", "amount": 27000,
           "order_ids": [1, 2], "bank_details": {...}, "notes": "..."}
    amount and order_ids are optional (default: everything payable).
    """
    payload = request.get_json(silent=True) or {}
    try:
        data = parse_create_payout(payload, g.actor)
        ensure_can_request_payout(g.actor, data.company_id)
        payout = get_engine().payouts.create_payout(data)
        return jsonify({"payout": payout.to_dict()}), 201
    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create payout")
        return jsonify({"error": "Internal server error"}), 500


@payouts_bp.get("")
@require_actor
@require_role(SUPER_ADMIN, LOCATION_ADMIN, COMPANY_ADMIN)
def list_payouts_route():
    try:
        filters = parse_payout_filters(request.args)
        if g.actor.role == COMPANY_ADMIN:
            if g.actor.company_id is None:
                raise Forbidden("Company admin has no company", {})
            filters = replace(filters, company_id=g.actor.company_id)
        payouts, pagination = get_engine().payouts.list_payouts(filters)
        return jsonify({
            "payouts": [p.to_dict() for p in payouts],
            "pagination": pagination,
        }), 200
    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list payouts")
        return jsonify({"error": "Internal server error"}), 500


@payouts_bp.get("/summary/<int:company_id>")
@require_actor
@require_role(SUPER_ADMIN, LOCATION_ADMIN, COMPANY_ADMIN)
def payout_summary_route(company_id: int):
    try:
        ensure_can_read_company(g.actor, company_id)
        summary = get_engine().payouts.payout_summary(company_id)
        return jsonify({"summary": summary}), 200
    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to build payout summary")
        return jsonify({"error": "Internal server error"}), 500


@payouts_bp.get("/<int:payout_id>")
@require_actor
@require_role(SUPER_ADMIN, LOCATION_ADMIN, COMPANY_ADMIN)
def get_payout_route(payout_id: int):
    try:
        payout = get_engine().payouts.get_payout(payout_id)
        ensure_can_read_company(g.actor, payout.company_id)
        return jsonify({"payout": payout.to_dict()}), 200
    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load payout")
        return jsonify({"error": "Internal server error"}), 500


@payouts_bp.post("/<int:payout_id>/status")
@require_actor
@require_role(SUPER_ADMIN)
def update_payout_status_route(payout_id: int):
    """Body: {"status": "PROCESSING" | "COMPLETED" | "FAILED" | "CANCELLED", "notes": "..."}"""
    payload = request.get_json(silent=True) or {}
    try:
        status, notes = parse_payout_status(payload)
        payout = get_engine().payouts.update_status(payout_id, status, g.actor.id, notes)
        return jsonify({"payout": payout.to_dict()}), 200
    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update payout status")
        return jsonify({"error": "Internal server error"}), 500


@payouts_bp.post("/<int:payout_id>/cancel")
@require_actor
@require_role(SUPER_ADMIN, COMPANY_ADMIN)
def cancel_payout_route(payout_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        reason = parse_text(payload.get("reason"), "reason")
        payout = get_engine().payouts.cancel_payout(payout_id, g.actor, reason)
        return jsonify({"payout": payout.to_dict()}), 200
    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to cancel payout")
        return jsonify({"error": "Internal server error"}), 500


@payouts_bp.post("/bulk-approve")
@require_actor
@require_role(SUPER_ADMIN)
def bulk_approve_route():
    payload = request.get_json(silent=True) or {}
    try:
        payout_ids = parse_id_list(payload.get("payout_ids"), "payout_ids")
        result = get_engine().payouts.bulk_approve(payout_ids, g.actor.id)
        return jsonify(result), 200
    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to bulk approve payouts")
        return jsonify({"error": "Internal server error"}), 500
