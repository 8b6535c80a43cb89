# backend/lilium/routes/settlements.py
"""
Vendor settlement routes (read-only).

Super and location admins may read any company; company admins only their own.
Date-only start/end values cover whole days.
"""
from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_actor, require_role
from ..errors import EngineError
from ..policies import COMPANY_ADMIN, LOCATION_ADMIN, SUPER_ADMIN, ensure_can_read_company
from ..services.bootstrap import get_engine
from ..validation import parse_date_range, parse_datetime

settlements_bp = Blueprint("settlements", __name__, url_prefix="/api/settlements")

SETTLEMENT_ROLES = (SUPER_ADMIN, LOCATION_ADMIN, COMPANY_ADMIN)


@settlements_bp.get("/<int:company_id>/balance")
@require_actor
@require_role(*SETTLEMENT_ROLES)
def balance_route(company_id: int):
    try:
        ensure_can_read_company(g.actor, company_id)
        balance = get_engine().settlements.available_balance(company_id)
        return jsonify({"company_id": company_id, "available_balance": balance}), 200
    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to compute balance")
        return jsonify({"error": "Internal server error"}), 500


@settlements_bp.get("/<int:company_id>/report")
@require_actor
@require_role(*SETTLEMENT_ROLES)
def report_route(company_id: int):
    """Commission report for orders delivered in ?start=...&end=... (both required)."""
    try:
        ensure_can_read_company(g.actor, company_id)
        window = parse_date_range(request.args)
        report = get_engine().settlements.generate_report(company_id, window.start, window.end)
        return jsonify({"report": report}), 200
    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to generate settlement report")
        return jsonify({"error": "Internal server error"}), 500


@settlements_bp.get("/<int:company_id>/summary")
@require_actor
@require_role(*SETTLEMENT_ROLES)
def summary_route(company_id: int):
    try:
        ensure_can_read_company(g.actor, company_id)
        start = parse_datetime(request.args.get("start"), "start")
        end = parse_datetime(request.args.get("end"), "end", end_of_day=True)
        summary = get_engine().settlements.settlement_summary(company_id, start, end)
        return jsonify({"summary": summary}), 200
    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to build settlement summary")
        return jsonify({"error": "Internal server error"}), 500
