# Overview: Request decorators establishing the calling actor and enforcing roles.

from functools import wraps
from flask import request, jsonify, g

from .policies import Actor, ROLES


def _parse_actor():
    """
    Build the Actor from trusted gateway headers.

    The auth layer in front of this service verifies credentials and sets:
    - X-Actor-Id:      user id (required)
    - X-Actor-Role:    SUPER_ADMIN | LOCATION_ADMIN | COMPANY_ADMIN | SHOP_OWNER (required)
    - X-Actor-Zones:   comma-separated zones (location admins)
    - X-Actor-Company: company id (company admins)

    Returns None when the headers are missing or malformed.
    """
    raw_id = (request.headers.get("X-Actor-Id") or "").strip()
    role = (request.headers.get("X-Actor-Role") or "").strip().upper()
    if not raw_id.isdigit() or role not in ROLES:
        return None

    zones = tuple(
        z.strip().upper()
        for z in (request.headers.get("X-Actor-Zones") or "").split(",")
        if z.strip()
    )
    raw_company = (request.headers.get("X-Actor-Company") or "").strip()
    company_id = int(raw_company) if raw_company.isdigit() else None
    return Actor(id=int(raw_id), role=role, zones=zones, company_id=company_id)


def require_actor(f):
    """
    Require an authenticated actor.

    Sets g.actor for the route. Returns 401 when the gateway headers are absent.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        actor = _parse_actor()
        if actor is None:
            return jsonify({"error": "Authentication required", "code": "UNAUTHORIZED", "details": {}}), 401
        g.actor = actor
        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles):
    """
    Require one of the given roles. Must be applied after @require_actor.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            actor = getattr(g, "actor", None)
            if actor is None:
                return jsonify({"error": "Authentication required", "code": "UNAUTHORIZED", "details": {}}), 401
            if actor.role not in roles:
                return jsonify({
                    "error": "Permission denied",
                    "code": "FORBIDDEN",
                    "details": {"required_roles": list(roles), "role": actor.role},
                }), 403
            return f(*args, **kwargs)

        return decorated_function
    return decorator
