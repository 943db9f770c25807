# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .extensions import db
from .models import Location, User


def _header_int(name: str):
    raw = (request.headers.get(name) or "").strip()
    if not raw:
        return None
    if not raw.isdigit():
        raise ValueError(name)
    return int(raw)


def require_actor(f):
    """
    Resolve the acting user and location for the request.

    Identity is asserted by the terminal, not authenticated here. Sets:
    - g.current_user: the acting User (from X-User-Id)
    - g.location_id: X-Location-Id, falling back to the user's assigned
      location (may be None for company-level users)

    Returns 401 if the header is missing or names an unknown or inactive
    user, 403 if the location belongs to another company.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            user_id = _header_int("X-User-Id")
            location_id = _header_int("X-Location-Id")
        except ValueError as e:
            return jsonify({"error": f"{e} header must be an integer"}), 400

        if user_id is None:
            return jsonify({"error": "X-User-Id header required"}), 401

        user = db.session.get(User, user_id)
        if not user or not user.is_active:
            return jsonify({"error": "Unknown or inactive user"}), 401

        if location_id is None:
            location_id = user.location_id
        elif location_id != user.location_id:
            location = db.session.get(Location, location_id)
            if not location or location.company_id != user.company_id:
                return jsonify({"error": "Location not available to this user"}), 403

        g.current_user = user
        g.location_id = location_id

        return f(*args, **kwargs)

    return decorated_function


def require_location(f):
    """Reject requests with no resolvable location. Use after @require_actor."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if getattr(g, "location_id", None) is None:
            return jsonify({"error": "X-Location-Id header required"}), 400
        return f(*args, **kwargs)
    return decorated_function
