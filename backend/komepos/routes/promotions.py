from __future__ import annotations

from datetime import date

from flask import Blueprint, jsonify, request, g

from ..decorators import require_actor, require_location
from ..extensions import db
from ..models import Location
from ..services import promotion_service
from ..time_utils import today_in_timezone

promotions_bp = Blueprint("promotions", __name__, url_prefix="/api/promotions")


@promotions_bp.route("/active", methods=["GET"])
@require_actor
@require_location
def get_active_promotions():
    """Promotions running today at the location (local date), or on ?date=YYYY-MM-DD."""
    raw_date = request.args.get("date")
    on_date = None
    if raw_date:
        try:
            on_date = date.fromisoformat(raw_date)
        except ValueError:
            return jsonify({"error": "date must be YYYY-MM-DD"}), 400

    location = db.session.get(Location, g.location_id)
    if not location:
        return jsonify({"error": "Location not found"}), 404
    if on_date is None:
        on_date = today_in_timezone(location.effective_timezone)

    promotions = promotion_service.get_active_promotions(location.id, on_date)
    result = []
    for promo in promotions:
        item = promo.to_dict()
        item["status"] = promotion_service.promotion_status(promo, on_date)
        result.append(item)
    return jsonify({"date": on_date.isoformat(), "promotions": result})
