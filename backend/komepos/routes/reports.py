from flask import Blueprint, current_app, jsonify, request, g

from ..decorators import require_actor, require_location
from ..services import reporting_service
from ..validation import NotFoundError, ValidationError


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@reports_bp.get("/sales")
@require_actor
@require_location
def sales_report():
    range_key = request.args.get("range", reporting_service.RANGE_TODAY).lower()

    try:
        report = reporting_service.sales_report(g.location_id, range_key)
        return jsonify(report), 200
    except ValidationError as exc:
        return jsonify({"error": str(exc)}), 400
    except NotFoundError as exc:
        return jsonify({"error": str(exc)}), 404
    except Exception:
        current_app.logger.exception("Failed to build sales report")
        return jsonify({"error": "Internal server error"}), 500
