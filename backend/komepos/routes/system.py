# backend/komepos/routes/system.py
"""
System health and version endpoints.

Health checks cover the database and the state the order engine depends
on (configured tax and time zone). Version information helps with
deployment debugging.
"""

import sys
import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import Company, Location, Shift
from ..models.shifts import SHIFT_STATUS_OPEN
from ..time_utils import get_zone, to_utc_z, utcnow

system_bp = Blueprint("system", __name__, url_prefix="/api")


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        location_count = db.session.query(Location).count()
        open_shifts = db.session.query(Shift).filter_by(status=SHIFT_STATUS_OPEN).count()

        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "locations": location_count,
                "open_shifts": open_shifts,
            }
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


def check_configuration_health() -> dict:
    """
    Verify companies carry a resolvable time zone.

    An unknown zone silently falls back to UTC, which shifts promotion
    windows and report ranges by hours, so it is reported as degraded.
    """
    start_time = time.time()
    try:
        bad_zones = []
        for company in db.session.query(Company).all():
            if get_zone(company.timezone, fallback="").key != company.timezone:
                bad_zones.append(company.id)

        elapsed_ms = (time.time() - start_time) * 1000

        if bad_zones:
            return {
                "status": "degraded",
                "latency_ms": round(elapsed_ms, 2),
                "warning": f"Unknown time zone on companies: {', '.join(map(str, bad_zones))}",
            }
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "default_timezone": current_app.config.get("DEFAULT_TIMEZONE"),
                "default_tax_rate": str(current_app.config.get("DEFAULT_TAX_RATE")),
            }
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Configuration health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Configuration error"
        }


@system_bp.get("/health")
def health():
    """
    Health check endpoint.

    Returns:
    - 200: healthy or degraded
    - 503: one or more checks unhealthy
    """
    start_time = time.time()

    database_health = check_database_health()
    configuration_health = check_configuration_health()

    all_checks = [database_health, configuration_health]
    unhealthy_count = sum(1 for check in all_checks if check["status"] == "unhealthy")
    degraded_count = sum(1 for check in all_checks if check["status"] == "degraded")

    if unhealthy_count > 0:
        overall_status = "unhealthy"
        http_status = 503
    elif degraded_count > 0:
        overall_status = "degraded"
        http_status = 200  # Degraded is still operational
    else:
        overall_status = "healthy"
        http_status = 200

    total_elapsed_ms = (time.time() - start_time) * 1000

    response = {
        "status": overall_status,
        "timestamp": to_utc_z(utcnow()),
        "total_latency_ms": round(total_elapsed_ms, 2),
        "checks": {
            "database": database_health,
            "configuration": configuration_health,
        }
    }

    return response, http_status


@system_bp.get("/version")
def version():
    """Non-sensitive deployment information."""
    env = "production" if not current_app.debug else "development"

    return {
        "api_version": "1.0.0",
        "environment": env,
        "python_version": sys.version.split()[0],
        "server_time": to_utc_z(utcnow()),
    }
