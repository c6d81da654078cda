"""
System health endpoint.

Checks the database and the alert scheduler so a deployment can tell a
live process from a healthy one.
"""

import time

from flask import Blueprint, current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import CashSession, CashSessionStatus, Location, SessionToken
from ..time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    start_time = time.time()
    try:
        location_count = db.session.query(Location).count()
        open_sessions = db.session.query(CashSession).filter_by(status=CashSessionStatus.OPEN).count()
        active_tokens = db.session.query(SessionToken).filter_by(is_revoked=False).count()

        return {
            "status": "healthy",
            "latency_ms": round((time.time() - start_time) * 1000, 2),
            "details": {
                "locations": location_count,
                "open_cash_sessions": open_sessions,
                "active_tokens": active_tokens,
            },
        }
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round((time.time() - start_time) * 1000, 2),
            "error": "Database error",
        }


def check_alert_scheduler() -> dict:
    scheduler = current_app.extensions.get("alert_scheduler")
    if scheduler is None:
        return {"status": "disabled"}
    return {
        "status": "healthy" if scheduler.is_running else "degraded",
        "interval_seconds": scheduler.interval_seconds,
        "run_count": scheduler.run_count,
        "last_run": to_utc_z(scheduler.last_run),
    }


@system_bp.get("/api/health")
def health():
    """
    Returns:
    - 200: healthy or degraded
    - 503: database unreachable
    """
    database = check_database_health()
    scheduler = check_alert_scheduler()

    if database["status"] == "unhealthy":
        overall, http_status = "unhealthy", 503
    elif scheduler["status"] == "degraded":
        overall, http_status = "degraded", 200
    else:
        overall, http_status = "healthy", 200

    return {
        "status": overall,
        "timestamp": to_utc_z(utcnow()),
        "checks": {
            "database": database,
            "alert_scheduler": scheduler,
        },
    }, http_status
