# backend/assethub/routes/system.py
"""
System health endpoint.

Reports database reachability and the state of the notification outbox so an
operator can see stuck or failed task-tracker deliveries.
"""

import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import ApprovalRequest, ConsumableAlert, OutboxEvent
from ..time_utils import utcnow

system_bp = Blueprint("system", __name__, url_prefix="/api")


def check_database_health() -> dict:
    """Run a couple of cheap counts against the core tables."""
    start_time = time.time()
    try:
        pending_approvals = db.session.query(ApprovalRequest).filter_by(status="pending").count()
        open_alerts = db.session.query(ConsumableAlert).filter_by(status="open").count()

        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "pending_approvals": pending_approvals,
                "open_alerts": open_alerts,
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


def check_outbox_health() -> dict:
    """
    Failed events mean the task tracker is out of sync; that degrades the
    service but does not take it down.
    """
    start_time = time.time()
    try:
        pending = db.session.query(OutboxEvent).filter_by(status="pending").count()
        failed = db.session.query(OutboxEvent).filter_by(status="failed").count()

        elapsed_ms = (time.time() - start_time) * 1000
        result = {
            "status": "degraded" if failed else "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "pending": pending,
                "failed": failed,
                "delivery_enabled": bool(current_app.config.get("EXTERNAL_TODO_BASE_URL")),
            }
        }
        if failed:
            result["warning"] = f"{failed} outbox event(s) failed; see 'flask outbox list --status failed'"
        return result
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Outbox health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Outbox error"
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
    outbox_health = check_outbox_health()

    all_checks = [database_health, outbox_health]
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
        "timestamp": utcnow().isoformat() + "Z",
        "total_latency_ms": round(total_elapsed_ms, 2),
        "checks": {
            "database": database_health,
            "outbox": outbox_health,
        }
    }

    return response, http_status
