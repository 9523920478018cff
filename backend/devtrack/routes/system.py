# backend/devtrack/routes/system.py
"""
System health and version endpoints.
"""

import sys
import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import InventoryItem, InventoryTransaction, Location, TransactionStatus
from ..time_utils import utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        location_count = db.session.query(Location).count()
        item_count = db.session.query(InventoryItem).count()
        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "locations": location_count,
                "items": item_count,
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


def check_transaction_queue_health() -> dict:
    """
    FAILED transactions need an operator; report them as degraded.
    """
    start_time = time.time()
    try:
        counts = {
            status.value: db.session.query(InventoryTransaction).filter_by(status=status).count()
            for status in (TransactionStatus.PENDING, TransactionStatus.APPROVED, TransactionStatus.FAILED)
        }
        elapsed_ms = (time.time() - start_time) * 1000

        result = {
            "status": "degraded" if counts["FAILED"] else "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": counts,
        }
        if counts["FAILED"]:
            result["warning"] = f"{counts['FAILED']} failed transaction(s) awaiting retry"
        return result
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Transaction queue health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Transaction queue error"
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
    queue_health = check_transaction_queue_health()

    all_checks = [database_health, queue_health]
    if any(check["status"] == "unhealthy" for check in all_checks):
        overall_status, http_status = "unhealthy", 503
    elif any(check["status"] == "degraded" for check in all_checks):
        overall_status, http_status = "degraded", 200
    else:
        overall_status, http_status = "healthy", 200

    response = {
        "status": overall_status,
        "timestamp": utcnow().isoformat() + "Z",
        "total_latency_ms": round((time.time() - start_time) * 1000, 2),
        "checks": {
            "database": database_health,
            "transaction_queue": queue_health,
        }
    }

    return response, http_status


@system_bp.get("/version")
def version():
    env = "production" if not current_app.debug else "development"

    return {
        "api_version": "1.0.0",
        "environment": env,
        "python_version": sys.version.split()[0],
        "server_time": utcnow().isoformat() + "Z",
    }
