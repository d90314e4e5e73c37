# Overview: Health endpoint for the transaction engine.

import time

from flask import Blueprint, current_app, jsonify, request

from ..extensions import db
from ..models import Product, HoldTransaction
from ..models.holds import HOLD_STATUS_ACTIVE
from ..services.ledger_service import list_ledger_events
from ..time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """Check database connectivity with a couple of cheap counts."""
    start_time = time.time()
    try:
        product_count = db.session.query(Product).count()
        active_holds = db.session.query(HoldTransaction).filter_by(status=HOLD_STATUS_ACTIVE).count()
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {"products": product_count, "active_holds": active_holds},
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


@system_bp.get("/api/ledger")
def ledger_events():
    """Audit trail of engine commits, newest first. Query: category, limit."""
    try:
        events = list_ledger_events(
            event_category=request.args.get("category"),
            limit=request.args.get("limit", default=100, type=int),
        )
        return jsonify({"events": [ev.to_dict() for ev in events]}), 200
    except Exception:
        current_app.logger.exception("Failed to list ledger events")
        return jsonify({"error": "Internal server error"}), 500


@system_bp.get("/api/health")
def health():
    database = check_database_health()
    monitor = current_app.extensions.get("hold_monitor")
    body = {
        "status": database["status"],
        "time": to_utc_z(utcnow()),
        "database": database,
        "hold_monitor": {"running": bool(monitor and monitor.running)},
    }
    return jsonify(body), 200 if database["status"] == "healthy" else 503
