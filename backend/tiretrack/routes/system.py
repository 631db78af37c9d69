# backend/tiretrack/routes/system.py
"""
Health and version endpoints for the tire tracking service.
"""

import sys
import time

from flask import Blueprint, current_app, jsonify
from sqlalchemy import exists

from ..extensions import db
from ..models import Container, Tire, TireHistory
from tiretrack.time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__, url_prefix="/api")

API_VERSION = "0.1.0"


def _elapsed_ms(started: float) -> float:
    return round((time.time() - started) * 1000, 2)


def check_database() -> dict:
    """Row counts for the core tables; any query failure marks it unhealthy."""
    started = time.time()
    try:
        counts = {
            "tires": db.session.query(Tire).count(),
            "containers": db.session.query(Container).count(),
            "history_entries": db.session.query(TireHistory).count(),
        }
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Database health check failed")
        return {"status": "unhealthy", "latency_ms": _elapsed_ms(started), "error": "Database error"}
    return {"status": "healthy", "latency_ms": _elapsed_ms(started), "details": counts}


def check_ledger() -> dict:
    """
    Every tire must have at least one history record.

    A tire without one means a write escaped the transition engine; the
    service keeps running but reports itself degraded.
    """
    started = time.time()
    try:
        orphaned = (
            db.session.query(Tire.barcode)
            .filter(~exists().where(TireHistory.tire_id == Tire.id))
            .limit(20)
            .all()
        )
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Ledger health check failed")
        return {"status": "unhealthy", "latency_ms": _elapsed_ms(started), "error": "Ledger query error"}

    if orphaned:
        return {
            "status": "degraded",
            "latency_ms": _elapsed_ms(started),
            "warning": "Tires without history",
            "details": {"barcodes": [row.barcode for row in orphaned]},
        }
    return {"status": "healthy", "latency_ms": _elapsed_ms(started)}


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: healthy or degraded (still serving)
    - 503: a check failed
    """
    checks = {"database": check_database(), "ledger": check_ledger()}
    statuses = {check["status"] for check in checks.values()}

    if "unhealthy" in statuses:
        overall, http_status = "unhealthy", 503
    elif "degraded" in statuses:
        overall, http_status = "degraded", 200
    else:
        overall, http_status = "healthy", 200

    return jsonify({
        "status": overall,
        "checked_at": to_utc_z(utcnow()),
        "open_audits": len(current_app.extensions["audit_sessions"]),
        "checks": checks,
    }), http_status


@system_bp.get("/version")
def version():
    return jsonify({
        "api_version": API_VERSION,
        "environment": "development" if current_app.debug else "production",
        "python_version": sys.version.split()[0],
        "server_time": to_utc_z(utcnow()),
    }), 200
