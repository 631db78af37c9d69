# Overview: Flask API routes for the start/scan/finish container audit protocol.

# backend/tiretrack/routes/audits.py
"""
Container audit routes.

Sessions live in memory on the application (app.extensions["audit_sessions"])
and are addressed by id. Finishing removes the session.
"""
from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import handle_service_errors, with_actor
from ..errors import InvalidCommand
from ..services import audit_service


audits_bp = Blueprint("audits", __name__, url_prefix="/api/audits")


def _sessions() -> audit_service.AuditRegistry:
    return current_app.extensions["audit_sessions"]


@audits_bp.post("")
@with_actor
@handle_service_errors("start audit")
def start_audit_route():
    """Request body: {"container_id": int}"""
    data = request.get_json(silent=True) or {}
    container_id = data.get("container_id")
    if not isinstance(container_id, int) or isinstance(container_id, bool):
        raise InvalidCommand("container_id must be an integer")

    session = audit_service.start_audit(container_id, started_by=g.performed_by)
    _sessions().add(session)
    return jsonify({"audit": session.to_dict()}), 201


@audits_bp.get("/<audit_id>")
@handle_service_errors("load audit")
def get_audit_route(audit_id: str):
    return jsonify({"audit": _sessions().get(audit_id).to_dict()}), 200


@audits_bp.post("/<audit_id>/scans")
@handle_service_errors("scan audit barcode")
def scan_route(audit_id: str):
    """
    Request body: {"barcode": str}

    Returns:
        201: Scan recorded
        404: Unknown barcode or audit
        409: Barcode already scanned in this audit
    """
    session = _sessions().get(audit_id)
    data = request.get_json(silent=True) or {}
    audit_service.scan(session, data.get("barcode"))
    return jsonify({"audit_id": session.id, "scanned_count": len(session.scanned)}), 201


@audits_bp.post("/<audit_id>/finish")
@handle_service_errors("finish audit")
def finish_route(audit_id: str):
    session = _sessions().get(audit_id)
    report = audit_service.finish(session)
    _sessions().discard(audit_id)
    return jsonify({"report": report.to_dict()}), 200


@audits_bp.delete("/<audit_id>")
@handle_service_errors("cancel audit")
def cancel_audit_route(audit_id: str):
    """Abandon an open audit without producing a report."""
    session = _sessions().get(audit_id)
    _sessions().discard(session.id)
    return jsonify({"cancelled": session.id}), 200
