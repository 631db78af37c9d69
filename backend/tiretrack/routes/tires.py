# Overview: Flask API routes for tire transitions and lookups; parses input and returns JSON responses.

# backend/tiretrack/routes/tires.py
"""
Tire lifecycle routes.

Each POST maps one-to-one onto a transition command. The acting user comes
from the X-Performed-By header.

Time semantics:
- occurred_at accepts ISO-8601 with Z/offsets; normalized to UTC-naive.
- Omitted occurred_at means "now".
"""
from flask import Blueprint, g, jsonify, request

from ..decorators import handle_service_errors, with_actor
from ..errors import InvalidCommand
from ..services import ledger_service, registry_service
from ..services.transition_service import (
    Dispatch,
    Ingest,
    Reclassify,
    Relocate,
    Return,
    execute,
)


tires_bp = Blueprint("tires", __name__, url_prefix="/api/tires")


def _body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise InvalidCommand("JSON body required")
    return data


def _require(data: dict, *fields: str) -> None:
    missing = [f for f in fields if data.get(f) in (None, "")]
    if missing:
        raise InvalidCommand(f"Missing required field(s): {', '.join(missing)}")


def _int(data: dict, key: str):
    value = data.get(key)
    if value is None:
        return None
    if isinstance(value, bool):
        raise InvalidCommand(f"{key} must be an integer")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise InvalidCommand(f"{key} must be an integer")


def _respond(command):
    result = execute(command, performed_by=g.performed_by)
    status = 201 if result.action == "created" else 200
    return jsonify({
        "tire": result.tire.to_dict(),
        "action": result.action,
        "history": [entry.to_dict() for entry in result.entries],
    }), status


@tires_bp.post("/ingest")
@with_actor
@handle_service_errors("ingest tire")
def ingest_route():
    """
    Register a scanned tire into a container.

    Request body: {"barcode", "model_id", "container_id", "occurred_at"?}
    An already-known barcode is moved into the container instead.
    """
    data = _body()
    _require(data, "barcode", "model_id", "container_id")
    return _respond(Ingest(
        barcode=data["barcode"],
        model_id=_int(data, "model_id"),
        container_id=_int(data, "container_id"),
        occurred_at=data.get("occurred_at"),
    ))


@tires_bp.post("/relocate")
@with_actor
@handle_service_errors("relocate tire")
def relocate_route():
    data = _body()
    _require(data, "barcode", "container_id")
    return _respond(Relocate(
        barcode=data["barcode"],
        container_id=_int(data, "container_id"),
        occurred_at=data.get("occurred_at"),
    ))


@tires_bp.post("/dispatch")
@with_actor
@handle_service_errors("dispatch tire")
def dispatch_route():
    """Request body: {"barcode", "driver_id", "position", "occurred_at"?}"""
    data = _body()
    _require(data, "barcode", "driver_id", "position")
    return _respond(Dispatch(
        barcode=data["barcode"],
        holder_ref=_int(data, "driver_id"),
        position=data["position"],
        occurred_at=data.get("occurred_at"),
    ))


@tires_bp.post("/return")
@with_actor
@handle_service_errors("return tire")
def return_route():
    """
    Request body: {"barcode", "disposition", "container_id"?, "occurred_at"?}
    container_id is required when disposition is "reusable".
    """
    data = _body()
    _require(data, "barcode", "disposition")
    return _respond(Return(
        barcode=data["barcode"],
        disposition=data["disposition"],
        container_id=_int(data, "container_id"),
        occurred_at=data.get("occurred_at"),
    ))


@tires_bp.post("/reclassify")
@with_actor
@handle_service_errors("reclassify tire")
def reclassify_route():
    data = _body()
    _require(data, "barcode", "disposition")
    return _respond(Reclassify(
        barcode=data["barcode"],
        disposition=data["disposition"],
        container_id=_int(data, "container_id"),
        occurred_at=data.get("occurred_at"),
    ))


@tires_bp.get("/summary")
@handle_service_errors("load tire summary")
def summary_route():
    return jsonify(registry_service.status_summary()), 200


@tires_bp.get("/<barcode>")
@handle_service_errors("load tire")
def get_tire_route(barcode: str):
    tire = registry_service.get_tire_by_barcode(barcode)
    return jsonify({"tire": tire.to_dict()}), 200


@tires_bp.get("/<barcode>/history")
@handle_service_errors("load tire history")
def tire_history_route(barcode: str):
    """History newest first; ?limit= caps the number of entries (max 500)."""
    tire = registry_service.get_tire_by_barcode(barcode)
    limit = request.args.get("limit", default=100, type=int)
    limit = max(1, min(limit, 500))
    entries = ledger_service.history_for_tire(tire.id, limit=limit)
    return jsonify({
        "tire_id": tire.id,
        "barcode": tire.barcode,
        "items": [entry.to_dict() for entry in entries],
        "limit": limit,
    }), 200
