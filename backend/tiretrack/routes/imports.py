# Overview: Flask API route for bulk tire imports from already-parsed rows.

from flask import Blueprint, g, jsonify, request

from ..decorators import handle_service_errors, with_actor
from ..errors import InvalidCommand
from ..services import import_service
from ..services.transition_service import EXISTING_POLICIES, POLICY_UPDATE_EXISTING


imports_bp = Blueprint("imports", __name__, url_prefix="/api/imports")


@imports_bp.post("")
@with_actor
@handle_service_errors("import tires")
def import_tires_route():
    """
    Apply parsed spreadsheet rows in order.

    Request body:
    {
        "rows": [{"barcode", "model_name", "container_name", "timestamp"?, "condition"?}, ...],
        "policy": "update_existing" | "skip" (optional),
        "discard_policy": "reuse" | "dispose" (optional),
        "default_model": str (optional),
        "default_container": str (optional),
        "source": str (optional, e.g. the uploaded file name)
    }
    """
    data = request.get_json(silent=True) or {}
    rows = data.get("rows")
    if not isinstance(rows, list):
        raise InvalidCommand("rows must be a list")

    policy = data.get("policy") or POLICY_UPDATE_EXISTING
    if policy not in EXISTING_POLICIES:
        raise InvalidCommand(f"Invalid policy: {policy}")

    result = import_service.import_rows(
        rows,
        policy=policy,
        discard_policy=data.get("discard_policy"),
        default_model=data.get("default_model"),
        default_container=data.get("default_container"),
        performed_by=g.performed_by,
        source=data.get("source"),
    )
    return jsonify(result.to_dict()), 200
