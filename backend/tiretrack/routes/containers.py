# Overview: Flask API routes for containers and occupancy; parses input and returns JSON responses.

from flask import Blueprint, jsonify, request

from ..decorators import handle_service_errors
from ..errors import InvalidCommand
from ..extensions import db
from ..services import location_service


containers_bp = Blueprint("containers", __name__, url_prefix="/api/containers")


@containers_bp.get("")
@handle_service_errors("list containers")
def list_containers_route():
    """All containers with derived occupancy, ordered by name."""
    return jsonify({"items": location_service.container_overview()}), 200


@containers_bp.post("")
@handle_service_errors("create container")
def create_container_route():
    """
    Request body:
    {
        "name": str,
        "capacity": int,
        "is_disposal": bool (optional)
    }
    """
    data = request.get_json(silent=True) or {}
    if "capacity" not in data:
        raise InvalidCommand("capacity is required")
    container = location_service.create_container(
        data.get("name"),
        data.get("capacity"),
        is_disposal=bool(data.get("is_disposal", False)),
    )
    db.session.commit()
    return jsonify({"container": container.to_dict()}), 201


@containers_bp.patch("/<int:container_id>")
@handle_service_errors("update container")
def update_container_route(container_id: int):
    data = request.get_json(silent=True) or {}
    container = location_service.update_container(
        container_id,
        name=data.get("name"),
        capacity=data.get("capacity"),
        is_disposal=data.get("is_disposal"),
    )
    db.session.commit()
    return jsonify({"container": container.to_dict()}), 200


@containers_bp.delete("/<int:container_id>")
@handle_service_errors("delete container")
def delete_container_route(container_id: int):
    location_service.delete_container(container_id)
    db.session.commit()
    return jsonify({"deleted": container_id}), 200


@containers_bp.get("/<int:container_id>/occupancy")
@handle_service_errors("load container occupancy")
def occupancy_route(container_id: int):
    container = location_service.get_container(container_id)
    current = location_service.occupancy(container_id)
    return jsonify({
        "container_id": container.id,
        "name": container.name,
        "occupancy": current,
        "capacity": container.capacity,
        "available": max(container.capacity - current, 0),
    }), 200
