# Overview: Container catalog and derived occupancy accounting.

from __future__ import annotations

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..errors import CapacityExceeded, InvalidCommand, NotFound
from ..models import Container, Tire
from ..models.tires import LOCATION_CONTAINER
from .concurrency import lock_for_update
"""
Occupancy invariants (authoritative)

- Occupancy is derived: COUNT(tires) with location_kind='container' and
  location_ref=<container id>. There is no stored counter to drift.
- would_exceed() is read-only. ensure_capacity() is the write-side check:
  it locks the container row and bumps its version_id before counting, so
  two units of work filling the same container serialize (row lock) or the
  later one fails at flush with StaleDataError and is re-run (SQLite).
"""


def get_container(container_id: int) -> Container:
    container = db.session.get(Container, container_id)
    if container is None:
        raise NotFound(f"Container {container_id} not found", container_id=container_id)
    return container


def occupancy(container_id: int) -> int:
    count = (
        db.session.query(func.count(Tire.id))
        .filter(
            Tire.location_kind == LOCATION_CONTAINER,
            Tire.location_ref == container_id,
        )
        .scalar()
    )
    return int(count or 0)


def would_exceed(container_id: int, delta: int = 1) -> bool:
    container = get_container(container_id)
    return occupancy(container_id) + delta > container.capacity


def lock_container(container_id: int) -> Container:
    """
    Lock a container for the current unit of work and claim its version.

    The bump is flushed at once so a competing writer conflicts here rather
    than after it has counted the tires.
    """
    container = lock_for_update(db.session.query(Container).filter_by(id=container_id)).one_or_none()
    if container is None:
        raise NotFound(f"Container {container_id} not found", container_id=container_id)
    container.version_id = container.version_id + 1
    db.session.flush()
    return container


def ensure_capacity(container_id: int, delta: int = 1) -> Container:
    """Raise CapacityExceeded if `delta` more tires would overflow the container."""
    container = lock_container(container_id)
    current = occupancy(container_id)
    if current + delta > container.capacity:
        raise CapacityExceeded(
            f"Container {container.name} is full ({current}/{container.capacity})",
            container_id=container_id,
            occupancy=current,
            capacity=container.capacity,
        )
    return container


def container_overview() -> list[dict]:
    """Every container with its occupancy and fill percentage."""
    counts = dict(
        db.session.query(Tire.location_ref, func.count(Tire.id))
        .filter(Tire.location_kind == LOCATION_CONTAINER)
        .group_by(Tire.location_ref)
        .all()
    )
    overview = []
    for container in db.session.query(Container).order_by(Container.name).all():
        current = int(counts.get(container.id, 0))
        overview.append({
            **container.to_dict(),
            "occupancy": current,
            "fill_percent": round(current * 100.0 / container.capacity, 1),
        })
    return overview


def _validate_capacity(capacity) -> int:
    if isinstance(capacity, bool):
        raise InvalidCommand("capacity must be a positive integer")
    try:
        value = int(capacity)
    except (TypeError, ValueError):
        raise InvalidCommand("capacity must be a positive integer")
    if value <= 0 or str(capacity).strip() != str(value):
        raise InvalidCommand("capacity must be a positive integer")
    return value


def create_container(name: str, capacity, *, is_disposal: bool = False) -> Container:
    name = (name or "").strip()
    if not name:
        raise InvalidCommand("name is required")
    if db.session.query(Container.id).filter_by(name=name).first() is not None:
        raise InvalidCommand(f"Container {name} already exists")

    container = Container(name=name, capacity=_validate_capacity(capacity), is_disposal=bool(is_disposal))
    db.session.add(container)
    db.session.flush()
    return container


def update_container(container_id: int, *, name: str | None = None, capacity=None,
                     is_disposal: bool | None = None) -> Container:
    """Rename or resize a container. Capacity may not drop below occupancy."""
    container = lock_container(container_id)

    if name is not None:
        name = name.strip()
        if not name:
            raise InvalidCommand("name is required")
        clash = db.session.query(Container.id).filter(Container.name == name, Container.id != container_id).first()
        if clash is not None:
            raise InvalidCommand(f"Container {name} already exists")
        container.name = name

    if capacity is not None:
        new_capacity = _validate_capacity(capacity)
        current = occupancy(container_id)
        if new_capacity < current:
            raise CapacityExceeded(
                f"Container {container.name} holds {current} tires; capacity cannot drop to {new_capacity}",
                container_id=container_id,
                occupancy=current,
                capacity=new_capacity,
            )
        container.capacity = new_capacity

    if is_disposal is not None:
        container.is_disposal = bool(is_disposal)

    db.session.flush()
    return container


def delete_container(container_id: int) -> None:
    """Remove an empty container; occupied containers are refused."""
    container = get_container(container_id)
    current = occupancy(container_id)
    if current:
        raise InvalidCommand(f"Container {container.name} still holds {current} tires")
    db.session.delete(container)
    db.session.flush()


def get_or_create_container(name: str, *, capacity: int | None = None) -> Container:
    """
    Resolve a container by name, creating it when missing.

    Safe to call repeatedly (idempotent).
    """
    name = (name or "").strip()
    if not name:
        raise InvalidCommand("container name is required")

    container = db.session.query(Container).filter_by(name=name).first()
    if container:
        return container

    if capacity is None:
        capacity = current_app.config.get("DEFAULT_CONTAINER_CAPACITY", 100)
    container = Container(name=name, capacity=_validate_capacity(capacity))
    db.session.add(container)
    db.session.flush()
    return container
