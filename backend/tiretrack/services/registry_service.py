# Overview: Current-state registry of tires; lookups, creation and state application.

from __future__ import annotations

from sqlalchemy import func

from ..extensions import db
from ..errors import DuplicateBarcode, InvalidCommand, NotFound
from ..models import Tire, TireModel
from ..models.tires import (
    LOCATION_CONTAINER,
    STATUS_IN_STOCK,
    TIRE_STATUSES,
)
from .concurrency import lock_for_update

# Fields a transition is allowed to write on a tire
STATE_FIELDS = ("status", "location_kind", "location_ref", "holder_ref", "position")


def normalize_barcode(barcode) -> str:
    code = str(barcode or "").strip()
    if not code:
        raise InvalidCommand("barcode is required")
    return code


def get_tire_by_barcode(barcode: str, *, lock: bool = False) -> Tire:
    query = db.session.query(Tire).filter_by(barcode=normalize_barcode(barcode))
    if lock:
        query = lock_for_update(query)
    tire = query.first()
    if tire is None:
        raise NotFound(f"Tire {barcode} not found", barcode=barcode)
    return tire


def find_tire_by_barcode(barcode: str, *, lock: bool = False) -> Tire | None:
    """Like get_tire_by_barcode but returns None for an unknown barcode."""
    query = db.session.query(Tire).filter_by(barcode=normalize_barcode(barcode))
    if lock:
        query = lock_for_update(query)
    return query.first()


def get_tire(tire_id: int) -> Tire:
    tire = db.session.get(Tire, tire_id)
    if tire is None:
        raise NotFound(f"Tire {tire_id} not found")
    return tire


def snapshot(tire: Tire) -> dict:
    return {field: getattr(tire, field) for field in STATE_FIELDS}


def create_tire(barcode: str, model_id: int, container_id: int) -> Tire:
    """
    Insert a new tire, in stock in `container_id`.

    Flushes without committing; the caller owns the transaction and the
    matching ledger record.
    """
    code = normalize_barcode(barcode)
    if db.session.query(Tire.id).filter_by(barcode=code).first() is not None:
        raise DuplicateBarcode(f"Barcode {code} already registered", barcode=code)
    if db.session.get(TireModel, model_id) is None:
        raise NotFound(f"Tire model {model_id} not found")

    tire = Tire(
        barcode=code,
        model_id=model_id,
        status=STATUS_IN_STOCK,
        location_kind=LOCATION_CONTAINER,
        location_ref=container_id,
    )
    db.session.add(tire)
    db.session.flush()
    return tire


def apply_state(tire: Tire, new_state: dict) -> Tire:
    """
    Write status/location/holder/position in one step.

    Only the transition engine calls this, next to the ledger append.
    """
    unknown = set(new_state) - set(STATE_FIELDS)
    if unknown:
        raise ValueError(f"Not state fields: {sorted(unknown)}")
    if new_state.get("status", tire.status) not in TIRE_STATUSES:
        raise ValueError(f"Invalid status: {new_state.get('status')}")

    for field in STATE_FIELDS:
        setattr(tire, field, new_state.get(field))
    db.session.flush()  # version_id check happens here
    return tire


def status_summary() -> dict:
    """Tire counts per status plus the total (dashboard tiles)."""
    rows = (
        db.session.query(Tire.status, func.count(Tire.id))
        .group_by(Tire.status)
        .all()
    )
    counts = {status: 0 for status in TIRE_STATUSES}
    for status, count in rows:
        counts[status] = int(count)
    counts["total"] = sum(counts[s] for s in TIRE_STATUSES)
    return counts
