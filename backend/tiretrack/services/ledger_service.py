# Overview: Append-only tire history; writes transition records and replays them.

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from ..extensions import db
from ..errors import LedgerIntegrityError, NotFound
from ..models import Tire, TireHistory
from tiretrack.time_utils import to_utc_z, utcnow
"""
TireTrack Ledger Invariants (authoritative)

- Append-only: records are inserted, never updated or deleted.
- Records are written inside the same DB transaction as the tire row they
  describe; this module flushes but never commits.
- occurred_at is business time and is non-decreasing per tire in insertion
  order. An earlier requested time is clamped to the latest recorded one and
  the requested value is kept in metadata.
- Replaying from_status/to_status oldest-first reproduces Tire.status.
"""


def _latest_occurred_at(tire_id: int) -> Optional[datetime]:
    return (
        db.session.query(db.func.max(TireHistory.occurred_at))
        .filter(TireHistory.tire_id == tire_id)
        .scalar()
    )


def append_transition(
    *,
    tire: Tire,
    event_type: str,
    from_state: dict | None,
    to_state: dict | None,
    performed_by: str | None = None,
    occurred_at: Optional[datetime] = None,
    metadata: Optional[dict[str, Any]] = None,
) -> TireHistory:
    """
    Append one transition record for `tire`.

    from_state / to_state are snapshots as produced by
    registry_service.snapshot(); None means "no prior state" (creation).
    """
    metadata = dict(metadata) if metadata else {}
    occurred_dt = occurred_at or utcnow()

    latest = _latest_occurred_at(tire.id) if tire.id is not None else None
    if latest is not None and occurred_dt < latest:
        metadata["requested_occurred_at"] = to_utc_z(occurred_dt)
        occurred_dt = latest

    from_state = from_state or {}
    to_state = to_state or {}

    entry = TireHistory(
        tire_id=tire.id,
        event_type=event_type,
        from_status=from_state.get("status"),
        to_status=to_state.get("status"),
        from_location_kind=from_state.get("location_kind"),
        from_location_ref=from_state.get("location_ref"),
        to_location_kind=to_state.get("location_kind"),
        to_location_ref=to_state.get("location_ref"),
        holder_ref=to_state.get("holder_ref") or from_state.get("holder_ref"),
        position=to_state.get("position") or from_state.get("position"),
        performed_by=performed_by,
        occurred_at=occurred_dt,
        metadata_json=metadata or None,
    )
    db.session.add(entry)
    db.session.flush()  # ensures entry.id is assigned without committing
    return entry


def history_for_tire(tire_id: int, *, limit: int | None = None) -> list[TireHistory]:
    """History for one tire, newest first."""
    q = (
        db.session.query(TireHistory)
        .filter(TireHistory.tire_id == tire_id)
        .order_by(TireHistory.occurred_at.desc(), TireHistory.id.desc())
    )
    if limit is not None:
        q = q.limit(limit)
    return q.all()


def replay_status(tire_id: int) -> Optional[str]:
    """
    Rebuild a tire's status by walking its history oldest first.

    Raises LedgerIntegrityError when a record does not start from the
    status the previous record left behind.
    """
    if db.session.get(Tire, tire_id) is None:
        raise NotFound(f"Tire {tire_id} not found")

    entries = (
        db.session.query(TireHistory)
        .filter(TireHistory.tire_id == tire_id)
        .order_by(TireHistory.occurred_at.asc(), TireHistory.id.asc())
        .all()
    )

    status = None
    for entry in entries:
        if entry.from_status != status:
            raise LedgerIntegrityError(
                f"History entry {entry.id} starts from {entry.from_status!r} "
                f"but replay reached {status!r}"
            )
        status = entry.to_status
    return status
