from __future__ import annotations

from sqlalchemy import event

from ..extensions import db
from tiretrack.time_utils import to_utc_z


# Tire status values
STATUS_IN_STOCK = "in_stock"
STATUS_WITH_OPERATOR = "with_operator"
STATUS_REUSABLE = "reusable"
STATUS_DISPOSED = "disposed"
TIRE_STATUSES = (STATUS_IN_STOCK, STATUS_WITH_OPERATOR, STATUS_REUSABLE, STATUS_DISPOSED)

# Where a tire physically is
LOCATION_CONTAINER = "container"
LOCATION_OPERATOR = "operator"
LOCATION_NONE = "none"
LOCATION_KINDS = (LOCATION_CONTAINER, LOCATION_OPERATOR, LOCATION_NONE)

# Ledger event types
EVENT_CREATED = "created"
EVENT_MOVED = "moved"
EVENT_STATUS_CHANGED = "status_changed"
EVENT_ASSIGNED_TO_OPERATOR = "assigned_to_operator"
EVENT_RETURNED = "returned"
EVENT_TYPES = (
    EVENT_CREATED,
    EVENT_MOVED,
    EVENT_STATUS_CHANGED,
    EVENT_ASSIGNED_TO_OPERATOR,
    EVENT_RETURNED,
)


class Tire(db.Model):
    """
    Current-state record of one barcoded tire (the registry projection).

    INVARIANTS (hold after every committed transition):
    - with_operator  <=> location_kind='operator', holder_ref set,
                         location_ref == holder_ref
    - in_stock / reusable => location_kind='container', location_ref set,
                             no holder, no position
    - disposed => location_kind='none', no location_ref, no holder

    Only transition_service may change status/location/holder/position.
    The history in tire_history is the source of truth; this row caches the
    result of replaying it.

    CONCURRENCY: version_id is an optimistic-lock column; two transitions
    that read the same version cannot both commit.
    """
    __tablename__ = "tires"
    __table_args__ = (
        db.Index("ix_tires_location", "location_kind", "location_ref"),
        db.Index("ix_tires_status", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    barcode = db.Column(db.String(128), nullable=False, unique=True, index=True)
    model_id = db.Column(db.Integer, db.ForeignKey("tire_models.id"), nullable=False, index=True)

    status = db.Column(db.String(16), nullable=False, default=STATUS_IN_STOCK)
    location_kind = db.Column(db.String(16), nullable=False, default=LOCATION_CONTAINER)
    # Container id or driver id depending on location_kind
    location_ref = db.Column(db.Integer, nullable=True)
    holder_ref = db.Column(db.Integer, db.ForeignKey("drivers.id"), nullable=True, index=True)
    position = db.Column(db.String(32), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    model = db.relationship("TireModel")
    holder = db.relationship("Driver")

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Tire id={self.id} barcode={self.barcode!r} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "barcode": self.barcode,
            "model_id": self.model_id,
            "model_name": self.model.name if self.model else None,
            "status": self.status,
            "location_kind": self.location_kind,
            "location_ref": self.location_ref,
            "holder_ref": self.holder_ref,
            "holder_name": self.holder.full_name if self.holder else None,
            "position": self.position,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class TireHistory(db.Model):
    """
    Append-only transition record (the ledger).

    - One row per applied transition, written in the same DB transaction as
      the tire row it describes.
    - Rows are never updated or deleted.
    - occurred_at is business time and never decreases for a given tire in
      insertion order; created_at is system time (DB default).
    - metadata carries import provenance (original spreadsheet row, etc.).
    """
    __tablename__ = "tire_history"
    __table_args__ = (
        db.Index("ix_tire_history_tire_occurred", "tire_id", "occurred_at", "id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tire_id = db.Column(db.Integer, db.ForeignKey("tires.id"), nullable=False, index=True)
    event_type = db.Column(db.String(32), nullable=False, index=True)

    from_status = db.Column(db.String(16), nullable=True)
    to_status = db.Column(db.String(16), nullable=True)
    from_location_kind = db.Column(db.String(16), nullable=True)
    from_location_ref = db.Column(db.Integer, nullable=True)
    to_location_kind = db.Column(db.String(16), nullable=True)
    to_location_ref = db.Column(db.Integer, nullable=True)

    holder_ref = db.Column(db.Integer, db.ForeignKey("drivers.id"), nullable=True)
    position = db.Column(db.String(32), nullable=True)

    # Opaque acting-user identifier supplied by the caller
    performed_by = db.Column(db.String(128), nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    # "metadata" is reserved on declarative classes
    metadata_json = db.Column("metadata", db.JSON, nullable=True)

    tire = db.relationship("Tire", backref=db.backref("history", lazy=True))

    def __repr__(self) -> str:
        return (
            f"<TireHistory id={self.id} tire_id={self.tire_id} "
            f"{self.event_type} {self.from_status}->{self.to_status}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tire_id": self.tire_id,
            "event_type": self.event_type,
            "from_status": self.from_status,
            "to_status": self.to_status,
            "from_location_kind": self.from_location_kind,
            "from_location_ref": self.from_location_ref,
            "to_location_kind": self.to_location_kind,
            "to_location_ref": self.to_location_ref,
            "holder_ref": self.holder_ref,
            "position": self.position,
            "performed_by": self.performed_by,
            "occurred_at": to_utc_z(self.occurred_at),
            "created_at": to_utc_z(self.created_at),
            "metadata": self.metadata_json,
        }


@event.listens_for(TireHistory, "before_update")
def _refuse_history_update(mapper, connection, target):
    raise ValueError(f"tire_history is append-only; refusing to update entry {target.id}")


@event.listens_for(TireHistory, "before_delete")
def _refuse_history_delete(mapper, connection, target):
    raise ValueError(f"tire_history is append-only; refusing to delete entry {target.id}")
