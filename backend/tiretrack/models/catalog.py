from __future__ import annotations

from ..extensions import db
from tiretrack.time_utils import to_utc_z


class TireModel(db.Model):
    """
    Catalog entry a tire is built from (name, type, rubber compound).

    Created from the catalog screens or implicitly, by name, during a batch
    import.
    """
    __tablename__ = "tire_models"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False, unique=True, index=True)
    type = db.Column(db.String(64), nullable=False, default="slick")
    compound = db.Column(db.String(64), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<TireModel id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "compound": self.compound,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Container(db.Model):
    """
    Physical storage location with a finite capacity.

    INVARIANTS:
    - Occupancy is NEVER stored here. It is always derived by counting tires
      whose location points at this container (see location_service).
    - is_disposal marks the disposal ("DSI") containers; a tire still held
      by a driver can never be filed into one.
    """
    __tablename__ = "containers"
    __table_args__ = (
        db.CheckConstraint("capacity > 0", name="ck_containers_capacity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False, unique=True, index=True)
    capacity = db.Column(db.Integer, nullable=False)
    is_disposal = db.Column(db.Boolean, nullable=False, default=False)

    # Bumped by location_service whenever a tire is filed in, so concurrent
    # fills of the same container conflict at flush
    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id, "version_id_generator": False}

    def __repr__(self) -> str:
        return f"<Container id={self.id} name={self.name!r} capacity={self.capacity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "capacity": self.capacity,
            "is_disposal": self.is_disposal,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Driver(db.Model):
    """Operator who holds tires in the field."""
    __tablename__ = "drivers"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    full_name = db.Column(db.String(255), nullable=False)
    nickname = db.Column(db.String(64), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<Driver id={self.id} full_name={self.full_name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "full_name": self.full_name,
            "nickname": self.nickname,
            "created_at": to_utc_z(self.created_at),
        }


class Car(db.Model):
    __tablename__ = "cars"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    chassis = db.Column(db.String(64), nullable=False, unique=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "chassis": self.chassis,
            "created_at": to_utc_z(self.created_at),
        }


class Season(db.Model):
    __tablename__ = "seasons"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    year = db.Column(db.Integer, nullable=False, unique=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "year": self.year,
            "created_at": to_utc_z(self.created_at),
        }


# Driver categories a season association may carry
DRIVER_CATEGORIES = ("carrera", "challenge", "trophy")


class SeasonDriverAssociation(db.Model):
    """
    Which driver runs which car (and number) in a season.

    Reference data only: dispatching a tire records the driver directly and
    never consults this table.
    """
    __tablename__ = "season_driver_associations"
    __table_args__ = (
        db.UniqueConstraint("season_id", "driver_id", name="uq_season_driver"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    season_id = db.Column(db.Integer, db.ForeignKey("seasons.id"), nullable=False, index=True)
    driver_id = db.Column(db.Integer, db.ForeignKey("drivers.id"), nullable=False, index=True)
    car_id = db.Column(db.Integer, db.ForeignKey("cars.id"), nullable=False, index=True)
    car_number = db.Column(db.Integer, nullable=False)
    category = db.Column(db.String(16), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    season = db.relationship("Season", backref=db.backref("driver_associations", lazy=True))
    driver = db.relationship("Driver", backref=db.backref("season_associations", lazy=True))
    car = db.relationship("Car")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "season_id": self.season_id,
            "driver_id": self.driver_id,
            "car_id": self.car_id,
            "car_number": self.car_number,
            "category": self.category,
            "created_at": to_utc_z(self.created_at),
        }
