# Overview: Reference data (tire models, drivers, cars, season line-ups); plain CRUD.

from __future__ import annotations

from ..extensions import db
from ..errors import InvalidCommand, NotFound
from ..models import Car, Driver, Season, SeasonDriverAssociation, TireModel
from ..models.catalog import DRIVER_CATEGORIES


def get_tire_model(model_id: int) -> TireModel:
    model = db.session.get(TireModel, model_id)
    if model is None:
        raise NotFound(f"Tire model {model_id} not found")
    return model


def create_tire_model(name: str, type: str = "slick", compound: str | None = None) -> TireModel:
    name = (name or "").strip()
    if not name:
        raise InvalidCommand("model name is required")
    if db.session.query(TireModel.id).filter_by(name=name).first() is not None:
        raise InvalidCommand(f"Tire model {name} already exists")
    model = TireModel(name=name, type=type, compound=compound)
    db.session.add(model)
    db.session.flush()
    return model


def get_or_create_tire_model(name: str, *, type: str = "slick", compound: str | None = None) -> TireModel:
    """
    Resolve a tire model by name, creating it when missing.

    Safe to call repeatedly (idempotent).
    """
    name = (name or "").strip()
    if not name:
        raise InvalidCommand("model name is required")

    model = db.session.query(TireModel).filter_by(name=name).first()
    if model:
        return model

    model = TireModel(name=name, type=type, compound=compound)
    db.session.add(model)
    db.session.flush()
    return model


def get_driver(driver_id: int) -> Driver:
    driver = db.session.get(Driver, driver_id)
    if driver is None:
        raise NotFound(f"Driver {driver_id} not found", driver_id=driver_id)
    return driver


def create_driver(full_name: str, nickname: str | None = None) -> Driver:
    full_name = (full_name or "").strip()
    if not full_name:
        raise InvalidCommand("full_name is required")
    driver = Driver(full_name=full_name, nickname=nickname)
    db.session.add(driver)
    db.session.flush()
    return driver


def create_car(chassis: str) -> Car:
    chassis = (chassis or "").strip()
    if not chassis:
        raise InvalidCommand("chassis is required")
    if db.session.query(Car.id).filter_by(chassis=chassis).first() is not None:
        raise InvalidCommand(f"Car {chassis} already exists")
    car = Car(chassis=chassis)
    db.session.add(car)
    db.session.flush()
    return car


def assign_driver(
    *,
    season_year: int,
    driver_id: int,
    car_id: int,
    car_number: int,
    category: str,
) -> SeasonDriverAssociation:
    """
    Put a driver in a car for a season, creating the season if needed.

    A driver has at most one association per season; assigning again
    replaces the car, number and category.
    """
    if category not in DRIVER_CATEGORIES:
        raise InvalidCommand(f"Invalid category: {category}")
    get_driver(driver_id)
    if db.session.get(Car, car_id) is None:
        raise NotFound(f"Car {car_id} not found")

    season = db.session.query(Season).filter_by(year=season_year).first()
    if season is None:
        season = Season(year=season_year)
        db.session.add(season)
        db.session.flush()

    association = (
        db.session.query(SeasonDriverAssociation)
        .filter_by(season_id=season.id, driver_id=driver_id)
        .first()
    )
    if association is None:
        association = SeasonDriverAssociation(season_id=season.id, driver_id=driver_id)
        db.session.add(association)

    association.car_id = car_id
    association.car_number = car_number
    association.category = category
    db.session.flush()
    return association


def season_lineup(season_year: int) -> list[SeasonDriverAssociation]:
    season = db.session.query(Season).filter_by(year=season_year).first()
    if season is None:
        return []
    return (
        db.session.query(SeasonDriverAssociation)
        .filter_by(season_id=season.id)
        .order_by(SeasonDriverAssociation.car_number)
        .all()
    )
