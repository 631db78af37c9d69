# Overview: Flask CLI command groups for bootstrap, inspection, and imports.

# backend/tiretrack/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to tiretrack (PowerShell: $env:FLASK_APP="tiretrack").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create all tables (use `flask db upgrade` for migrated deployments).
#
# Containers:
# - python -m flask containers list
#   List containers with occupancy / capacity.
# - python -m flask containers create --name "C1" --capacity 40 [--disposal]
#   Create a container (--disposal marks a DSI container).
#
# Tires:
# - python -m flask tires show T0001
#   Show the current state of a tire.
# - python -m flask tires history T0001 --limit 20
#   Show history entries, newest first.
# - python -m flask tires verify T0001
#   Replay the history and compare with the stored status.
#
# Drivers / season line-up:
# - python -m flask drivers create --name "Ana Souza" --nickname "Ana"
# - python -m flask drivers assign --season 2026 --driver-id 1 --chassis "CH-07" --number 7 --category carrera
#
# Imports:
# - python -m flask imports csv tires.csv --policy skip --discard-policy reuse
#   Import a CSV export of the tire spreadsheet (header row required).

import csv

import click
from flask.cli import with_appcontext

from .errors import TransitionError
from .extensions import db
from .models import Car
from .services import catalog_service, import_service, ledger_service, location_service, registry_service
from .services.transition_service import (
    DISCARD_DISPOSE,
    DISCARD_REUSE,
    EXISTING_POLICIES,
    POLICY_UPDATE_EXISTING,
)


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database tables created")


@click.group('containers')
def containers_group():
    """Container inspection and setup."""


@containers_group.command('list')
@with_appcontext
def list_containers():
    overview = location_service.container_overview()
    if not overview:
        click.echo("No containers")
        return
    for row in overview:
        flag = " [DSI]" if row["is_disposal"] else ""
        click.echo(f"{row['id']:>4}  {row['name']:<24} {row['occupancy']:>4}/{row['capacity']:<4} ({row['fill_percent']}%){flag}")


@containers_group.command('create')
@click.option('--name', required=True)
@click.option('--capacity', required=True, type=int)
@click.option('--disposal', is_flag=True, default=False, help='Mark as a disposal (DSI) container')
@with_appcontext
def create_container(name, capacity, disposal):
    try:
        container = location_service.create_container(name, capacity, is_disposal=disposal)
        db.session.commit()
    except TransitionError as e:
        db.session.rollback()
        raise click.ClickException(str(e))
    click.echo(f"PASS Created container {container.name} (ID: {container.id}, capacity {container.capacity})")


@click.group('tires')
def tires_group():
    """Tire inspection."""


@tires_group.command('show')
@click.argument('barcode')
@with_appcontext
def show_tire(barcode):
    try:
        tire = registry_service.get_tire_by_barcode(barcode)
    except TransitionError as e:
        raise click.ClickException(str(e))
    for key, value in tire.to_dict().items():
        click.echo(f"{key:<16} {value}")


@tires_group.command('history')
@click.argument('barcode')
@click.option('--limit', default=50, show_default=True, type=int)
@with_appcontext
def tire_history(barcode, limit):
    try:
        tire = registry_service.get_tire_by_barcode(barcode)
    except TransitionError as e:
        raise click.ClickException(str(e))
    for entry in ledger_service.history_for_tire(tire.id, limit=limit):
        click.echo(
            f"{entry.to_dict()['occurred_at']}  {entry.event_type:<22} "
            f"{entry.from_status or '-'} -> {entry.to_status or '-'}  "
            f"{entry.to_location_kind or '-'}:{entry.to_location_ref or '-'}  by {entry.performed_by or '-'}"
        )


@tires_group.command('verify')
@click.argument('barcode')
@with_appcontext
def verify_tire(barcode):
    """Replay the history and compare it with the stored status."""
    try:
        tire = registry_service.get_tire_by_barcode(barcode)
    except TransitionError as e:
        raise click.ClickException(str(e))
    replayed = ledger_service.replay_status(tire.id)
    if replayed != tire.status:
        raise click.ClickException(f"MISMATCH stored={tire.status} replayed={replayed}")
    click.echo(f"PASS {tire.barcode}: {tire.status}")


@click.group('drivers')
def drivers_group():
    """Drivers and season line-ups."""


@drivers_group.command('create')
@click.option('--name', 'full_name', required=True)
@click.option('--nickname', default=None)
@with_appcontext
def create_driver(full_name, nickname):
    try:
        driver = catalog_service.create_driver(full_name, nickname)
        db.session.commit()
    except TransitionError as e:
        db.session.rollback()
        raise click.ClickException(str(e))
    click.echo(f"PASS Created driver {driver.full_name} (ID: {driver.id})")


@drivers_group.command('assign')
@click.option('--season', 'season_year', required=True, type=int)
@click.option('--driver-id', required=True, type=int)
@click.option('--chassis', required=True)
@click.option('--number', 'car_number', required=True, type=int)
@click.option('--category', required=True, type=click.Choice(['carrera', 'challenge', 'trophy']))
@with_appcontext
def assign_driver(season_year, driver_id, chassis, car_number, category):
    """Put a driver in a car for a season (creates the car if needed)."""
    try:
        car = db.session.query(Car).filter_by(chassis=chassis).first() or catalog_service.create_car(chassis)
        association = catalog_service.assign_driver(
            season_year=season_year,
            driver_id=driver_id,
            car_id=car.id,
            car_number=car_number,
            category=category,
        )
        db.session.commit()
    except TransitionError as e:
        db.session.rollback()
        raise click.ClickException(str(e))
    click.echo(f"PASS Driver {driver_id} runs car #{association.car_number} ({chassis}) in {season_year}")


@click.group('imports')
def imports_group():
    """Bulk tire imports."""


@imports_group.command('csv')
@click.argument('path', type=click.Path(exists=True, dir_okay=False))
@click.option('--policy', type=click.Choice(list(EXISTING_POLICIES)), default=POLICY_UPDATE_EXISTING, show_default=True)
@click.option('--discard-policy', type=click.Choice([DISCARD_REUSE, DISCARD_DISPOSE]), default=DISCARD_DISPOSE, show_default=True)
@click.option('--model', 'default_model', default=None, help='Model for rows without a model column')
@click.option('--container', 'default_container', default=None, help='Container for rows without a container column')
@click.option('--performed-by', default=None)
@with_appcontext
def import_csv(path, policy, discard_policy, default_model, default_container, performed_by):
    with open(path, newline='', encoding='utf-8-sig') as fh:
        rows = list(csv.DictReader(fh))

    result = import_service.import_rows(
        rows,
        policy=policy,
        discard_policy=discard_policy,
        default_model=default_model,
        default_container=default_container,
        performed_by=performed_by,
        source=path,
    )
    click.echo(
        f"DONE {result.processed} processed ({result.created} created, "
        f"{result.updated} updated, {result.skipped} skipped), {len(result.errors)} errors"
    )
    for error in result.errors:
        click.echo(f"FAIL row {error.row_number} [{error.barcode}]: {error.code} {error.message}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(containers_group)
    app.cli.add_command(tires_group)
    app.cli.add_command(drivers_group)
    app.cli.add_command(imports_group)
