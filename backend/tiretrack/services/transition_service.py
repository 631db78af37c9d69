# backend/tiretrack/services/transition_service.py
"""
Tire lifecycle state machine.

Every command is one unit of work: lock and load the tire, validate the
preconditions, write the new tire state, append the history record, commit.
Any failure rolls the whole unit back, so the tire row and its history never
disagree.

STATES / TRANSITIONS:
- (none)        --Ingest-->      in_stock (container)          created
- in_stock      --Dispatch-->    with_operator (driver)        assigned_to_operator
- with_operator --Return-->      reusable (container)          returned
- with_operator --Return-->      disposed (nowhere)            returned
- in_stock/reusable --Relocate-->   same status, new container    moved
- in_stock/reusable --Reclassify--> reusable/disposed             status_changed

A tire held by a driver only leaves that state through Return. Filing it
into a disposal container is blocked outright.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Optional, Union

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..errors import (
    BlockedOperatorUnitToDisposal,
    DuplicateBarcode,
    InvalidCommand,
    MissingDestination,
    NotAvailable,
    NotWithOperator,
)
from ..models import Tire, TireHistory
from ..models.tires import (
    EVENT_ASSIGNED_TO_OPERATOR,
    EVENT_CREATED,
    EVENT_MOVED,
    EVENT_RETURNED,
    EVENT_STATUS_CHANGED,
    LOCATION_CONTAINER,
    LOCATION_NONE,
    LOCATION_OPERATOR,
    STATUS_DISPOSED,
    STATUS_IN_STOCK,
    STATUS_REUSABLE,
    STATUS_WITH_OPERATOR,
)
from tiretrack.time_utils import coerce_occurred_at, utcnow
from . import catalog_service, location_service, registry_service
from .concurrency import ConcurrentInsert, run_with_retry
from .ledger_service import append_transition


# Return / reclassify outcomes
DISPOSITION_REUSABLE = "reusable"
DISPOSITION_DISPOSED = "disposed"
DISPOSITIONS = (DISPOSITION_REUSABLE, DISPOSITION_DISPOSED)

# What a batch row does with a barcode that already exists
POLICY_UPDATE_EXISTING = "update_existing"
POLICY_SKIP = "skip"
EXISTING_POLICIES = (POLICY_UPDATE_EXISTING, POLICY_SKIP)

# Spreadsheet condition column and what to do with discarded rows
CONDITION_STOCK = "stock"
CONDITION_DISCARDED = "discarded"
DISCARD_REUSE = "reuse"
DISCARD_DISPOSE = "dispose"

# Statuses that live inside a container
CONTAINER_STATUSES = (STATUS_IN_STOCK, STATUS_REUSABLE)

# Business time may run slightly ahead of the server clock
FUTURE_TOLERANCE = timedelta(minutes=2)


@dataclass(frozen=True)
class Ingest:
    barcode: str
    model_id: int
    container_id: int
    occurred_at: Union[datetime, str, None] = None
    metadata: Optional[dict] = None


@dataclass(frozen=True)
class Relocate:
    barcode: str
    container_id: int
    occurred_at: Union[datetime, str, None] = None
    metadata: Optional[dict] = None


@dataclass(frozen=True)
class Dispatch:
    barcode: str
    holder_ref: int
    position: str
    occurred_at: Union[datetime, str, None] = None
    metadata: Optional[dict] = None


@dataclass(frozen=True)
class Return:
    barcode: str
    disposition: str
    container_id: Optional[int] = None
    occurred_at: Union[datetime, str, None] = None
    metadata: Optional[dict] = None


@dataclass(frozen=True)
class Reclassify:
    """Explicit status correction for a stored tire (e.g. after an audit)."""
    barcode: str
    disposition: str
    container_id: Optional[int] = None
    occurred_at: Union[datetime, str, None] = None
    metadata: Optional[dict] = None


@dataclass(frozen=True)
class BatchImportRow:
    barcode: str
    model_name: str
    container_name: str
    occurred_at: Union[datetime, str, None] = None
    policy: str = POLICY_UPDATE_EXISTING
    condition: Optional[str] = None
    discard_policy: Optional[str] = None
    metadata: Optional[dict] = None


Command = Union[Ingest, Relocate, Dispatch, Return, Reclassify, BatchImportRow]


@dataclass
class TransitionResult:
    tire: Tire
    # created | moved | dispatched | returned | reclassified | updated | skipped
    action: str
    entries: list[TireHistory] = field(default_factory=list)


@dataclass
class _Context:
    performed_by: Optional[str]
    occurred_at: datetime
    metadata: Optional[dict[str, Any]]


def _context(command, performed_by: Optional[str]) -> _Context:
    try:
        occurred_dt = coerce_occurred_at(command.occurred_at)
    except ValueError:
        raise InvalidCommand("occurred_at must be an ISO-8601 datetime")

    now = utcnow()
    if occurred_dt is None:
        occurred_dt = now
    elif occurred_dt > now + FUTURE_TOLERANCE:
        raise InvalidCommand("occurred_at cannot be in the future")

    return _Context(performed_by=performed_by, occurred_at=occurred_dt, metadata=command.metadata)


def _write(tire: Tire, event_type: str, new_state: dict, ctx: _Context) -> TireHistory:
    before = registry_service.snapshot(tire)
    registry_service.apply_state(tire, new_state)
    return append_transition(
        tire=tire,
        event_type=event_type,
        from_state=before,
        to_state=new_state,
        performed_by=ctx.performed_by,
        occurred_at=ctx.occurred_at,
        metadata=ctx.metadata,
    )


def _container_state(status: str, container_id: int) -> dict:
    return {
        "status": status,
        "location_kind": LOCATION_CONTAINER,
        "location_ref": container_id,
        "holder_ref": None,
        "position": None,
    }


def _disposed_state() -> dict:
    return {
        "status": STATUS_DISPOSED,
        "location_kind": LOCATION_NONE,
        "location_ref": None,
        "holder_ref": None,
        "position": None,
    }


def _in_container(tire: Tire, container_id: int) -> bool:
    return tire.location_kind == LOCATION_CONTAINER and tire.location_ref == container_id


def _check_disposition(disposition: str) -> None:
    if disposition not in DISPOSITIONS:
        raise InvalidCommand(f"Invalid disposition: {disposition}")


# ---------------------------------------------------------------------------
# Transition bodies (no commit; run inside run_with_retry)
# ---------------------------------------------------------------------------

def _create(barcode: str, model_id: int, container_id: int, ctx: _Context) -> TransitionResult:
    location_service.ensure_capacity(container_id, 1)
    catalog_service.get_tire_model(model_id)
    try:
        tire = registry_service.create_tire(barcode, model_id, container_id)
    except (IntegrityError, DuplicateBarcode) as exc:
        # The barcode was unknown when this unit of work looked it up, so
        # another ingest committed it since; the retry turns this into a move
        raise ConcurrentInsert(barcode) from exc

    entry = append_transition(
        tire=tire,
        event_type=EVENT_CREATED,
        from_state=None,
        to_state=registry_service.snapshot(tire),
        performed_by=ctx.performed_by,
        occurred_at=ctx.occurred_at,
        metadata=ctx.metadata,
    )
    return TransitionResult(tire=tire, action="created", entries=[entry])


def _move(tire: Tire, container_id: int, ctx: _Context) -> TransitionResult:
    container = location_service.get_container(container_id)

    if tire.status == STATUS_WITH_OPERATOR:
        if container.is_disposal:
            raise BlockedOperatorUnitToDisposal(
                f"Tire {tire.barcode} is assigned to a driver and cannot be filed into {container.name}",
                barcode=tire.barcode,
                container_id=container_id,
            )
        raise NotAvailable(
            f"Tire {tire.barcode} is with a driver; return it before moving it",
            barcode=tire.barcode,
        )
    if tire.status == STATUS_DISPOSED:
        raise NotAvailable(f"Tire {tire.barcode} is disposed", barcode=tire.barcode)

    if not _in_container(tire, container_id):
        location_service.ensure_capacity(container_id, 1)

    entry = _write(tire, EVENT_MOVED, _container_state(tire.status, container_id), ctx)
    return TransitionResult(tire=tire, action="moved", entries=[entry])


def _ingest(command: Ingest, ctx: _Context) -> TransitionResult:
    tire = registry_service.find_tire_by_barcode(command.barcode, lock=True)
    if tire is not None:
        # Re-scanning a known barcode files it into the scanned container
        return _move(tire, command.container_id, ctx)
    return _create(command.barcode, command.model_id, command.container_id, ctx)


def _relocate(command: Relocate, ctx: _Context) -> TransitionResult:
    tire = registry_service.get_tire_by_barcode(command.barcode, lock=True)
    return _move(tire, command.container_id, ctx)


def _dispatch(command: Dispatch, ctx: _Context) -> TransitionResult:
    tire = registry_service.get_tire_by_barcode(command.barcode, lock=True)
    if tire.status != STATUS_IN_STOCK:
        raise NotAvailable(
            f"Tire {tire.barcode} is not in stock (status: {tire.status})",
            barcode=tire.barcode,
            status=tire.status,
        )

    position = (command.position or "").strip()
    if not position:
        raise InvalidCommand("position is required")
    driver = catalog_service.get_driver(command.holder_ref)

    new_state = {
        "status": STATUS_WITH_OPERATOR,
        "location_kind": LOCATION_OPERATOR,
        "location_ref": driver.id,
        "holder_ref": driver.id,
        "position": position,
    }
    entry = _write(tire, EVENT_ASSIGNED_TO_OPERATOR, new_state, ctx)
    return TransitionResult(tire=tire, action="dispatched", entries=[entry])


def _return(command: Return, ctx: _Context) -> TransitionResult:
    _check_disposition(command.disposition)
    tire = registry_service.get_tire_by_barcode(command.barcode, lock=True)
    if tire.status != STATUS_WITH_OPERATOR:
        raise NotWithOperator(
            f"Tire {tire.barcode} is not with a driver (status: {tire.status})",
            barcode=tire.barcode,
            status=tire.status,
        )

    if command.disposition == DISPOSITION_REUSABLE:
        if command.container_id is None:
            raise MissingDestination("A reusable tire needs a destination container")
        location_service.ensure_capacity(command.container_id, 1)
        new_state = _container_state(STATUS_REUSABLE, command.container_id)
    else:
        new_state = _disposed_state()

    entry = _write(tire, EVENT_RETURNED, new_state, ctx)
    return TransitionResult(tire=tire, action="returned", entries=[entry])


def _reclassify_tire(tire: Tire, disposition: str, container_id: Optional[int], ctx: _Context) -> TireHistory:
    _check_disposition(disposition)
    if tire.status == STATUS_WITH_OPERATOR:
        raise NotAvailable(
            f"Tire {tire.barcode} is with a driver; use a return instead",
            barcode=tire.barcode,
        )
    if tire.status == STATUS_DISPOSED:
        raise NotAvailable(f"Tire {tire.barcode} is disposed", barcode=tire.barcode)

    if disposition == DISPOSITION_DISPOSED:
        return _write(tire, EVENT_STATUS_CHANGED, _disposed_state(), ctx)

    destination = container_id if container_id is not None else tire.location_ref
    if not _in_container(tire, destination):
        location_service.ensure_capacity(destination, 1)
    return _write(tire, EVENT_STATUS_CHANGED, _container_state(STATUS_REUSABLE, destination), ctx)


def _reclassify(command: Reclassify, ctx: _Context) -> TransitionResult:
    tire = registry_service.get_tire_by_barcode(command.barcode, lock=True)
    entry = _reclassify_tire(tire, command.disposition, command.container_id, ctx)
    return TransitionResult(tire=tire, action="reclassified", entries=[entry])


def _batch_row(command: BatchImportRow, ctx: _Context) -> TransitionResult:
    if command.policy not in EXISTING_POLICIES:
        raise InvalidCommand(f"Invalid policy: {command.policy}")
    condition = command.condition or CONDITION_STOCK
    if condition not in (CONDITION_STOCK, CONDITION_DISCARDED):
        raise InvalidCommand(f"Unsupported condition: {command.condition}")
    discard_policy = command.discard_policy or DISCARD_DISPOSE
    if discard_policy not in (DISCARD_REUSE, DISCARD_DISPOSE):
        raise InvalidCommand(f"Invalid discard policy: {command.discard_policy}")

    model = catalog_service.get_or_create_tire_model(command.model_name)
    container = location_service.get_or_create_container(command.container_name)

    tire = registry_service.find_tire_by_barcode(command.barcode, lock=True)
    if tire is None:
        result = _create(command.barcode, model.id, container.id, ctx)
    elif command.policy == POLICY_SKIP:
        return TransitionResult(tire=tire, action="skipped")
    else:
        result = _move(tire, container.id, ctx)
        result.action = "updated"

    if condition == CONDITION_DISCARDED:
        disposition = DISPOSITION_REUSABLE if discard_policy == DISCARD_REUSE else DISPOSITION_DISPOSED
        result.entries.append(_reclassify_tire(result.tire, disposition, container.id, ctx))
    return result


_HANDLERS = {
    Ingest: _ingest,
    Relocate: _relocate,
    Dispatch: _dispatch,
    Return: _return,
    Reclassify: _reclassify,
    BatchImportRow: _batch_row,
}


def execute(command: Command, *, performed_by: Optional[str] = None) -> TransitionResult:
    """
    Validate and apply one command as a single committed unit of work.

    Raises TransitionError subclasses for rejected commands (nothing is
    written), StorageUnavailable when storage keeps failing, and
    Inconsistent if a failed write could not be rolled back.
    """
    handler = _HANDLERS.get(type(command))
    if handler is None:
        raise InvalidCommand(f"Unsupported command: {type(command).__name__}")

    def _op():
        ctx = _context(command, performed_by)
        result = handler(command, ctx)
        db.session.commit()
        return result

    result = run_with_retry(_op)
    current_app.logger.info(
        "%s %s: %s (%s)",
        type(command).__name__,
        result.tire.barcode,
        result.action,
        result.tire.status,
    )
    return result


def apply_transition(command: Command, *, performed_by: Optional[str] = None) -> Tire:
    return execute(command, performed_by=performed_by).tire
