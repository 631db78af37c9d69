# backend/tiretrack/services/audit_service.py
"""
Physical container audit.

An operator walks a container, scans every tire found, and finishes the
audit. The report compares the scans against what the registry says is in
the container at finish time.

LIFECYCLE:
1. OPEN: session started, scans accumulating (in memory only)
2. FINISHED: report produced; further scans are refused

Audits never change tire state. Acting on a discrepancy (e.g. disposing a
missing tire) is a separate, explicit transition.
"""
from __future__ import annotations

import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

from ..extensions import db
from ..errors import AlreadyScanned, AuditClosed, AuditNotFound, EmptyAudit, UnknownUnit
from ..models import Tire
from ..models.tires import LOCATION_CONTAINER
from tiretrack.time_utils import to_utc_z, utcnow
from . import location_service, registry_service


AUDIT_STATUS_OPEN = "OPEN"
AUDIT_STATUS_FINISHED = "FINISHED"


@dataclass
class AuditReport:
    container_id: int
    expected_count: int
    scanned_count: int
    missing_count: int
    extra_count: int
    missing: list[str]
    extra: list[str]
    finished_at: datetime

    def to_dict(self) -> dict:
        return {
            "container_id": self.container_id,
            "expected_count": self.expected_count,
            "scanned_count": self.scanned_count,
            "missing_count": self.missing_count,
            "extra_count": self.extra_count,
            "missing": list(self.missing),
            "extra": list(self.extra),
            "finished_at": to_utc_z(self.finished_at),
        }


@dataclass
class AuditSession:
    """Scan accumulator owned by a single operator."""
    container_id: int
    started_by: Optional[str] = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    started_at: datetime = field(default_factory=utcnow)
    status: str = AUDIT_STATUS_OPEN
    scanned: list[str] = field(default_factory=list)
    report: Optional[AuditReport] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "container_id": self.container_id,
            "started_by": self.started_by,
            "started_at": to_utc_z(self.started_at),
            "status": self.status,
            "scanned": list(self.scanned),
            "scanned_count": len(self.scanned),
            "report": self.report.to_dict() if self.report else None,
        }


def start_audit(container_id: int, started_by: Optional[str] = None) -> AuditSession:
    location_service.get_container(container_id)
    return AuditSession(container_id=container_id, started_by=started_by)


def scan(session: AuditSession, barcode: str) -> None:
    """
    Record one scanned barcode.

    AlreadyScanned / UnknownUnit are reported without closing the session.
    """
    if session.status != AUDIT_STATUS_OPEN:
        raise AuditClosed(f"Audit {session.id} is already finished")

    code = registry_service.normalize_barcode(barcode)
    if code in session.scanned:
        raise AlreadyScanned(f"Barcode {code} was already scanned in this audit")
    if registry_service.find_tire_by_barcode(code) is None:
        raise UnknownUnit(f"Barcode {code} is not registered")

    session.scanned.append(code)


def expected_barcodes(container_id: int) -> set[str]:
    rows = (
        db.session.query(Tire.barcode)
        .filter(
            Tire.location_kind == LOCATION_CONTAINER,
            Tire.location_ref == container_id,
        )
        .order_by(Tire.barcode)
        .all()
    )
    return {row.barcode for row in rows}


def finish(session: AuditSession) -> AuditReport:
    if session.status != AUDIT_STATUS_OPEN:
        raise AuditClosed(f"Audit {session.id} is already finished")
    if not session.scanned:
        raise EmptyAudit("Scan at least one tire before finishing the audit")

    expected = expected_barcodes(session.container_id)
    scanned = set(session.scanned)
    missing = sorted(expected - scanned)
    extra = sorted(scanned - expected)

    report = AuditReport(
        container_id=session.container_id,
        expected_count=len(expected),
        scanned_count=len(scanned),
        missing_count=len(missing),
        extra_count=len(extra),
        missing=missing,
        extra=extra,
        finished_at=utcnow(),
    )
    session.report = report
    session.status = AUDIT_STATUS_FINISHED
    return report


class AuditRegistry:
    """
    Open audit sessions addressable by id.

    Each session still has a single writer; the lock only guards the map so
    independent audits can start and finish side by side. Sessions older
    than `max_age` are dropped on the next add (abandoned audits).
    """

    def __init__(self, max_age: Optional[timedelta] = None):
        self._sessions: dict[str, AuditSession] = {}
        self._lock = threading.Lock()
        self.max_age = max_age

    def add(self, session: AuditSession) -> AuditSession:
        self.sweep()
        with self._lock:
            self._sessions[session.id] = session
        return session

    def get(self, session_id: str) -> AuditSession:
        with self._lock:
            session = self._sessions.get(session_id)
        if session is None:
            raise AuditNotFound(f"Audit {session_id} not found")
        return session

    def discard(self, session_id: str) -> None:
        with self._lock:
            self._sessions.pop(session_id, None)

    def sweep(self, now: Optional[datetime] = None) -> list[str]:
        """Drop sessions started more than max_age ago; returns their ids."""
        if self.max_age is None:
            return []
        cutoff = (now or utcnow()) - self.max_age
        with self._lock:
            stale = [sid for sid, s in self._sessions.items() if s.started_at < cutoff]
            for sid in stale:
                del self._sessions[sid]
        return stale

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
