"""
Container audit tests.
"""

from datetime import timedelta

import pytest

from tiretrack.errors import AlreadyScanned, AuditClosed, AuditNotFound, EmptyAudit, NotFound, UnknownUnit
from tiretrack.services import audit_service
from tiretrack.services.transition_service import Ingest, apply_transition
from tiretrack.time_utils import utcnow


@pytest.fixture
def stocked(tire_model, make_container):
    """Container holding A, B, C plus a second container holding D."""
    audited = make_container("Audit", capacity=10)
    elsewhere = make_container("Elsewhere", capacity=10)
    for barcode in ("A", "B", "C"):
        apply_transition(Ingest(barcode=barcode, model_id=tire_model.id, container_id=audited.id))
    apply_transition(Ingest(barcode="D", model_id=tire_model.id, container_id=elsewhere.id))
    return audited


class TestAuditSession:

    def test_report_lists_missing_and_extra(self, stocked):
        """
        SCENARIO: Expected {A, B, C}, operator scans A, B, D
        EXPECTED: missing = [C], extra = [D]
        """
        session = audit_service.start_audit(stocked.id, started_by="auditor")
        for barcode in ("A", "B", "D"):
            audit_service.scan(session, barcode)

        report = audit_service.finish(session)

        assert report.missing == ["C"]
        assert report.extra == ["D"]
        assert report.expected_count == 3
        assert report.scanned_count == 3
        assert session.status == audit_service.AUDIT_STATUS_FINISHED
        assert session.to_dict()["report"]["missing_count"] == 1

    def test_complete_scan_has_no_discrepancies(self, stocked):
        session = audit_service.start_audit(stocked.id)
        for barcode in ("C", "A", "B"):
            audit_service.scan(session, barcode)

        report = audit_service.finish(session)
        assert report.missing == []
        assert report.extra == []

    def test_duplicate_scan_rejected(self, stocked):
        session = audit_service.start_audit(stocked.id)
        audit_service.scan(session, "A")

        with pytest.raises(AlreadyScanned):
            audit_service.scan(session, "A")

        # The session stays open and usable
        audit_service.scan(session, "B")
        assert session.scanned == ["A", "B"]

    def test_unknown_barcode_rejected(self, stocked):
        session = audit_service.start_audit(stocked.id)
        with pytest.raises(UnknownUnit):
            audit_service.scan(session, "ZZZ")
        assert session.scanned == []

    def test_empty_audit_cannot_finish(self, stocked):
        session = audit_service.start_audit(stocked.id)
        with pytest.raises(EmptyAudit):
            audit_service.finish(session)
        assert session.status == audit_service.AUDIT_STATUS_OPEN

    def test_finished_audit_is_closed(self, stocked):
        session = audit_service.start_audit(stocked.id)
        audit_service.scan(session, "A")
        audit_service.finish(session)

        with pytest.raises(AuditClosed):
            audit_service.scan(session, "B")
        with pytest.raises(AuditClosed):
            audit_service.finish(session)

    def test_start_requires_existing_container(self, db_session):
        with pytest.raises(NotFound):
            audit_service.start_audit(999)

    def test_audit_does_not_change_tires(self, stocked):
        from tiretrack.services import location_service

        session = audit_service.start_audit(stocked.id)
        audit_service.scan(session, "D")
        audit_service.finish(session)
        assert location_service.occupancy(stocked.id) == 3


class TestAuditRegistry:

    def test_add_get_discard(self, stocked):
        registry = audit_service.AuditRegistry()
        session = registry.add(audit_service.start_audit(stocked.id))

        assert registry.get(session.id) is session
        assert len(registry) == 1

        registry.discard(session.id)
        assert len(registry) == 0
        with pytest.raises(AuditNotFound):
            registry.get(session.id)

    def test_sweep_drops_abandoned_sessions(self, stocked):
        registry = audit_service.AuditRegistry(max_age=timedelta(hours=1))
        abandoned = registry.add(audit_service.start_audit(stocked.id))
        abandoned.started_at = utcnow() - timedelta(hours=2)
        recent = registry.add(audit_service.start_audit(stocked.id))

        assert registry.sweep() == [abandoned.id]
        assert len(registry) == 1
        assert registry.get(recent.id) is recent
        with pytest.raises(AuditNotFound):
            registry.get(abandoned.id)

    def test_add_sweeps_stale_sessions(self, stocked):
        registry = audit_service.AuditRegistry(max_age=timedelta(minutes=30))
        old = registry.add(audit_service.start_audit(stocked.id))
        old.started_at = utcnow() - timedelta(minutes=31)

        registry.add(audit_service.start_audit(stocked.id))

        assert len(registry) == 1
        with pytest.raises(AuditNotFound):
            registry.get(old.id)

    def test_without_max_age_nothing_expires(self, stocked):
        registry = audit_service.AuditRegistry()
        session = registry.add(audit_service.start_audit(stocked.id))
        session.started_at = utcnow() - timedelta(days=30)
        assert registry.sweep() == []
        assert len(registry) == 1
