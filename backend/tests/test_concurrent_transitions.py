"""
Two real sessions racing on the same tire or container.

These run on a file-backed SQLite database so each thread gets its own
connection. A barrier holds both threads at the interesting point so the
race actually happens instead of depending on scheduler luck.
"""

import threading

import pytest

from tiretrack import create_app
from tiretrack.errors import CapacityExceeded, NotAvailable
from tiretrack.extensions import db
from tiretrack.models import Container, Driver, Tire, TireHistory, TireModel
from tiretrack.services import location_service, registry_service
from tiretrack.services.transition_service import Dispatch, Ingest, execute


@pytest.fixture
def file_app(tmp_path):
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'race.sqlite3'}",
        'SQLALCHEMY_ENGINE_OPTIONS': {'connect_args': {'check_same_thread': False, 'timeout': 10}},
        'TRANSITION_ATTEMPTS': 10,
        'TRANSITION_RETRY_BACKOFF': 0.02,
    })
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.engine.dispose()


@pytest.fixture
def seeded(file_app):
    """One model, one driver, containers A (capacity 2) and B (capacity 5)."""
    model = TireModel(name="Slick S7")
    driver = Driver(full_name="Driver One")
    a = Container(name="A", capacity=2)
    b = Container(name="B", capacity=5)
    db.session.add_all([model, driver, a, b])
    db.session.commit()
    return {"model_id": model.id, "driver_id": driver.id, "a": a.id, "b": b.id}


def _pause_after_first_call(monkeypatch, module, name, barrier):
    """Make each thread wait at `barrier` after its first call to module.name."""
    original = getattr(module, name)
    seen = threading.local()

    def wrapper(*args, **kwargs):
        result = original(*args, **kwargs)
        if not getattr(seen, "done", False):
            seen.done = True
            try:
                barrier.wait()
            except threading.BrokenBarrierError:
                # The other thread is already serialized behind a lock
                pass
        return result

    monkeypatch.setattr(module, name, wrapper)


def _run_together(app, commands):
    """Execute each command in its own thread and app context; returns outcomes in order."""
    outcomes = [None] * len(commands)

    def worker(index, command):
        with app.app_context():
            try:
                outcomes[index] = execute(command, performed_by=f"worker-{index}").action
            except Exception as exc:
                outcomes[index] = exc

    threads = [threading.Thread(target=worker, args=(i, c)) for i, c in enumerate(commands)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=60)
        assert not thread.is_alive()
    db.session.expire_all()
    return outcomes


class TestContainerCapacityRace:

    def test_parallel_ingests_cannot_overfill_container(self, monkeypatch, file_app, seeded):
        """
        SCENARIO: A (capacity 2) holds T1; T2 and T3 are ingested into A at once,
                  both threads pausing right after counting the container
        EXPECTED: One is created, the other fails with CapacityExceeded; A holds 2
        """
        execute(Ingest(barcode="T1", model_id=seeded["model_id"], container_id=seeded["a"]))
        _pause_after_first_call(monkeypatch, location_service, "occupancy", threading.Barrier(2, timeout=0.5))

        outcomes = _run_together(file_app, [
            Ingest(barcode="T2", model_id=seeded["model_id"], container_id=seeded["a"]),
            Ingest(barcode="T3", model_id=seeded["model_id"], container_id=seeded["a"]),
        ])

        monkeypatch.undo()
        assert sum(1 for o in outcomes if o == "created") == 1
        assert sum(1 for o in outcomes if isinstance(o, CapacityExceeded)) == 1
        assert location_service.occupancy(seeded["a"]) == 2
        assert db.session.query(Tire).count() == 2


class TestSameTireRace:

    def test_parallel_dispatch_of_one_tire(self, monkeypatch, file_app, seeded):
        """
        SCENARIO: Two operators dispatch T1 at the same moment
        EXPECTED: One dispatch wins; the other is re-run and sees NotAvailable
        """
        execute(Ingest(barcode="T1", model_id=seeded["model_id"], container_id=seeded["b"]))
        _pause_after_first_call(monkeypatch, registry_service, "get_tire_by_barcode", threading.Barrier(2, timeout=5))

        outcomes = _run_together(file_app, [
            Dispatch(barcode="T1", holder_ref=seeded["driver_id"], position="FL"),
            Dispatch(barcode="T1", holder_ref=seeded["driver_id"], position="FR"),
        ])

        monkeypatch.undo()
        assert sum(1 for o in outcomes if o == "dispatched") == 1
        assert sum(1 for o in outcomes if isinstance(o, NotAvailable)) == 1

        tire = registry_service.get_tire_by_barcode("T1")
        assert tire.status == "with_operator"
        assert tire.version_id == 2
        events = [e.event_type for e in db.session.query(TireHistory).filter_by(tire_id=tire.id)]
        assert sorted(events) == ["assigned_to_operator", "created"]

    def test_parallel_ingest_of_new_barcode(self, monkeypatch, file_app, seeded):
        """
        SCENARIO: The same new barcode is scanned into A and B at the same moment
        EXPECTED: One tire row; the loser is re-run as a move into its container
        """
        _pause_after_first_call(monkeypatch, registry_service, "find_tire_by_barcode", threading.Barrier(2, timeout=5))
        commands = [
            Ingest(barcode="T9", model_id=seeded["model_id"], container_id=seeded["a"]),
            Ingest(barcode="T9", model_id=seeded["model_id"], container_id=seeded["b"]),
        ]

        outcomes = _run_together(file_app, commands)

        monkeypatch.undo()
        assert sorted(outcomes) == ["created", "moved"]
        assert db.session.query(Tire).filter_by(barcode="T9").count() == 1

        tire = registry_service.get_tire_by_barcode("T9")
        mover = commands[outcomes.index("moved")]
        assert tire.location_ref == mover.container_id
        events = [e.event_type for e in db.session.query(TireHistory).filter_by(tire_id=tire.id)]
        assert sorted(events) == ["created", "moved"]
