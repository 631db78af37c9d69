"""
Pytest fixtures for TireTrack backend tests.

Provides an in-memory database, a per-test table wipe, the Flask test
client, and small factories for containers, models and drivers.
"""

import pytest
from tiretrack import create_app
from tiretrack.extensions import db
from tiretrack.models import Container, Driver, TireModel


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'TRANSITION_RETRY_BACKOFF': 0,
        'DEFAULT_CONTAINER_CAPACITY': 50,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def make_container(db_session):
    """Factory: make_container("C1", capacity=2, is_disposal=False)."""
    def _make(name: str, capacity: int = 10, is_disposal: bool = False) -> Container:
        container = Container(name=name, capacity=capacity, is_disposal=is_disposal)
        db_session.add(container)
        db_session.commit()
        return container
    return _make


@pytest.fixture(scope='function')
def tire_model(db_session):
    """Create a tire model."""
    model = TireModel(name="Slick S7", type="slick", compound="medium")
    db_session.add(model)
    db_session.commit()
    return model


@pytest.fixture(scope='function')
def driver(db_session):
    """Create a driver (operator)."""
    d = Driver(full_name="Driver One", nickname="D1")
    db_session.add(d)
    db_session.commit()
    return d


@pytest.fixture(scope='function')
def container(make_container):
    """Default stock container C1 with capacity 2."""
    return make_container("C1", capacity=2)


@pytest.fixture(scope='function')
def disposal_container(make_container):
    """Disposal (DSI) container."""
    return make_container("DSI", capacity=100, is_disposal=True)
