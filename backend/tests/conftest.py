"""
Pytest fixtures for assethub backend tests.

Provides the application (in-memory SQLite), a per-test clean database,
a test client and small builders for the common aggregates.
"""

import pytest
from assethub import create_app
from assethub.config import TestingConfig
from assethub.extensions import db
from assethub.services import action_config_service, asset_service, consumable_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TestingConfig)

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


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
def client(app, db_session):
    """Create test client."""
    return app.test_client()


@pytest.fixture
def make_consumable(db_session):
    def _make(name="A4 paper", quantity=10, reserved_quantity=0, safety_stock=3, **kwargs):
        return consumable_service.create_consumable(
            name=name,
            quantity=quantity,
            reserved_quantity=reserved_quantity,
            safety_stock=safety_stock,
            **kwargs,
        )
    return _make


@pytest.fixture
def make_asset(db_session):
    def _make(name="ThinkPad X1", **kwargs):
        return asset_service.create_asset(name=name, **kwargs)
    return _make


@pytest.fixture
def no_approval_for(db_session):
    """Switch approval off for the given action types."""
    def _apply(*actions):
        for action in actions:
            action_config_service.upsert_action_config(action, {"requires_approval": False})
    return _apply
