"""
Lab Inventory Test Configuration

Shared fixtures and configuration for all tests.
"""

import logging

import pytest

from labinventory.config import Settings, configure
from labinventory.models import Chemical, Equipment, User, UserRole
from labinventory.session import close_db, get_session, init_db

# Configure logging for tests
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

TEST_DB_URL = 'sqlite:///:memory:'


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture
def settings():
    """Deterministic settings that ignore the environment and any .env file."""
    return configure(Settings(database_url=TEST_DB_URL, secret_key='test-secret-key'))


@pytest.fixture
def db(settings):
    """Fresh in-memory database for each test."""
    manager = init_db(TEST_DB_URL)
    yield manager
    manager.drop_all()
    close_db()


def _create_user(name: str, email: str, role: str) -> dict:
    with get_session() as session:
        user = User(name=name, email=email, role=role)
        session.add(user)
        session.flush()
        return {'id': user.id, 'name': user.name, 'email': user.email, 'role': user.role}


@pytest.fixture
def admin_user(db):
    return _create_user('Ada Admin', 'ada@example.com', UserRole.ADMIN.value)


@pytest.fixture
def regular_user(db):
    return _create_user('Uma User', 'uma@example.com', UserRole.USER.value)


@pytest.fixture
def make_chemical(db):
    """Factory inserting a chemical directly (no audit entry)."""
    def _make(**kwargs):
        data = {
            'name': 'Acetone',
            'batch_number': 'B-001',
            'initial_quantity': 100,
            'current_quantity': 100,
            'safety_class': 'flammable',
        }
        data.update(kwargs)
        with get_session() as session:
            chemical = Chemical(**data)
            session.add(chemical)
            session.flush()
            return chemical.id
    return _make


@pytest.fixture
def make_equipment(db):
    """Factory inserting equipment directly (no audit entry)."""
    counter = {'n': 0}

    def _make(**kwargs):
        counter['n'] += 1
        data = {
            'name': 'Centrifuge',
            'serial_id': f'SN-{counter["n"]:04d}',
            'model': 'CF-200',
        }
        data.update(kwargs)
        with get_session() as session:
            item = Equipment(**data)
            session.add(item)
            session.flush()
            return item.id
    return _make


# =============================================================================
# Service Fixtures
# =============================================================================

@pytest.fixture
def audit_service(db):
    from labinventory.audit_service import AuditService
    return AuditService()


@pytest.fixture
def notification_service(db):
    from labinventory.notification_service import NotificationService
    return NotificationService()


@pytest.fixture
def generator(db):
    from labinventory.notification_service import NotificationGenerator
    return NotificationGenerator()


@pytest.fixture
def inventory(db):
    from labinventory.inventory_service import InventoryService
    return InventoryService()


# =============================================================================
# Web Fixtures
# =============================================================================

@pytest.fixture
def app(db, settings):
    """Create application for testing against the in-memory database."""
    from labinventory.web.app import create_app
    app = create_app(settings=settings)
    app.config['TESTING'] = True
    return app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def login(client):
    """Log the test client in as the given user."""
    def _login(user):
        with client.session_transaction() as sess:
            sess['user_id'] = user['id']
        return client
    return _login


# =============================================================================
# Markers
# =============================================================================

def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
