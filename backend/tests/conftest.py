"""
Pytest fixtures for POS ledger backend tests.

Provides a fresh in-memory database per test, tenant contexts, and
register/shift/session fixtures for commit pipeline tests.
"""

import pytest
from posledger import create_app
from posledger.extensions import db
from posledger.context import OperationContext
from posledger.services import register_service, ledger_service


TENANT_A = "acme"
TENANT_B = "beta"


@pytest.fixture(scope='function')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'RETRY_BACKOFF_SECONDS': 0,
        'CATALOG_BASE_URL': None,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture
def ctx():
    """Cashier context in tenant A."""
    return OperationContext(tenant_id=TENANT_A, user_id=1)


@pytest.fixture
def manager_ctx():
    """Same cashier with manager approval."""
    return OperationContext(tenant_id=TENANT_A, user_id=1, manager_id=9)


@pytest.fixture
def other_ctx():
    """Cashier context in tenant B."""
    return OperationContext(tenant_id=TENANT_B, user_id=2)


@pytest.fixture
def register(app, ctx):
    return register_service.create_register(ctx, "REG-01", "Front Counter")


@pytest.fixture
def shift(app, ctx, register):
    return register_service.open_shift(ctx, register.id, 10000)


@pytest.fixture
def pos_session(app, ctx, register, shift):
    """Active session on REG-01, attached to the open shift."""
    return register_service.open_session(ctx, register.id, 10000)


@pytest.fixture
def gift_card(app, ctx):
    """Gift card GC-0001 worth $50.00, no PIN."""
    return ledger_service.issue_gift_card(ctx, "GC-0001", 5000)


def headers(tenant: str = TENANT_A, user_id: int | None = 1, manager_id: int | None = None) -> dict:
    """Identity headers for API requests."""
    h = {'X-Tenant-ID': tenant}
    if user_id is not None:
        h['X-User-ID'] = str(user_id)
    if manager_id is not None:
        h['X-Manager-ID'] = str(manager_id)
    return h
