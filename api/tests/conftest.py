"""API test configuration."""

import pytest
from api.dependencies import (
    AdminPrincipal,
    get_claim_coordinator,
    get_membership_event_handler,
    get_reconciliation_service,
    require_admin,
)
from api.main import create_app
from api.services.claim_coordinator import ClaimCoordinator
from api.services.membership_events import MembershipEventHandler
from api.services.reconciliation import ReconciliationService
from api.services.snapshot_builder import SnapshotBuilder
from fakes import TEST_CATALOG, FakeClock, FakeLedger, FakeMemberStore, FakePaymentClient
from httpx import ASGITransport, AsyncClient
from trailclub.config import reset_settings_cache


def _fake_admin():
    return AdminPrincipal(uid="test-admin-id", email="admin@test.local")


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch):
    monkeypatch.setenv("SKIP_MIGRATION_CHECK", "true")
    monkeypatch.setenv("RUN_MAINTENANCE_WORKER", "false")
    monkeypatch.setenv("STRIPE_WEBHOOK_SECRET", "whsec_test")
    reset_settings_cache()
    yield
    reset_settings_cache()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def ledger():
    return FakeLedger()


@pytest.fixture
def store():
    return FakeMemberStore()


@pytest.fixture
def payments():
    return FakePaymentClient()


@pytest.fixture
def coordinator(ledger, clock):
    return ClaimCoordinator(ledger, clock=clock)


@pytest.fixture
def reconciliation(payments, store, clock):
    return ReconciliationService(SnapshotBuilder(payments, store, TEST_CATALOG), store, clock=clock)


@pytest.fixture
def event_handler(payments, store):
    return MembershipEventHandler(payments, store, TEST_CATALOG)


@pytest.fixture
def app(coordinator, reconciliation, event_handler):
    a = create_app()
    a.dependency_overrides[require_admin] = _fake_admin
    a.dependency_overrides[get_claim_coordinator] = lambda: coordinator
    a.dependency_overrides[get_reconciliation_service] = lambda: reconciliation
    a.dependency_overrides[get_membership_event_handler] = lambda: event_handler
    return a


@pytest.fixture
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
async def unauthenticated_client(coordinator, reconciliation):
    """Client with NO auth override -- tests that endpoints require auth."""
    a = create_app()
    a.dependency_overrides[get_claim_coordinator] = lambda: coordinator
    a.dependency_overrides[get_reconciliation_service] = lambda: reconciliation
    transport = ASGITransport(app=a)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
