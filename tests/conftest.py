"""Pytest configuration and fixtures."""

import asyncio
import tempfile
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from chargeledger.database import Database
from chargeledger.models import (
    ChargingStation,
    Connector,
    Tenant,
    Transaction,
    TransactionStop,
    User,
    UserRole,
    UserToken,
)
from chargeledger.repositories import (
    ChargingStationRepository,
    TenantRepository,
    TransactionRepository,
    UserRepository,
)
from chargeledger.services import TransactionService

TENANT_ID = "t1"
START = datetime(2024, 5, 1, 8, 0, tzinfo=UTC)

ALL_COMPONENTS = {"organization", "pricing", "billing", "refund", "ocpi"}


def make_transaction(tx_id: int, completed: bool = True, **overrides) -> Transaction:
    """Build a transaction on CS1 connector 1, completed one hour after START by default."""
    tx = Transaction(
        id=tx_id,
        tenant_id=TENANT_ID,
        charge_box_id="CS1",
        connector_id=1,
        user_id="basic1",
        tag_id="TAG1",
        site_id="site1",
        site_area_id="area1",
        issuer=True,
        timestamp=START,
        meter_start=1000,
    )
    if completed:
        tx.stop = TransactionStop(
            timestamp=START + timedelta(hours=1),
            meter_stop=12000,
            total_consumption_wh=11000,
            total_duration_secs=3600,
            total_inactivity_secs=600,
            inactivity_status="I",
            price=4.5,
            price_unit="EUR",
            user_id="basic1",
            tag_id="TAG1",
            reason="Local",
        )
    for key, value in overrides.items():
        setattr(tx, key, value)
    return tx


@pytest.fixture(scope="session")
def event_loop_policy():
    """Set event loop policy for async tests."""
    return asyncio.get_event_loop_policy()


@pytest.fixture
async def temp_db():
    """Create a temporary SQLite database for testing."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as tmp:
        db_path = tmp.name

    # Initialize database with schema
    db = Database(db_path)
    await db.initialize_schema()

    yield db

    # Cleanup
    await db.disconnect()
    Path(db_path).unlink(missing_ok=True)


@pytest.fixture
async def db_connection(temp_db):
    """Provide a database connection for testing."""
    conn = await temp_db.connect()
    yield conn
    # Connection is cleaned up by temp_db fixture


@pytest.fixture
async def tenant(db_connection):
    """Tenant with organization, pricing and manual refund and billing integrations."""
    tenant = Tenant(
        id=TENANT_ID,
        name="Test Tenant",
        subdomain="test",
        components={
            "organization": {"active": True},
            "pricing": {"active": True},
            "refund": {"active": True, "type": "manual"},
            "billing": {"active": True, "type": "manual"},
            "ocpi": {"active": True, "type": "test"},
        },
    )
    return await TenantRepository(db_connection).save(tenant)


@pytest.fixture
async def users(db_connection, tenant):
    """Admin, two basic users and a user issued by a roaming partner."""
    repo = UserRepository(db_connection)
    seeded = {}
    for user in [
        User(id="admin1", tenant_id=TENANT_ID, name="Admin", first_name="Ada", role="A"),
        User(
            id="basic1",
            tenant_id=TENANT_ID,
            name="Doe",
            first_name="John",
            role="B",
            tag_ids=["TAG1", "TAG1B"],
        ),
        User(id="basic2", tenant_id=TENANT_ID, name="Roe", first_name="Jane", role="B"),
        User(
            id="roamer",
            tenant_id=TENANT_ID,
            name="Far",
            first_name="Away",
            role="B",
            issuer=False,
            tag_ids=["TAGX"],
        ),
    ]:
        seeded[user.id] = await repo.save(user)
    return seeded


@pytest.fixture
async def station(db_connection, tenant):
    """Charging station CS1 on site1 with two idle connectors."""
    return await ChargingStationRepository(db_connection).save(
        ChargingStation(
            id="CS1",
            tenant_id=TENANT_ID,
            site_id="site1",
            site_area_id="area1",
            connectors=[
                Connector(connector_id=1, power_watts=22000),
                Connector(connector_id=2, power_watts=22000),
            ],
        )
    )


@pytest.fixture
def tx_repo(db_connection):
    return TransactionRepository(db_connection)


@pytest.fixture
def admin_token():
    return UserToken(
        id="admin1",
        tenant_id=TENANT_ID,
        role=UserRole.ADMIN.value,
        tag_ids=["ADMINTAG"],
        active_components=set(ALL_COMPONENTS),
    )


@pytest.fixture
def basic_token():
    return UserToken(
        id="basic1",
        tenant_id=TENANT_ID,
        role=UserRole.BASIC.value,
        tag_ids=["TAG1", "TAG1B"],
        active_components=set(ALL_COMPONENTS),
    )


@pytest.fixture
def other_basic_token():
    return UserToken(
        id="basic2",
        tenant_id=TENANT_ID,
        role=UserRole.BASIC.value,
        active_components=set(ALL_COMPONENTS),
    )


@pytest.fixture
def site_admin_token():
    return UserToken(
        id="basic2",
        tenant_id=TENANT_ID,
        role=UserRole.BASIC.value,
        site_admin_ids=["site1"],
        active_components=set(ALL_COMPONENTS),
    )


@pytest.fixture
def demo_token():
    return UserToken(
        id="demo1",
        tenant_id=TENANT_ID,
        role=UserRole.DEMO.value,
        active_components=set(ALL_COMPONENTS),
    )


@pytest.fixture
async def service(db_connection, tenant, users, station):
    """Transaction service over a seeded tenant."""
    return TransactionService(db_connection)
