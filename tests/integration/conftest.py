import pytest
import pytest_asyncio
from datetime import timedelta
from decimal import Decimal
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

import credit_engine.domain  # noqa: F401  registers every table on SQLModel.metadata
from config import ApplicationConfig
from credit_engine.adapter.services import LoggingAlertGateway
from credit_engine.app.services import AccountLockManager, TTLCache
from credit_engine.app.use_cases.credits import PurchaseCreditsCommandDTO, RegisterEntityCommandDTO, UpsertConfigurationCommandDTO
from credit_engine.depends import CreditServices, get_credit_services, get_session
from credit_engine.domain.base import utc_now
from credit_engine.domain.credit_configuration import ConfigScope
from credit_engine.domain.entity import EntityKind


class IntegrationConfig(ApplicationConfig):
    """Test settings: no fee, default approval level 1, low-balance alerts at 100"""
    TRANSFER_FEE_RATE = "0"
    LOW_BALANCE_THRESHOLD = "100"
    CREDIT_MAX_RETRIES = 2


@pytest_asyncio.fixture(scope="function")
async def engine(tmp_path):
    """Create a fresh SQLite database per test"""
    test_db_url = f"sqlite+aiosqlite:///{tmp_path / 'credits_test.db'}"

    engine = create_async_engine(test_db_url, echo=False, future=True)

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(engine):
    """Create a new database session for each test"""
    Session = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)
    async with Session() as session:
        yield session


@pytest.fixture
def shared_state():
    """Process-wide collaborators, fresh for every test"""
    return {
        "locks": AccountLockManager(timeout_seconds=1.0),
        "config_cache": TTLCache(ttl_seconds=30),
        "entity_cache": TTLCache(ttl_seconds=30),
        "gateway": LoggingAlertGateway(),
    }


@pytest.fixture
def make_services(shared_state):
    """Build CreditServices around a session, sharing locks and caches"""

    def build(session, config=IntegrationConfig) -> CreditServices:
        return CreditServices(session, config=config, **shared_state)

    return build


@pytest.fixture
def services(db_session, make_services) -> CreditServices:
    return make_services(db_session)


@pytest.fixture
def purchase(services):
    """Add credits to an account and return the grant"""

    async def add(amount: str, entity_id=None, tenant_id: str = "tenant_a", expires_in_days=None, **fields):
        expiry_date = utc_now() + timedelta(days=expires_in_days) if expires_in_days is not None else None
        result = await services.purchase_credits().execute(
            PurchaseCreditsCommandDTO(
                tenant_id=tenant_id,
                entity_id=entity_id,
                amount=Decimal(amount),
                expiry_date=expiry_date,
                **fields,
            )
        )
        assert result.is_ok(), result.error
        return result.value

    return add


@pytest.fixture
def configure(services):
    """Save a pricing rule; tier follows from the tenant and entity given"""

    async def save(operation_code: str, credit_cost: str, tenant_id=None, entity_id=None, **fields):
        if entity_id:
            scope = ConfigScope.ENTITY_SPECIFIC
        elif tenant_id:
            scope = ConfigScope.TENANT_WIDE
        else:
            scope = ConfigScope.GLOBAL
        result = await services.upsert_configuration().execute(
            UpsertConfigurationCommandDTO(
                scope=scope,
                tenant_id=tenant_id,
                entity_id=entity_id,
                operation_code=operation_code,
                credit_cost=Decimal(credit_cost),
                **fields,
            )
        )
        assert result.is_ok(), result.error
        return result.value

    return save


@pytest.fixture
def register(services):
    """Register an entity; the tenant root is registered under the tenant id"""

    async def add(entity_id: str, parent_id=None, kind=EntityKind.ORGANIZATION, tenant_id: str = "tenant_a", **fields):
        result = await services.register_entity().execute(
            RegisterEntityCommandDTO(entity_id=entity_id, tenant_id=tenant_id, parent_id=parent_id, kind=kind, **fields)
        )
        assert result.is_ok(), result.error
        return result.value

    return add


@pytest_asyncio.fixture
async def client(db_session, make_services):
    """Create test client with database session override"""
    from credit_engine.api.app import create_app

    app = create_app(IntegrationConfig)

    # Override the session dependency to use test session
    async def override_get_session():
        yield db_session

    async def override_get_credit_services():
        return make_services(db_session)

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_credit_services] = override_get_credit_services

    # Use ASGITransport for httpx AsyncClient
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
