import uuid
from decimal import Decimal

import pytest
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import NullPool

import app.models  # noqa: F401
from app.database import Base
from app.models import Order
from app.services.payments import PaymentService
from tests.fakes import FakeGateway


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
async def engine(anyio_backend, tmp_path):
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'payments.db'}",
        poolclass=NullPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def service(db, gateway):
    return PaymentService(db, gateway)


@pytest.fixture
def make_order(session_factory):
    async def _make_order(amount: str = "500.00", status: str = "PENDING") -> Order:
        async with session_factory() as session:
            order = Order(
                id=str(uuid.uuid4()),
                total_amount=Decimal(amount),
                currency="INR",
                status=status,
            )
            session.add(order)
            await session.commit()
        return order

    return _make_order


@pytest.fixture
async def order(make_order):
    return await make_order()
