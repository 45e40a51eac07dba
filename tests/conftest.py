import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

import pytest
from decimal import Decimal
from typing import AsyncGenerator, Iterable, List, Optional
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool
from backoffice.core.config import Settings
from backoffice.db.base import Base
from backoffice.models import (
    BarcodeRegistry,
    Product,
    ProductUnit,
    Supplier,
    SupplierTransaction,
    SupplierTransactionItem,
)
from backoffice.models.shared.enums import (
    BarcodeFormat,
    BarcodeType,
    EntityType,
    TransactionStatus,
    TransactionType,
    UnitStatus,
)
from backoffice.services.barcode.barcode_authority_service import BarcodeAuthorityService
from backoffice.services.coordination.event_coordinator import CoordinationEvent, EventCoordinator

# Test database URL
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

@pytest.fixture
async def test_engine():
    """Fresh in-memory database per test"""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()

@pytest.fixture
def session_maker(test_engine):
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)

@pytest.fixture
async def db_session(session_maker) -> AsyncGenerator[AsyncSession, None]:
    async with session_maker() as session:
        yield session

@pytest.fixture
def test_settings() -> Settings:
    return Settings(DATABASE_URL=TEST_DATABASE_URL)

@pytest.fixture
def coordinator() -> EventCoordinator:
    return EventCoordinator()

@pytest.fixture
def events(coordinator: EventCoordinator) -> List[CoordinationEvent]:
    """Every event the coordinator delivers during the test"""
    received: List[CoordinationEvent] = []
    coordinator.add_event_listener(received.append)
    return received

@pytest.fixture
def authority(db_session, coordinator, test_settings) -> BarcodeAuthorityService:
    return BarcodeAuthorityService(db_session, coordinator, test_settings)


class Seeder:
    """Inserts committed rows for tests"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _save(self, obj):
        self.session.add(obj)
        await self.session.commit()
        return obj

    async def product(self, brand: str = "Widget", model: str = "Phone", price: str = "100.00", **kwargs) -> Product:
        kwargs.setdefault("has_serial", True)
        return await self._save(Product(brand=brand, model=model, price=Decimal(price), **kwargs))

    async def unit(
        self,
        product: Product,
        serial_number: str,
        barcode: Optional[str] = None,
        status: UnitStatus = UnitStatus.AVAILABLE,
        supplier: Optional[Supplier] = None,
        price: str = "10.00",
        **kwargs,
    ) -> ProductUnit:
        return await self._save(ProductUnit(
            product_id=product.id,
            serial_number=serial_number,
            barcode=barcode,
            status=status,
            supplier_id=supplier.id if supplier else None,
            price=Decimal(price),
            **kwargs,
        ))

    async def supplier(self, name: str = "Acme Parts", is_active: bool = True) -> Supplier:
        return await self._save(Supplier(name=name, is_active=is_active))

    async def transaction(
        self,
        supplier: Supplier,
        number: str,
        total_amount: str = "0",
        type: TransactionType = TransactionType.PURCHASE,
        items: Iterable[dict] = (),
    ) -> SupplierTransaction:
        transaction = await self._save(SupplierTransaction(
            transaction_number=number,
            supplier_id=supplier.id,
            type=type,
            status=TransactionStatus.COMPLETED,
            total_amount=Decimal(total_amount),
        ))
        for item in items:
            self.session.add(SupplierTransactionItem(
                transaction_id=transaction.id,
                product_id=item["product"].id,
                quantity=item.get("quantity", 1),
                unit_cost=Decimal(item.get("unit_cost", "0")),
                total_cost=Decimal(item.get("total_cost", "0")),
                product_unit_ids=item.get("product_unit_ids", []),
            ))
        await self.session.commit()
        return transaction

    async def registry(
        self,
        barcode: str,
        entity_id: int,
        entity_type: EntityType = EntityType.PRODUCT_UNIT,
    ) -> BarcodeRegistry:
        barcode_type = BarcodeType.UNIT if entity_type == EntityType.PRODUCT_UNIT else BarcodeType.PRODUCT
        return await self._save(BarcodeRegistry(
            barcode=barcode,
            barcode_type=barcode_type,
            entity_type=entity_type,
            entity_id=entity_id,
            format=BarcodeFormat.CODE128,
        ))


@pytest.fixture
def seed(db_session) -> Seeder:
    return Seeder(db_session)

@pytest.fixture
async def client(session_maker) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client bound to the per-test database"""
    from main import app
    from backoffice.core.database import get_async_session

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_async_session] = override_get_db
    app.state.event_coordinator = EventCoordinator()
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
