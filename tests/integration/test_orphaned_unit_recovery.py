from datetime import datetime, timedelta, timezone
from decimal import Decimal
import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.future import select
from sqlalchemy.orm import selectinload
from backoffice.core.exceptions import NotFoundError, StoreError, ValidationError
from backoffice.models import SupplierTransaction
from backoffice.models.shared.enums import (
    CoordinationEventType,
    ModuleName,
    OrphanType,
    TransactionStatus,
    TransactionType,
)
from backoffice.schemas.purchase.recovery_schema import (
    RecoveryDraft,
    RecoveryDraftItem,
    RecoveryTransactionCreate,
)
from backoffice.services.purchase.orphaned_unit_recovery_service import OrphanedUnitRecoveryService

@pytest.fixture
def recovery(db_session, coordinator, test_settings):
    return OrphanedUnitRecoveryService(db_session, coordinator, test_settings)

async def load_transaction(session, transaction_id):
    result = await session.execute(
        select(SupplierTransaction)
        .options(selectinload(SupplierTransaction.items))
        .where(SupplierTransaction.id == transaction_id)
    )
    return result.scalar_one()

@pytest.mark.asyncio
class TestFindOrphanedUnits:
    async def test_units_without_supplier(self, recovery, seed):
        product = await seed.product()
        units = [await seed.unit(product, f"SN-{i}") for i in range(3)]

        orphans = await recovery.find_orphaned_units()

        assert [o.id for o in orphans] == [u.id for u in units]
        assert all(o.orphan_type == OrphanType.NO_SUPPLIER for o in orphans)
        assert orphans[0].product_brand == "Widget"

    async def test_supplier_without_transaction(self, recovery, seed):
        supplier = await seed.supplier()
        product = await seed.product()
        loose = await seed.unit(product, "SN-1", supplier=supplier)
        listed = await seed.unit(product, "SN-2", supplier=supplier)
        await seed.transaction(supplier, "PO-1", "10", items=[
            {"product": product, "quantity": 1, "total_cost": "10", "product_unit_ids": [listed.id]},
        ])

        orphans = await recovery.find_orphaned_units()

        assert [(o.id, o.orphan_type) for o in orphans] == [(loose.id, OrphanType.NO_TRANSACTION)]
        assert orphans[0].supplier_name == "Acme Parts"

    async def test_lookback_window(self, recovery, seed):
        product = await seed.product()
        await seed.unit(product, "SN-1")

        assert await recovery.find_orphaned_units(since=datetime.now(timezone.utc) + timedelta(days=1)) == []

@pytest.mark.asyncio
class TestRecoveryTransaction:
    async def test_five_units_at_ten(self, recovery, seed, db_session):
        supplier = await seed.supplier()
        product = await seed.product()
        units = [await seed.unit(product, f"SN-{i}") for i in range(5)]
        assert len(await recovery.find_orphaned_units()) == 5

        result = await recovery.create_recovery_transaction(RecoveryTransactionCreate(
            supplier_id=supplier.id,
            unit_ids=[u.id for u in units],
            estimated_purchase_price=Decimal("10.00"),
        ))

        assert result.success
        assert result.errors == []
        assert result.total_amount == Decimal("50.00")
        assert result.linked_unit_ids == [u.id for u in units]
        assert result.transaction_number.startswith("REC-")

        transaction = await load_transaction(db_session, result.transaction_id)
        assert transaction.type == TransactionType.RECOVERY
        assert transaction.status == TransactionStatus.COMPLETED
        assert transaction.total_amount == Decimal("50.00")
        assert len(transaction.items) == 1
        assert transaction.items[0].quantity == len(transaction.items[0].product_unit_ids) == 5

        for unit in units:
            assert unit.supplier_id == supplier.id
            assert unit.supplier_transaction_id == transaction.id
            assert unit.purchase_price == Decimal("10.00")
        assert await recovery.find_orphaned_units() == []

    async def test_one_item_per_product(self, recovery, seed, db_session):
        supplier = await seed.supplier()
        phone = await seed.product()
        tablet = await seed.product("Widget", "Tablet")
        units = [
            await seed.unit(phone, "P-1"),
            await seed.unit(tablet, "T-1"),
            await seed.unit(phone, "P-2"),
        ]

        result = await recovery.create_recovery_transaction({
            "supplier_id": supplier.id,
            "unit_ids": [u.id for u in units],
            "estimated_purchase_price": "25.00",
        })

        transaction = await load_transaction(db_session, result.transaction_id)
        by_product = {item.product_id: item for item in transaction.items}
        assert by_product[phone.id].product_unit_ids == [units[0].id, units[2].id]
        assert by_product[phone.id].total_cost == Decimal("50.00")
        assert by_product[tablet.id].quantity == 1
        assert transaction.total_amount == Decimal("75.00")

    async def test_per_unit_errors_are_reported(self, recovery, seed):
        supplier = await seed.supplier()
        product = await seed.product()
        orphan = await seed.unit(product, "SN-1")
        linked = await seed.unit(product, "SN-2", supplier=supplier)
        await seed.transaction(supplier, "PO-1", "10", items=[
            {"product": product, "quantity": 1, "total_cost": "10", "product_unit_ids": [linked.id]},
        ])

        result = await recovery.create_recovery_transaction(RecoveryTransactionCreate(
            supplier_id=supplier.id,
            unit_ids=[orphan.id, 9999, linked.id],
            estimated_purchase_price=Decimal("10.00"),
        ))

        assert not result.success
        assert result.linked_unit_ids == [orphan.id]
        assert [e.unit_id for e in result.errors] == [9999, linked.id]
        assert result.total_amount == Decimal("10.00")

    async def test_no_linkable_units_creates_nothing(self, recovery, seed, db_session):
        supplier = await seed.supplier()

        result = await recovery.create_recovery_transaction(RecoveryTransactionCreate(
            supplier_id=supplier.id, unit_ids=[9999], estimated_purchase_price=Decimal("1"),
        ))

        assert not result.success
        assert result.transaction_id is None
        transactions = await db_session.execute(select(SupplierTransaction.id))
        assert transactions.scalars().all() == []

    async def test_invalid_request_rejected_before_writes(self, recovery, seed, db_session):
        supplier = await seed.supplier()

        with pytest.raises(ValidationError):
            await recovery.create_recovery_transaction({"supplier_id": supplier.id, "unit_ids": []})
        with pytest.raises(ValidationError):
            await recovery.create_recovery_transaction(
                {"supplier_id": supplier.id, "unit_ids": [1], "estimated_purchase_price": "-5"}
            )

        transactions = await db_session.execute(select(SupplierTransaction.id))
        assert transactions.scalars().all() == []

    async def test_missing_or_inactive_supplier(self, recovery, seed):
        product = await seed.product()
        unit = await seed.unit(product, "SN-1")
        inactive = await seed.supplier("Closed Ltd", is_active=False)

        with pytest.raises(NotFoundError):
            await recovery.create_recovery_transaction({"supplier_id": 9999, "unit_ids": [unit.id]})
        with pytest.raises(ValidationError):
            await recovery.create_recovery_transaction({"supplier_id": inactive.id, "unit_ids": [unit.id]})

    async def test_store_failure_while_loading_is_wrapped(self, recovery, seed, db_session, monkeypatch):
        supplier = await seed.supplier()
        product = await seed.product()
        unit = await seed.unit(product, "SN-1")

        async def unavailable():
            raise OperationalError("SELECT supplier_transaction_items", {}, Exception("database is locked"))

        monkeypatch.setattr(recovery, "_referenced_unit_ids", unavailable)

        with pytest.raises(StoreError):
            await recovery.create_recovery_transaction({"supplier_id": supplier.id, "unit_ids": [unit.id]})
        transactions = await db_session.execute(select(SupplierTransaction.id))
        assert transactions.scalars().all() == []

    async def test_events_for_linked_units(self, recovery, seed, events):
        supplier = await seed.supplier()
        product = await seed.product()
        units = [await seed.unit(product, f"SN-{i}") for i in range(2)]

        await recovery.create_recovery_transaction(RecoveryTransactionCreate(
            supplier_id=supplier.id, unit_ids=[u.id for u in units], estimated_purchase_price=Decimal("5"),
        ))

        assert [(e.type, e.entity_id) for e in events[:2]] == [
            (CoordinationEventType.UNIT_UPDATED, units[0].id),
            (CoordinationEventType.UNIT_UPDATED, units[1].id),
        ]
        assert events[-1].type == CoordinationEventType.SYNC_REQUESTED
        assert all(e.source == ModuleName.SUPPLIERS for e in events)

class TestSuggestedRecovery:
    def test_average_price_from_draft(self, test_settings):
        service = OrphanedUnitRecoveryService(None, settings=test_settings)
        draft = RecoveryDraft(
            supplier_id=3,
            notes="Half-finished intake",
            items=[
                RecoveryDraftItem(unit_prices=[Decimal("100"), Decimal("200")]),
                RecoveryDraftItem(quantity=2, unit_cost=Decimal("50")),
            ],
        )

        suggestion = service.get_suggested_recovery(draft)

        assert suggestion.supplier_id == 3
        assert suggestion.estimated_purchase_price == Decimal("100.00")
        assert suggestion.notes == "Recovery from draft: Half-finished intake"

    def test_draft_without_supplier(self, test_settings):
        service = OrphanedUnitRecoveryService(None, settings=test_settings)
        suggestion = service.get_suggested_recovery(RecoveryDraft(items=[]))
        assert suggestion.supplier_id is None
        assert suggestion.estimated_purchase_price is None
