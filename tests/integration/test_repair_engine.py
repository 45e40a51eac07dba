import logging
from decimal import Decimal
import pytest
from sqlalchemy.future import select
from backoffice.models import BarcodeRegistry, SupplierTransaction
from backoffice.models.shared.enums import (
    CoordinationEventType,
    EntityType,
    FixType,
    IntegrityCheck,
    ModuleName,
    TransactionType,
)
from backoffice.services.integrity.consistency_checker_service import ConsistencyCheckerService
from backoffice.services.integrity.repair_engine_service import RepairEngineService

@pytest.fixture
def repair(db_session, coordinator, authority, test_settings):
    return RepairEngineService(db_session, coordinator, authority=authority, settings=test_settings)

@pytest.fixture
def checker(db_session, test_settings):
    return ConsistencyCheckerService(db_session, test_settings)

async def all_registry(session):
    result = await session.execute(select(BarcodeRegistry).order_by(BarcodeRegistry.id))
    return list(result.scalars().all())

@pytest.mark.asyncio
class TestBarcodeBackfill:
    async def test_widget_phone_units_get_barcodes(self, repair, checker, seed, db_session):
        product = await seed.product("Widget", "Phone")
        first = await seed.unit(product, "WP-001")
        second = await seed.unit(product, "WP-002")

        result = await repair.backfill_missing_barcodes()

        assert result.updated == 2
        assert result.errors == 0
        rows = await all_registry(db_session)
        assert [(r.entity_type, r.entity_id) for r in rows] == [
            (EntityType.PRODUCT_UNIT, first.id),
            (EntityType.PRODUCT_UNIT, second.id),
        ]
        assert await checker.check_missing_barcodes() == []

    async def test_backfill_is_idempotent(self, repair, seed, db_session):
        product = await seed.product()
        await seed.unit(product, "SN-001")
        await seed.unit(product, "SN-002")

        await repair.backfill_missing_barcodes()
        second = await repair.backfill_missing_barcodes()

        assert second.updated == 0
        assert len(await all_registry(db_session)) == 2

    async def test_backfill_reuses_registered_barcode(self, repair, seed, db_session):
        product = await seed.product()
        unit = await seed.unit(product, "SN-001")
        await seed.registry("GPMSU000500", unit.id)

        result = await repair.backfill_missing_barcodes()

        assert result.updated == 1
        assert unit.barcode == "GPMSU000500"
        assert len(await all_registry(db_session)) == 1

    async def test_failed_unit_does_not_abort_batch(self, repair, seed, caplog):
        product = await seed.product()
        first_id = (await seed.unit(product, "SN-001")).id
        second = await seed.unit(product, "SN-002")
        for value in ("GPMSU001001", "GPMSU001002", "GPMSU001003"):
            await seed.registry(value, 999)

        with caplog.at_level(logging.ERROR):
            result = await repair.backfill_missing_barcodes()

        assert result.updated == 1
        assert result.errors == 1
        assert result.failed_unit_ids == [first_id]
        assert second.barcode == "GPMSU001004"
        assert any(getattr(r, "event", None) == "barcode_backfill_failed" for r in caplog.records)

    async def test_backfill_requests_sync(self, repair, seed, events):
        product = await seed.product()
        await seed.unit(product, "SN-001")

        await repair.backfill_missing_barcodes()

        sync = [e for e in events if e.type == CoordinationEventType.SYNC_REQUESTED]
        assert len(sync) == 1
        assert sync[0].source == ModuleName.INTEGRITY
        assert sync[0].metadata["category"] == FixType.BARCODE_BACKFILL.value

@pytest.mark.asyncio
class TestRegistryRepairs:
    async def test_remove_orphaned_registry_entries(self, repair, seed, db_session, caplog):
        product = await seed.product()
        unit = await seed.unit(product, "SN-001", barcode="GPMSU000001")
        kept = await seed.registry("GPMSU000001", unit.id)
        await seed.registry("GPMSU000002", 999)
        await seed.registry("GPMSP000003", 999, EntityType.PRODUCT)

        with caplog.at_level(logging.INFO, logger="backoffice.audit"):
            result = await repair.remove_orphaned_registry_entries()

        assert result.affected == 2
        assert [r.id for r in await all_registry(db_session)] == [kept.id]
        audit = [r for r in caplog.records if r.name == "backoffice.audit"]
        assert len(audit) == 2
        assert (await repair.remove_orphaned_registry_entries()).affected == 0

    async def test_register_unregistered_barcodes(self, repair, seed, db_session):
        product = await seed.product(barcode="4006381333931")
        await seed.unit(product, "SN-001", barcode="GPMSU000777")
        await seed.unit(product, "SN-002", barcode="legacy-77")

        result = await repair.register_unregistered_barcodes()

        assert result.affected == 2
        assert result.failed == 1
        rows = await all_registry(db_session)
        assert {(r.barcode, r.format.value) for r in rows} == {
            ("4006381333931", "GTIN13"),
            ("GPMSU000777", "CODE128"),
        }
        assert (await repair.register_unregistered_barcodes()).affected == 0

@pytest.mark.asyncio
class TestTransactionRepairs:
    async def test_zero_total_recalculated_from_items(self, repair, seed, db_session):
        supplier = await seed.supplier()
        product = await seed.product()
        first = await seed.unit(product, "SN-001", barcode="GPMSU000001")
        second = await seed.unit(product, "SN-002", barcode="GPMSU000002")
        transaction = await seed.transaction(supplier, "PO-1", "0", items=[
            {"product": product, "quantity": 1, "total_cost": "100.00", "product_unit_ids": [first.id]},
            {"product": product, "quantity": 1, "total_cost": "50.00", "product_unit_ids": [second.id]},
        ])

        result = await repair.fix_zero_total_transactions()

        assert result.affected == 1
        refreshed = await db_session.get(SupplierTransaction, transaction.id)
        assert refreshed.total_amount == Decimal("150.00")
        assert (await repair.fix_zero_total_transactions()).affected == 0

    async def test_zero_calculated_total_is_skipped(self, repair, seed):
        supplier = await seed.supplier()
        product = await seed.product(has_serial=False)
        await seed.transaction(supplier, "PO-1", "0", items=[{"product": product, "total_cost": "0"}])

        assert (await repair.fix_zero_total_transactions()).affected == 0

    async def test_recompute_fixes_drifted_totals(self, repair, seed, db_session):
        supplier = await seed.supplier()
        product = await seed.product(has_serial=False)
        drifted = await seed.transaction(supplier, "PO-1", "100.00", items=[
            {"product": product, "total_cost": "150.00"},
        ])

        assert (await repair.recompute_transaction_totals(zero_only=True)).affected == 0
        assert (await repair.recompute_transaction_totals()).affected == 1
        refreshed = await db_session.get(SupplierTransaction, drifted.id)
        assert refreshed.total_amount == Decimal("150.00")

    async def test_itemless_transaction_is_deleted(self, repair, seed, db_session):
        supplier = await seed.supplier()
        orphan = await seed.transaction(supplier, "PO-1", "75")
        payment = await seed.transaction(supplier, "PAY-1", "75", type=TransactionType.PAYMENT)

        result = await repair.cleanup_orphaned_transactions()

        assert result.affected == 1
        remaining = await db_session.execute(select(SupplierTransaction.id))
        assert list(remaining.scalars().all()) == [payment.id]
        assert orphan.id != payment.id
        assert (await repair.cleanup_orphaned_transactions()).affected == 0

    async def test_fix_transaction_issues_report(self, repair, seed):
        supplier = await seed.supplier()
        product = await seed.product()
        unit = await seed.unit(product, "SN-001", barcode="GPMSU000001")
        await seed.transaction(supplier, "PO-1", "0", items=[
            {"product": product, "quantity": 1, "total_cost": "150", "product_unit_ids": [unit.id]},
        ])
        await seed.transaction(supplier, "PO-2", "20")

        report = await repair.fix_transaction_issues()

        assert [(f.type, f.affected_count, f.destructive) for f in report.fixes] == [
            (FixType.ZERO_TOTAL_RECALCULATION, 1, False),
            (FixType.ORPHANED_CLEANUP, 1, True),
        ]
        assert report.total_transactions == 1
        assert report.valid_transactions == 1
        assert report.zero_total_transactions == 0
        assert report.orphaned_transactions == 0

@pytest.mark.asyncio
class TestFullRepair:
    async def test_full_repair_converges(self, repair, checker, seed, events):
        supplier = await seed.supplier()
        product = await seed.product()
        unit = await seed.unit(product, "SN-001")
        await seed.unit(product, "SN-002", barcode="GPMSU000900")
        await seed.registry("GPMSU000002", 999)
        await seed.transaction(supplier, "PO-1", "0", items=[
            {"product": product, "quantity": 1, "total_cost": "150", "product_unit_ids": [unit.id]},
        ])
        await seed.transaction(supplier, "PO-2", "10")

        report = await repair.run_full_repair()

        fixes = {f.type: f.affected_count for f in report.fixes}
        assert fixes == {
            FixType.BARCODE_BACKFILL: 1,
            FixType.BARCODE_REGISTRATION: 1,
            FixType.ORPHANED_REGISTRY_CLEANUP: 1,
            FixType.TOTAL_RECALCULATION: 1,
            FixType.ORPHANED_CLEANUP: 1,
        }
        after = await checker.run_integrity_check()
        assert after.valid
        assert after.issues == []
        sync_categories = [
            e.metadata["category"] for e in events if e.type == CoordinationEventType.SYNC_REQUESTED
        ]
        assert sync_categories == [f.value for f in fixes]

        again = await repair.run_full_repair()
        assert all(f.affected_count == 0 for f in again.fixes)
        assert (await checker.run_integrity_check([IntegrityCheck.MISSING_BARCODE])).issues == []
