import logging
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import delete, exists, or_, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.orm import selectinload

from backoffice.core.config import Settings, settings as default_settings
from backoffice.core.exceptions import BaseAppException, StoreError
from backoffice.core.logging import log_audit_event
from backoffice.models.inventory.barcode_registry import BarcodeRegistry
from backoffice.models.inventory.product import Product
from backoffice.models.inventory.product_unit import ProductUnit
from backoffice.models.purchase.supplier_transaction import SupplierTransaction
from backoffice.models.shared.enums import (
    BarcodeType,
    CoordinationEventType,
    EntityType,
    FixType,
    ModuleName,
)
from backoffice.schemas.integrity.integrity_schema import (
    BackfillResult,
    ConsistencyReport,
    FixRecord,
    RepairCount,
)
from backoffice.services.barcode.barcode_authority_service import BarcodeAuthorityService
from backoffice.services.coordination.event_coordinator import EventCoordinator
from backoffice.services.integrity.consistency_checker_service import (
    ConsistencyCheckerService,
    orphaned_registry_condition,
    orphaned_transaction_condition,
)


class RepairEngineService:
    """Idempotent fixes for the inconsistencies the checker reports.

    Each fix re-reads current state right before mutating, so running it
    again after success changes nothing. Batch fixes isolate failures per
    entity and report counts instead of aborting.
    """

    def __init__(
        self,
        db: AsyncSession,
        coordinator: Optional[EventCoordinator] = None,
        authority: Optional[BarcodeAuthorityService] = None,
        checker: Optional[ConsistencyCheckerService] = None,
        settings: Optional[Settings] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.db = db
        self.coordinator = coordinator
        self.settings = settings or default_settings
        self.logger = logger or logging.getLogger(__name__)
        self.authority = authority or BarcodeAuthorityService(db, coordinator, self.settings, self.logger)
        self.checker = checker or ConsistencyCheckerService(db, self.settings, self.logger)

    def _request_sync(self, category: FixType, affected: int):
        if affected and self.coordinator is not None:
            self.coordinator.emit(
                CoordinationEventType.SYNC_REQUESTED,
                ModuleName.INTEGRITY,
                category=category.value,
                affected=affected,
            )

    # region Barcodes

    async def backfill_missing_barcodes(self) -> BackfillResult:
        """Give every unit without a barcode its registered (or newly generated) one"""
        result = await self.db.execute(
            select(ProductUnit.id)
            .where(or_(ProductUnit.barcode.is_(None), ProductUnit.barcode == ""))
            .order_by(ProductUnit.id)
        )
        unit_ids = list(result.scalars().all())
        backfill = BackfillResult()

        for unit_id in unit_ids:
            try:
                barcode = await self.authority.get_or_generate_barcode(
                    EntityType.PRODUCT_UNIT, unit_id, BarcodeType.UNIT, source=ModuleName.INTEGRITY
                )
                unit = await self.db.get(ProductUnit, unit_id, populate_existing=True)
                if unit is None:
                    continue
                if not unit.barcode:
                    unit.barcode = barcode
                    await self.db.commit()
                backfill.updated += 1
            except (BaseAppException, SQLAlchemyError) as e:
                await self.db.rollback()
                backfill.errors += 1
                backfill.failed_unit_ids.append(unit_id)
                self.logger.error(
                    f"❌ Barcode backfill failed for unit {unit_id}: {e}",
                    extra={"event": "barcode_backfill_failed", "entity_id": unit_id},
                )

        log_audit_event(
            FixType.BARCODE_BACKFILL.value, "product_unit",
            updated=backfill.updated, errors=backfill.errors,
        )
        self._request_sync(FixType.BARCODE_BACKFILL, backfill.updated)
        return backfill

    async def register_unregistered_barcodes(self) -> RepairCount:
        """Create registry rows for valid barcodes already carried by products or units"""
        count = RepairCount()
        targets = (
            (EntityType.PRODUCT, BarcodeType.PRODUCT, Product),
            (EntityType.PRODUCT_UNIT, BarcodeType.UNIT, ProductUnit),
        )
        for entity_type, barcode_type, model in targets:
            result = await self.db.execute(
                select(model.id, model.barcode)
                .where(
                    model.barcode.is_not(None),
                    model.barcode != "",
                    ~exists().where(BarcodeRegistry.barcode == model.barcode),
                )
                .order_by(model.id)
            )
            for entity_id, barcode in result.all():
                validation = self.authority.validate_barcode(barcode)
                if not validation.is_valid:
                    count.failed += 1
                    self.logger.warning(
                        f"Skipping invalid barcode {barcode!r} on {entity_type.value} {entity_id}: {validation.errors}"
                    )
                    continue
                try:
                    # Another entity with the same legacy value may have been registered already
                    if not await self._is_unregistered(barcode):
                        count.failed += 1
                        continue
                    self.db.add(BarcodeRegistry(
                        barcode=barcode,
                        barcode_type=barcode_type,
                        entity_type=entity_type,
                        entity_id=entity_id,
                        format=validation.format,
                        generation_metadata={"registered_by": "repair"},
                    ))
                    await self.db.commit()
                    count.affected += 1
                except SQLAlchemyError as e:
                    await self.db.rollback()
                    count.failed += 1
                    self.logger.error(f"❌ Could not register {barcode} for {entity_type.value} {entity_id}: {e}")

        self._request_sync(FixType.BARCODE_REGISTRATION, count.affected)
        return count

    async def _is_unregistered(self, barcode: str) -> bool:
        result = await self.db.execute(
            select(BarcodeRegistry.id).where(BarcodeRegistry.barcode == barcode).limit(1)
        )
        return result.scalar_one_or_none() is None

    async def remove_orphaned_registry_entries(self) -> RepairCount:
        """Delete registry rows whose entity is gone; each delete re-checks existence atomically"""
        orphan_condition = or_(
            orphaned_registry_condition(EntityType.PRODUCT_UNIT, ProductUnit),
            orphaned_registry_condition(EntityType.PRODUCT, Product),
        )
        result = await self.db.execute(
            select(BarcodeRegistry.id, BarcodeRegistry.barcode)
            .where(orphan_condition)
            .order_by(BarcodeRegistry.id)
        )
        count = RepairCount()
        for entry_id, barcode in result.all():
            try:
                deleted = await self.db.execute(
                    delete(BarcodeRegistry)
                    .where(BarcodeRegistry.id == entry_id, orphan_condition)
                    .execution_options(synchronize_session=False)
                )
                await self.db.commit()
            except SQLAlchemyError as e:
                await self.db.rollback()
                count.failed += 1
                self.logger.error(f"❌ Could not remove orphaned registry entry {entry_id}: {e}")
                continue
            if deleted.rowcount:
                count.affected += 1
                log_audit_event(
                    FixType.ORPHANED_REGISTRY_CLEANUP.value, "barcode_registry", entry_id, barcode=barcode
                )

        self._request_sync(FixType.ORPHANED_REGISTRY_CLEANUP, count.affected)
        return count

    # endregion

    # region Transactions

    async def recompute_transaction_totals(self, zero_only: bool = False) -> RepairCount:
        """Set total_amount to the item sum where it drifts beyond tolerance.

        A calculated sum of zero is never written back.
        """
        query = (
            select(SupplierTransaction)
            .options(selectinload(SupplierTransaction.items))
            .order_by(SupplierTransaction.id)
            .execution_options(populate_existing=True)
        )
        if zero_only:
            query = query.where(SupplierTransaction.total_amount == 0)
        result = await self.db.execute(query)

        tolerance = Decimal(str(self.settings.TOTAL_TOLERANCE))
        pending = []
        for transaction in result.scalars().all():
            calculated = sum((Decimal(str(item.total_cost or 0)) for item in transaction.items), Decimal("0"))
            recorded = Decimal(str(transaction.total_amount or 0))
            if calculated == 0 or abs(calculated - recorded) <= tolerance:
                continue
            pending.append((transaction.id, recorded, calculated))

        count = RepairCount()
        for transaction_id, recorded, calculated in pending:
            try:
                transaction = await self.db.get(SupplierTransaction, transaction_id)
                if transaction is None:
                    continue
                transaction.total_amount = calculated
                await self.db.commit()
                count.affected += 1
                log_audit_event(
                    "total_recalculation", "supplier_transaction", transaction_id,
                    previous=str(recorded), updated=str(calculated),
                )
            except SQLAlchemyError as e:
                await self.db.rollback()
                count.failed += 1
                self.logger.error(f"❌ Could not recompute total for transaction {transaction_id}: {e}")

        self._request_sync(
            FixType.ZERO_TOTAL_RECALCULATION if zero_only else FixType.TOTAL_RECALCULATION, count.affected
        )
        return count

    async def fix_zero_total_transactions(self) -> RepairCount:
        return await self.recompute_transaction_totals(zero_only=True)

    async def cleanup_orphaned_transactions(self) -> RepairCount:
        """Delete item-less transactions in one statement so the emptiness check cannot go stale"""
        count = RepairCount()
        try:
            orphaned_ids = select(SupplierTransaction.id).where(orphaned_transaction_condition())
            await self.db.execute(
                update(ProductUnit)
                .where(ProductUnit.supplier_transaction_id.in_(orphaned_ids))
                .values(supplier_transaction_id=None)
                .execution_options(synchronize_session="fetch")
            )
            deleted = await self.db.execute(
                delete(SupplierTransaction)
                .where(orphaned_transaction_condition())
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            self.logger.error(f"❌ Orphaned transaction cleanup failed: {e}")
            raise StoreError(str(e))

        count.affected = deleted.rowcount or 0
        if count.affected:
            log_audit_event(FixType.ORPHANED_CLEANUP.value, "supplier_transaction", deleted=count.affected)
        self._request_sync(FixType.ORPHANED_CLEANUP, count.affected)
        return count

    # endregion

    async def _report_with(self, fixes: List[FixRecord]) -> ConsistencyReport:
        report = await self.checker.generate_consistency_report()
        report.fixes = fixes
        return report

    async def fix_transaction_issues(self) -> ConsistencyReport:
        """Recalculate zero totals, drop orphaned transactions, then re-check"""
        totals = await self.fix_zero_total_transactions()
        orphans = await self.cleanup_orphaned_transactions()

        fixes = [
            FixRecord(
                type=FixType.ZERO_TOTAL_RECALCULATION,
                description="Recalculated zero total amounts from transaction items",
                affected_count=totals.affected,
                failed_count=totals.failed,
            ),
            FixRecord(
                type=FixType.ORPHANED_CLEANUP,
                description="Removed transactions with no items",
                affected_count=orphans.affected,
                failed_count=orphans.failed,
                destructive=True,
            ),
        ]
        self.logger.info(
            f"🔧 Transaction fixes applied: {totals.affected} totals, {orphans.affected} orphans removed",
            extra={"event": "fix_transaction_issues"},
        )
        return await self._report_with(fixes)

    async def run_full_repair(self) -> ConsistencyReport:
        """Barcodes, then orphaned registry rows, then totals, then orphaned transactions"""
        backfill = await self.backfill_missing_barcodes()
        registered = await self.register_unregistered_barcodes()
        registry = await self.remove_orphaned_registry_entries()
        totals = await self.recompute_transaction_totals()
        orphans = await self.cleanup_orphaned_transactions()

        fixes = [
            FixRecord(
                type=FixType.BARCODE_BACKFILL,
                description="Assigned barcodes to units without one",
                affected_count=backfill.updated,
                failed_count=backfill.errors,
            ),
            FixRecord(
                type=FixType.BARCODE_REGISTRATION,
                description="Registered existing barcodes missing from the registry",
                affected_count=registered.affected,
                failed_count=registered.failed,
            ),
            FixRecord(
                type=FixType.ORPHANED_REGISTRY_CLEANUP,
                description="Removed registry entries pointing at missing entities",
                affected_count=registry.affected,
                failed_count=registry.failed,
                destructive=True,
            ),
            FixRecord(
                type=FixType.TOTAL_RECALCULATION,
                description="Recalculated transaction totals from items",
                affected_count=totals.affected,
                failed_count=totals.failed,
            ),
            FixRecord(
                type=FixType.ORPHANED_CLEANUP,
                description="Removed transactions with no items",
                affected_count=orphans.affected,
                failed_count=orphans.failed,
                destructive=True,
            ),
        ]
        self.logger.info("🔧 Full repair completed", extra={"event": "run_full_repair"})
        return await self._report_with(fixes)
