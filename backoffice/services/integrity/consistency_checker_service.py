import logging
from decimal import Decimal
from typing import Awaitable, Callable, Dict, Iterable, List, Optional

from sqlalchemy import and_, exists, func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.orm import selectinload

from backoffice.core.config import Settings, settings as default_settings
from backoffice.core.exceptions import StoreError
from backoffice.models.inventory.barcode_registry import BarcodeRegistry
from backoffice.models.inventory.product import Product
from backoffice.models.inventory.product_unit import ProductUnit
from backoffice.models.purchase.supplier_transaction import SupplierTransaction
from backoffice.models.purchase.supplier_transaction_item import SupplierTransactionItem
from backoffice.models.shared.enums import (
    ACTIVE_UNIT_STATUSES,
    EntityType,
    IntegrityCheck,
    IssueSeverity,
    TransactionType,
)
from backoffice.schemas.integrity.integrity_schema import (
    ConsistencyReport,
    IntegrityIssue,
    IntegrityReport,
)

# Payments never carry items, so they are not candidates for orphan detection
ITEM_BEARING_TRANSACTION_TYPES = (TransactionType.PURCHASE, TransactionType.RETURN, TransactionType.RECOVERY)

TRANSACTION_CHECKS = (
    IntegrityCheck.ZERO_TOTAL_TRANSACTION,
    IntegrityCheck.ORPHANED_TRANSACTION,
    IntegrityCheck.UNIT_COUNT_MISMATCH,
    IntegrityCheck.TOTAL_MISMATCH,
)


def unit_ids_of(item: SupplierTransactionItem) -> List[int]:
    return list(item.product_unit_ids or [])


def orphaned_registry_condition(entity_type: EntityType, model):
    """Registry rows of ``entity_type`` whose target row no longer exists"""
    return and_(
        BarcodeRegistry.entity_type == entity_type,
        ~exists().where(model.id == BarcodeRegistry.entity_id),
    )


def orphaned_transaction_condition():
    return and_(
        SupplierTransaction.type.in_(ITEM_BEARING_TRANSACTION_TYPES),
        ~exists().where(SupplierTransactionItem.transaction_id == SupplierTransaction.id),
    )


class ConsistencyCheckerService:
    """Read-only detection of barcode and supplier-transaction inconsistencies.

    Checks never write or commit. Issues come back ordered by entity id so
    two runs over unchanged data produce identical reports.
    """

    def __init__(
        self,
        db: AsyncSession,
        settings: Optional[Settings] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.db = db
        self.settings = settings or default_settings
        self.logger = logger or logging.getLogger(__name__)

    # region Barcode checks

    async def check_missing_barcodes(self) -> List[IntegrityIssue]:
        result = await self.db.execute(
            select(ProductUnit)
            .where(or_(ProductUnit.barcode.is_(None), ProductUnit.barcode == ""))
            .order_by(ProductUnit.id)
        )
        issues = []
        for unit in result.scalars().all():
            severity = IssueSeverity.ERROR if unit.status in ACTIVE_UNIT_STATUSES else IssueSeverity.WARNING
            issues.append(IntegrityIssue(
                type=severity,
                check=IntegrityCheck.MISSING_BARCODE,
                message=f"Unit {unit.serial_number} ({unit.status.value}) has no barcode",
                entity_id=unit.id,
                data={"product_id": unit.product_id, "status": unit.status.value},
            ))
        return issues

    async def check_orphaned_registry_entries(self) -> List[IntegrityIssue]:
        result = await self.db.execute(
            select(BarcodeRegistry)
            .where(or_(
                orphaned_registry_condition(EntityType.PRODUCT_UNIT, ProductUnit),
                orphaned_registry_condition(EntityType.PRODUCT, Product),
            ))
            .order_by(BarcodeRegistry.id)
        )
        return [
            IntegrityIssue(
                type=IssueSeverity.ERROR,
                check=IntegrityCheck.ORPHANED_REGISTRY_ENTRY,
                message=f"Barcode {entry.barcode} points at missing {entry.entity_type.value} {entry.entity_id}",
                entity_id=entry.id,
                data={"barcode": entry.barcode, "entity_type": entry.entity_type.value, "target_id": entry.entity_id},
            )
            for entry in result.scalars().all()
        ]

    async def check_duplicate_barcodes(self) -> List[IntegrityIssue]:
        result = await self.db.execute(
            select(BarcodeRegistry.barcode, func.count(BarcodeRegistry.id))
            .group_by(BarcodeRegistry.barcode)
            .having(func.count(BarcodeRegistry.id) > 1)
            .order_by(BarcodeRegistry.barcode)
        )
        return [
            IntegrityIssue(
                type=IssueSeverity.ERROR,
                check=IntegrityCheck.DUPLICATE_BARCODE,
                message=f"Barcode {barcode} is registered {count} times",
                data={"barcode": barcode, "count": count},
            )
            for barcode, count in result.all()
        ]

    async def check_unregistered_barcodes(self) -> List[IntegrityIssue]:
        issues = []
        for entity_type, model in ((EntityType.PRODUCT, Product), (EntityType.PRODUCT_UNIT, ProductUnit)):
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
                issues.append(IntegrityIssue(
                    type=IssueSeverity.WARNING,
                    check=IntegrityCheck.UNREGISTERED_BARCODE,
                    message=f"{entity_type.value} {entity_id} carries unregistered barcode {barcode}",
                    entity_id=entity_id,
                    data={"barcode": barcode, "entity_type": entity_type.value},
                ))
        return issues

    # endregion

    # region Transaction checks

    async def check_zero_total_transactions(self) -> List[IntegrityIssue]:
        result = await self.db.execute(
            select(SupplierTransaction)
            .options(selectinload(SupplierTransaction.items))
            .where(SupplierTransaction.total_amount == 0)
            .order_by(SupplierTransaction.id)
            .execution_options(populate_existing=True)
        )
        issues = []
        for transaction in result.scalars().all():
            unit_count = sum(len(unit_ids_of(item)) for item in transaction.items)
            if unit_count == 0:
                continue
            issues.append(IntegrityIssue(
                type=IssueSeverity.ERROR,
                check=IntegrityCheck.ZERO_TOTAL_TRANSACTION,
                message=f"Transaction {transaction.transaction_number} has zero total but {unit_count} units",
                transaction_id=transaction.id,
                data={"unit_count": unit_count},
            ))
        return issues

    async def check_orphaned_transactions(self) -> List[IntegrityIssue]:
        result = await self.db.execute(
            select(SupplierTransaction)
            .where(orphaned_transaction_condition())
            .order_by(SupplierTransaction.id)
        )
        return [
            IntegrityIssue(
                type=IssueSeverity.WARNING,
                check=IntegrityCheck.ORPHANED_TRANSACTION,
                message=f"Transaction {transaction.transaction_number} has no items",
                transaction_id=transaction.id,
                data={"total_amount": str(transaction.total_amount)},
            )
            for transaction in result.scalars().all()
        ]

    async def check_unit_count_mismatches(self) -> List[IntegrityIssue]:
        result = await self.db.execute(
            select(SupplierTransactionItem, Product)
            .join(Product, Product.id == SupplierTransactionItem.product_id)
            .where(Product.has_serial.is_(True))
            .order_by(SupplierTransactionItem.id)
        )
        issues = []
        for item, product in result.all():
            unit_count = len(unit_ids_of(item))
            if unit_count == item.quantity:
                continue
            issues.append(IntegrityIssue(
                type=IssueSeverity.ERROR if unit_count == 0 else IssueSeverity.WARNING,
                check=IntegrityCheck.UNIT_COUNT_MISMATCH,
                message=(
                    f"Item for {product.brand} {product.model} has {unit_count} units "
                    f"but quantity {item.quantity}"
                ),
                transaction_id=item.transaction_id,
                entity_id=item.id,
                data={"expected": item.quantity, "actual": unit_count, "product_id": product.id},
            ))
        return issues

    async def check_total_mismatches(self) -> List[IntegrityIssue]:
        result = await self.db.execute(
            select(
                SupplierTransaction.id,
                SupplierTransaction.transaction_number,
                SupplierTransaction.total_amount,
                func.sum(SupplierTransactionItem.total_cost),
            )
            .join(SupplierTransactionItem, SupplierTransactionItem.transaction_id == SupplierTransaction.id)
            .group_by(SupplierTransaction.id, SupplierTransaction.transaction_number, SupplierTransaction.total_amount)
            .order_by(SupplierTransaction.id)
        )
        tolerance = Decimal(str(self.settings.TOTAL_TOLERANCE))
        issues = []
        for transaction_id, number, total_amount, calculated in result.all():
            recorded = Decimal(str(total_amount or 0))
            calculated = Decimal(str(calculated or 0))
            if abs(calculated - recorded) <= tolerance:
                continue
            issues.append(IntegrityIssue(
                type=IssueSeverity.ERROR,
                check=IntegrityCheck.TOTAL_MISMATCH,
                message=f"Transaction {number} total {recorded} does not match item sum {calculated}",
                transaction_id=transaction_id,
                data={"recorded": str(recorded), "calculated": str(calculated)},
            ))
        return issues

    # endregion

    def _check_registry(self) -> Dict[IntegrityCheck, Callable[[], Awaitable[List[IntegrityIssue]]]]:
        return {
            IntegrityCheck.MISSING_BARCODE: self.check_missing_barcodes,
            IntegrityCheck.ORPHANED_REGISTRY_ENTRY: self.check_orphaned_registry_entries,
            IntegrityCheck.DUPLICATE_BARCODE: self.check_duplicate_barcodes,
            IntegrityCheck.ZERO_TOTAL_TRANSACTION: self.check_zero_total_transactions,
            IntegrityCheck.ORPHANED_TRANSACTION: self.check_orphaned_transactions,
            IntegrityCheck.UNIT_COUNT_MISMATCH: self.check_unit_count_mismatches,
            IntegrityCheck.TOTAL_MISMATCH: self.check_total_mismatches,
            IntegrityCheck.UNREGISTERED_BARCODE: self.check_unregistered_barcodes,
        }

    async def run_integrity_check(self, checks: Optional[Iterable[IntegrityCheck]] = None) -> IntegrityReport:
        """Run the selected checks (all by default) and collect their issues in check order"""
        registry = self._check_registry()
        selected = [IntegrityCheck(c) for c in checks] if checks else list(registry)

        issues: List[IntegrityIssue] = []
        try:
            for check in selected:
                issues.extend(await registry[check]())
        except SQLAlchemyError as e:
            self.logger.error(f"❌ Integrity check failed: {e}")
            raise StoreError(str(e))

        summary: Dict[str, int] = {}
        for issue in issues:
            summary[issue.check.value] = summary.get(issue.check.value, 0) + 1

        report = IntegrityReport(
            valid=not any(issue.type == IssueSeverity.ERROR for issue in issues),
            issues=issues,
            summary=summary,
        )
        self.logger.info(
            f"Integrity check finished: {len(report.errors)} errors, {len(report.warnings)} warnings",
            extra={"event": "integrity_check", "errors": len(report.errors), "warnings": len(report.warnings)},
        )
        return report

    async def generate_consistency_report(self) -> ConsistencyReport:
        """Transaction consistency counts without making changes"""
        try:
            total = await self.db.execute(select(func.count(SupplierTransaction.id)))
            zero_total = await self.db.execute(
                select(func.count(SupplierTransaction.id)).where(SupplierTransaction.total_amount == 0)
            )
            orphaned = await self.db.execute(
                select(func.count(SupplierTransaction.id)).where(orphaned_transaction_condition())
            )
            total_transactions = total.scalar_one()
            zero_total_transactions = zero_total.scalar_one()
            orphaned_transactions = orphaned.scalar_one()
        except SQLAlchemyError as e:
            raise StoreError(str(e))

        check = await self.run_integrity_check(TRANSACTION_CHECKS)
        failing = {i.transaction_id for i in check.errors if i.transaction_id is not None}
        missing_units = {
            i.transaction_id for i in check.by_check(IntegrityCheck.UNIT_COUNT_MISMATCH)
        }

        return ConsistencyReport(
            total_transactions=total_transactions,
            valid_transactions=max(total_transactions - len(failing), 0),
            orphaned_transactions=orphaned_transactions,
            zero_total_transactions=zero_total_transactions,
            missing_units_transactions=len(missing_units),
            fixes=[],
        )
