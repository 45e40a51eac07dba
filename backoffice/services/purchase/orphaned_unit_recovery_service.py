import logging
import uuid
from collections import OrderedDict
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Set, Union

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from backoffice.core.config import Settings, settings as default_settings
from backoffice.core.exceptions import NotFoundError, StoreError, ValidationError
from backoffice.core.logging import log_audit_event
from backoffice.models.inventory.product import Product
from backoffice.models.inventory.product_unit import ProductUnit
from backoffice.models.purchase.supplier import Supplier
from backoffice.models.purchase.supplier_transaction import SupplierTransaction
from backoffice.models.purchase.supplier_transaction_item import SupplierTransactionItem
from backoffice.models.shared.enums import (
    CoordinationEventType,
    ModuleName,
    OrphanType,
    TransactionStatus,
    TransactionType,
)
from backoffice.schemas.purchase.recovery_schema import (
    OrphanedUnit,
    RecoveryDraft,
    RecoveryResult,
    RecoveryTransactionCreate,
    SuggestedRecovery,
    UnitRecoveryError,
)
from backoffice.services.coordination.event_coordinator import EventCoordinator


class OrphanedUnitRecoveryService:
    """Finds units that entered stock without a supplier transaction and links them to a recovery one"""

    def __init__(
        self,
        db: AsyncSession,
        coordinator: Optional[EventCoordinator] = None,
        settings: Optional[Settings] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.db = db
        self.coordinator = coordinator
        self.settings = settings or default_settings
        self.logger = logger or logging.getLogger(__name__)

    async def _referenced_unit_ids(self) -> Set[int]:
        """Unit ids listed by any supplier transaction item"""
        result = await self.db.execute(select(SupplierTransactionItem.product_unit_ids))
        referenced: Set[int] = set()
        for unit_ids in result.scalars().all():
            referenced.update(int(unit_id) for unit_id in (unit_ids or []))
        return referenced

    async def find_orphaned_units(self, since: Optional[datetime] = None) -> List[OrphanedUnit]:
        if since is None:
            since = datetime.now(timezone.utc) - timedelta(days=self.settings.ORPHAN_LOOKBACK_DAYS)

        try:
            result = await self.db.execute(
                select(ProductUnit, Product, Supplier)
                .join(Product, Product.id == ProductUnit.product_id)
                .outerjoin(Supplier, Supplier.id == ProductUnit.supplier_id)
                .where(ProductUnit.created_at >= since)
                .order_by(ProductUnit.id)
            )
            rows = result.all()
            referenced = await self._referenced_unit_ids()
        except SQLAlchemyError as e:
            raise StoreError(str(e))

        orphans = []
        for unit, product, supplier in rows:
            if unit.supplier_id is None:
                orphan_type = OrphanType.NO_SUPPLIER
            elif unit.supplier_transaction_id is None and unit.id not in referenced:
                orphan_type = OrphanType.NO_TRANSACTION
            else:
                continue
            orphans.append(OrphanedUnit(
                id=unit.id,
                product_id=unit.product_id,
                serial_number=unit.serial_number,
                price=unit.price or Decimal("0"),
                purchase_price=unit.purchase_price,
                supplier_id=unit.supplier_id,
                supplier_name=supplier.name if supplier else None,
                created_at=unit.created_at,
                product_brand=product.brand,
                product_model=product.model,
                orphan_type=orphan_type,
            ))

        self.logger.info(f"Found {len(orphans)} orphaned units since {since:%Y-%m-%d}")
        return orphans

    async def create_recovery_transaction(
        self, data: Union[RecoveryTransactionCreate, Dict[str, Any]]
    ) -> RecoveryResult:
        """Create one completed recovery transaction covering the linkable units.

        Units that are missing or already tied to a transaction are reported in
        ``errors`` and left untouched; the rest are linked.
        """
        if not isinstance(data, RecoveryTransactionCreate):
            try:
                data = RecoveryTransactionCreate(**data)
            except PydanticValidationError as e:
                raise ValidationError(f"Invalid recovery request: {e}")

        requested = list(OrderedDict.fromkeys(data.unit_ids))
        try:
            supplier = await self.db.get(Supplier, data.supplier_id)
            if supplier is None:
                raise NotFoundError(f"Supplier {data.supplier_id} not found")
            if not supplier.is_active:
                raise ValidationError(f"Supplier {supplier.name} is inactive")

            result = await self.db.execute(select(ProductUnit).where(ProductUnit.id.in_(requested)))
            units = {unit.id: unit for unit in result.scalars().all()}
            referenced = await self._referenced_unit_ids()
        except SQLAlchemyError as e:
            await self.db.rollback()
            self.logger.error(f"❌ Loading recovery data failed for supplier {data.supplier_id}: {e}")
            raise StoreError(str(e))

        errors: List[UnitRecoveryError] = []
        linkable: List[ProductUnit] = []
        for unit_id in requested:
            unit = units.get(unit_id)
            if unit is None:
                errors.append(UnitRecoveryError(unit_id=unit_id, reason="Unit not found"))
            elif unit.supplier_transaction_id is not None or unit_id in referenced:
                errors.append(UnitRecoveryError(unit_id=unit_id, reason="Unit already linked to a supplier transaction"))
            else:
                linkable.append(unit)

        if not linkable:
            self.logger.warning(f"Recovery for supplier {data.supplier_id} had no linkable units")
            return RecoveryResult(success=False, errors=errors)

        price = data.estimated_purchase_price
        total_amount = price * len(linkable)

        by_product: "OrderedDict[int, List[ProductUnit]]" = OrderedDict()
        for unit in linkable:
            by_product.setdefault(unit.product_id, []).append(unit)

        try:
            transaction = SupplierTransaction(
                transaction_number=f"REC-{datetime.now(timezone.utc):%Y%m%d%H%M%S}-{uuid.uuid4().hex[:6].upper()}",
                supplier_id=supplier.id,
                type=TransactionType.RECOVERY,
                status=TransactionStatus.COMPLETED,
                total_amount=total_amount,
                notes=data.notes or f"Recovery transaction for {len(linkable)} orphaned units",
            )
            self.db.add(transaction)
            await self.db.flush()

            for product_id, product_units in by_product.items():
                self.db.add(SupplierTransactionItem(
                    transaction_id=transaction.id,
                    product_id=product_id,
                    quantity=len(product_units),
                    unit_cost=price,
                    total_cost=price * len(product_units),
                    product_unit_ids=[unit.id for unit in product_units],
                    unit_details=[
                        {
                            "serial_number": unit.serial_number,
                            "color": unit.color,
                            "storage": unit.storage,
                            "ram": unit.ram,
                            "battery_level": unit.battery_level,
                        }
                        for unit in product_units
                    ],
                ))

            for unit in linkable:
                unit.supplier_id = supplier.id
                unit.supplier_transaction_id = transaction.id
                unit.purchase_price = price

            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            self.logger.error(f"❌ Recovery transaction failed for supplier {data.supplier_id}: {e}")
            raise StoreError(str(e))

        linked_ids = [unit.id for unit in linkable]
        log_audit_event(
            "recovery_transaction", "supplier_transaction", transaction.id,
            supplier_id=supplier.id, units=linked_ids, total_amount=str(total_amount),
        )

        if self.coordinator is not None:
            for unit in linkable:
                self.coordinator.emit(
                    CoordinationEventType.UNIT_UPDATED,
                    ModuleName.SUPPLIERS,
                    entity_id=unit.id,
                    barcode=unit.barcode,
                    supplier_transaction_id=transaction.id,
                )
            self.coordinator.emit(
                CoordinationEventType.SYNC_REQUESTED,
                ModuleName.SUPPLIERS,
                entity_id=transaction.id,
                reason="recovery_transaction",
            )

        return RecoveryResult(
            success=not errors,
            transaction_id=transaction.id,
            transaction_number=transaction.transaction_number,
            total_amount=total_amount,
            linked_unit_ids=linked_ids,
            errors=errors,
        )

    def get_suggested_recovery(self, draft: Optional[RecoveryDraft]) -> SuggestedRecovery:
        """Pre-fill a recovery from an abandoned acquisition draft"""
        if draft is None or draft.supplier_id is None:
            return SuggestedRecovery()

        total_cost = Decimal("0")
        total_units = 0
        for item in draft.items:
            if item.unit_prices:
                total_cost += sum(item.unit_prices, Decimal("0"))
                total_units += len(item.unit_prices)
            else:
                total_cost += item.unit_cost * item.quantity
                total_units += item.quantity

        average = (total_cost / total_units).quantize(Decimal("0.01")) if total_units else Decimal("0")
        return SuggestedRecovery(
            supplier_id=draft.supplier_id,
            estimated_purchase_price=average,
            notes=f"Recovery from draft: {draft.notes or 'Incomplete acquisition transaction'}",
        )
