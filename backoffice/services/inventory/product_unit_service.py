import logging
from typing import Optional

from sqlalchemy import and_, delete, func, or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from backoffice.core.exceptions import (
    GenerationConflict,
    NotFoundError,
    StoreError,
    ValidationError,
)
from backoffice.models.inventory.barcode_registry import BarcodeRegistry
from backoffice.models.inventory.product import Product
from backoffice.models.inventory.product_unit import ProductUnit
from backoffice.models.purchase.supplier_transaction_item import SupplierTransactionItem
from backoffice.models.shared.enums import (
    BarcodeType,
    CoordinationEventType,
    EntityType,
    ModuleName,
)
from backoffice.schemas.inventory.product_unit_schema import (
    ProductPurgeResult,
    ProductUnitCreate,
    ProductUnitUpdate,
)
from backoffice.services.barcode.barcode_authority_service import BarcodeAuthorityService
from backoffice.services.coordination.event_coordinator import EventCoordinator


class ProductUnitService:
    def __init__(
        self,
        db: AsyncSession,
        coordinator: Optional[EventCoordinator] = None,
        authority: Optional[BarcodeAuthorityService] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.db = db
        self.coordinator = coordinator
        self.authority = authority or BarcodeAuthorityService(db, coordinator)
        self.logger = logger or logging.getLogger(__name__)

    async def _get_product(self, product_id: int) -> Product:
        product = await self.db.get(Product, product_id)
        if not product:
            raise NotFoundError(f"Product {product_id} not found")
        return product

    async def _ensure_serial_available(self, product_id: int, serial_number: str, exclude_unit_id: Optional[int] = None):
        query = select(ProductUnit.id).where(
            and_(ProductUnit.product_id == product_id, ProductUnit.serial_number == serial_number)
        )
        if exclude_unit_id is not None:
            query = query.where(ProductUnit.id != exclude_unit_id)
        result = await self.db.execute(query)
        if result.first() is not None:
            raise ValidationError(f"Serial number {serial_number} already exists for product {product_id}")

    async def get_unit(self, unit_id: int) -> ProductUnit:
        unit = await self.db.get(ProductUnit, unit_id)
        if not unit:
            raise NotFoundError(f"Product unit {unit_id} not found")
        return unit

    async def create_unit(self, product_id: int, unit_data: ProductUnitCreate) -> ProductUnit:
        """Create a serialized unit, inheriting product pricing and receiving a registered barcode"""
        product = await self._get_product(product_id)
        await self._ensure_serial_available(product_id, unit_data.serial_number)

        values = unit_data.dict()
        for field in ("price", "min_price", "max_price"):
            if values.get(field) is None:
                values[field] = getattr(product, field)

        unit = ProductUnit(product_id=product_id, **values)
        product.has_serial = True
        self.db.add(unit)

        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise ValidationError(f"Serial number {unit_data.serial_number} already exists for product {product_id}")
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise StoreError(str(e))

        try:
            await self.authority.get_or_generate_barcode(EntityType.PRODUCT_UNIT, unit.id, BarcodeType.UNIT)
        except (GenerationConflict, StoreError) as e:
            # Unit stays without a barcode until the next backfill
            self.logger.error(
                f"❌ Barcode generation failed for new unit {unit.id}: {e}",
                extra={"event": "barcode_generation_failed", "entity_id": unit.id},
            )

        await self.db.refresh(unit)
        self.logger.info(f"✅ Created unit {unit.serial_number} for product {product_id}")
        if self.coordinator is not None:
            self.coordinator.emit(
                CoordinationEventType.UNIT_CREATED,
                ModuleName.INVENTORY,
                entity_id=unit.id,
                barcode=unit.barcode,
                product_id=product_id,
            )
        return unit

    async def update_unit(self, unit_id: int, unit_data: ProductUnitUpdate) -> ProductUnit:
        """Partial update; the barcode is owned by the barcode authority and is never written here"""
        unit = await self.get_unit(unit_id)
        update_data = unit_data.dict(exclude_unset=True)
        update_data.pop("barcode", None)

        serial_number = update_data.get("serial_number")
        if serial_number and serial_number != unit.serial_number:
            await self._ensure_serial_available(unit.product_id, serial_number, exclude_unit_id=unit.id)

        for field, value in update_data.items():
            setattr(unit, field, value)

        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise StoreError(str(e))

        await self.db.refresh(unit)
        if self.coordinator is not None:
            self.coordinator.emit(
                CoordinationEventType.UNIT_UPDATED,
                ModuleName.INVENTORY,
                entity_id=unit.id,
                barcode=unit.barcode,
                fields=sorted(update_data),
            )
        return unit

    async def purge_product(self, product_id: int) -> ProductPurgeResult:
        """Delete a product, its units and every registry row bound to either"""
        await self._get_product(product_id)

        referenced = await self.db.execute(
            select(func.count(SupplierTransactionItem.id)).where(SupplierTransactionItem.product_id == product_id)
        )
        if referenced.scalar_one() > 0:
            raise ValidationError(f"Product {product_id} is referenced by supplier transactions")

        try:
            unit_ids = select(ProductUnit.id).where(ProductUnit.product_id == product_id)
            registry = await self.db.execute(
                delete(BarcodeRegistry)
                .where(or_(
                    and_(
                        BarcodeRegistry.entity_type == EntityType.PRODUCT_UNIT,
                        BarcodeRegistry.entity_id.in_(unit_ids),
                    ),
                    and_(
                        BarcodeRegistry.entity_type == EntityType.PRODUCT,
                        BarcodeRegistry.entity_id == product_id,
                    ),
                ))
                .execution_options(synchronize_session=False)
            )
            units = await self.db.execute(
                delete(ProductUnit)
                .where(ProductUnit.product_id == product_id)
                .execution_options(synchronize_session=False)
            )
            await self.db.execute(
                delete(Product)
                .where(Product.id == product_id)
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise StoreError(str(e))

        result = ProductPurgeResult(
            product_id=product_id,
            units_deleted=units.rowcount or 0,
            registry_entries_deleted=registry.rowcount or 0,
        )
        self.logger.info(
            f"🗑️ Purged product {product_id}: {result.units_deleted} units, "
            f"{result.registry_entries_deleted} registry entries"
        )
        if self.coordinator is not None:
            self.coordinator.emit(
                CoordinationEventType.SYNC_REQUESTED,
                ModuleName.INVENTORY,
                entity_id=product_id,
                reason="product_purged",
            )
        return result
