import logging
import re
from typing import Any, Dict, List, Optional, Union

from sqlalchemy import func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from backoffice.core.config import Settings, settings as default_settings
from backoffice.core.exceptions import (
    BaseAppException,
    GenerationConflict,
    NotFoundError,
    StoreError,
    ValidationError,
)
from backoffice.models.inventory.barcode_counter import BarcodeCounter
from backoffice.models.inventory.barcode_registry import BarcodeRegistry
from backoffice.models.inventory.product import Product
from backoffice.models.inventory.product_unit import ProductUnit
from backoffice.models.shared.enums import (
    BarcodeFormat,
    BarcodeType,
    CoordinationEventType,
    EntityType,
    ModuleName,
)
from backoffice.schemas.inventory.barcode_schema import (
    BarcodeGenerationOptions,
    BarcodeSource,
    BarcodeValidationResult,
    BulkBarcodeRequest,
    ParsedBarcode,
)
from backoffice.services.coordination.event_coordinator import EventCoordinator

MIN_BARCODE_LENGTH = 4
MAX_BARCODE_LENGTH = 25
COUNTER_WIDTH = 6

INTERNAL_BARCODE_PATTERN = re.compile(r"^([A-Z]+)([UP])(\d{6,})$")
GTIN13_PATTERN = re.compile(r"^\d{13}$")

TYPE_LETTERS = {BarcodeType.UNIT: "U", BarcodeType.PRODUCT: "P"}
ENTITY_MODELS = {EntityType.PRODUCT: Product, EntityType.PRODUCT_UNIT: ProductUnit}


def gtin13_check_digit(digits: str) -> int:
    """Check digit for the first 12 digits of a GTIN-13 (weights 1,3 from the left)."""
    total = sum(int(d) * (1 if i % 2 == 0 else 3) for i, d in enumerate(digits[:12]))
    return (10 - total % 10) % 10


class BarcodeAuthorityService:
    """Single owner of barcode generation, validation and registry bookkeeping.

    Every generated barcode is drawn from a persistent counter, checked for
    uniqueness against the registry and the entity tables, and recorded as
    exactly one registry row bound to its entity. An entity's barcode field is
    only ever filled when empty.
    """

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

    # region Validation

    def validate_barcode(self, barcode: Optional[str]) -> BarcodeValidationResult:
        """Structural validation: length, character set and either GTIN-13 or the internal layout"""
        errors: List[str] = []

        if not barcode:
            return BarcodeValidationResult(
                is_valid=False, format=BarcodeFormat.INVALID, errors=["Barcode is empty"]
            )

        if len(barcode) < MIN_BARCODE_LENGTH:
            errors.append(f"Barcode must be at least {MIN_BARCODE_LENGTH} characters")
        if len(barcode) > MAX_BARCODE_LENGTH:
            errors.append(f"Barcode must be at most {MAX_BARCODE_LENGTH} characters")
        if any(ord(ch) < 32 or ord(ch) > 126 for ch in barcode):
            errors.append("Barcode contains non-printable or non-ASCII characters")

        parsed: Optional[ParsedBarcode] = None
        barcode_format = BarcodeFormat.INVALID

        if GTIN13_PATTERN.match(barcode):
            if int(barcode[12]) != gtin13_check_digit(barcode):
                errors.append("Invalid GTIN-13 check digit")
            else:
                barcode_format = BarcodeFormat.GTIN13
                parsed = ParsedBarcode(prefix=barcode[:3], type="gtin")
        else:
            match = INTERNAL_BARCODE_PATTERN.match(barcode)
            if match:
                prefix, letter, counter = match.groups()
                barcode_format = BarcodeFormat.CODE128
                parsed = ParsedBarcode(
                    prefix=prefix,
                    type=BarcodeType.UNIT.value if letter == "U" else BarcodeType.PRODUCT.value,
                    counter=int(counter),
                )
            else:
                errors.append("Barcode does not match the internal PREFIX[U|P]NNNNNN format")

        if errors:
            return BarcodeValidationResult(
                is_valid=False, format=BarcodeFormat.INVALID, errors=errors, parsed=parsed
            )
        return BarcodeValidationResult(is_valid=True, format=barcode_format, errors=[], parsed=parsed)

    def parse_barcode(self, barcode: str) -> Optional[ParsedBarcode]:
        result = self.validate_barcode(barcode)
        return result.parsed if result.is_valid else None

    async def validate_uniqueness(self, barcode: str) -> bool:
        """True when no registry row, product or unit already uses ``barcode``"""
        registered = await self.db.execute(
            select(func.count(BarcodeRegistry.id)).where(BarcodeRegistry.barcode == barcode)
        )
        if registered.scalar_one() > 0:
            return False

        for model in (ProductUnit, Product):
            taken = await self.db.execute(
                select(func.count(model.id)).where(model.barcode == barcode)
            )
            if taken.scalar_one() > 0:
                return False
        return True

    # endregion

    # region Lookup

    async def _load_entity(self, entity_type: EntityType, entity_id: int) -> Union[Product, ProductUnit, None]:
        model = ENTITY_MODELS[EntityType(entity_type)]
        result = await self.db.execute(
            select(model).where(model.id == entity_id).execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_barcode_by_entity(self, entity_type: EntityType, entity_id: int) -> Optional[BarcodeRegistry]:
        """Newest registry row bound to the entity, if any"""
        result = await self.db.execute(
            select(BarcodeRegistry)
            .where(
                BarcodeRegistry.entity_type == EntityType(entity_type),
                BarcodeRegistry.entity_id == entity_id,
            )
            .order_by(BarcodeRegistry.created_at.desc(), BarcodeRegistry.id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get_barcode_history(
        self, entity_id: int, entity_type: Optional[EntityType] = None
    ) -> List[BarcodeRegistry]:
        query = select(BarcodeRegistry).where(BarcodeRegistry.entity_id == entity_id)
        if entity_type is not None:
            query = query.where(BarcodeRegistry.entity_type == EntityType(entity_type))
        result = await self.db.execute(
            query.order_by(BarcodeRegistry.created_at.desc(), BarcodeRegistry.id.desc())
        )
        return list(result.scalars().all())

    # endregion

    # region Generation

    async def _next_counter_value(self, barcode_type: BarcodeType) -> int:
        """Advance the persistent counter for ``barcode_type`` and return the new value"""
        result = await self.db.execute(
            select(BarcodeCounter)
            .where(BarcodeCounter.counter_type == barcode_type.value)
            .with_for_update()
        )
        counter = result.scalar_one_or_none()
        if counter is None:
            counter = BarcodeCounter(
                counter_type=barcode_type.value, value=self.settings.BARCODE_COUNTER_START
            )
            self.db.add(counter)
        counter.value += 1
        await self.db.flush()
        return counter.value

    def _generation_metadata(self, entity: Union[Product, ProductUnit], options: BarcodeGenerationOptions) -> Dict[str, Any]:
        if isinstance(entity, ProductUnit):
            metadata = {
                "serial_number": entity.serial_number,
                "product_id": entity.product_id,
                "battery_level": entity.battery_level,
                "color": entity.color,
                "storage": entity.storage,
                "ram": entity.ram,
            }
        else:
            metadata = {"brand": entity.brand, "model": entity.model}
        metadata.update(options.metadata)
        return metadata

    async def _register_entity_barcode(
        self,
        entity: Union[Product, ProductUnit],
        entity_type: EntityType,
        barcode_type: BarcodeType,
        options: BarcodeGenerationOptions,
        source: ModuleName,
    ) -> Optional[str]:
        """Register the barcode an entity already carries; None when it cannot be adopted"""
        barcode = entity.barcode
        validation = self.validate_barcode(barcode)
        if not validation.is_valid:
            self.logger.warning(
                f"{entity_type.value} {entity.id} carries invalid barcode {barcode!r}, generating a new one",
                extra={"event": "barcode_invalid", "entity_id": entity.id},
            )
            return None

        registered = await self.db.execute(
            select(func.count(BarcodeRegistry.id)).where(BarcodeRegistry.barcode == barcode)
        )
        if registered.scalar_one() > 0:
            self.logger.warning(
                f"{entity_type.value} {entity.id} carries {barcode}, registered to another entity",
                extra={"event": "barcode_collision", "entity_id": entity.id},
            )
            return None

        self.db.add(BarcodeRegistry(
            barcode=barcode,
            barcode_type=barcode_type,
            entity_type=entity_type,
            entity_id=entity.id,
            format=validation.format,
            generation_metadata=self._generation_metadata(entity, options),
        ))
        await self.db.commit()

        self.logger.info(
            f"✅ Registered existing barcode {barcode} for {entity_type.value} {entity.id}",
            extra={"event": "barcode_registered", "entity_id": entity.id, "barcode": barcode},
        )
        if self.coordinator is not None:
            self.coordinator.emit(
                CoordinationEventType.BARCODE_GENERATED,
                source,
                entity_id=entity.id,
                barcode=barcode,
                entity_type=entity_type.value,
                registered_existing=True,
            )
        return barcode

    async def _generate(
        self,
        entity_type: EntityType,
        entity_id: int,
        barcode_type: BarcodeType,
        options: Optional[BarcodeGenerationOptions],
        source: ModuleName,
    ) -> str:
        options = options or BarcodeGenerationOptions()
        prefix = options.prefix or self.settings.BARCODE_PREFIX
        letter = TYPE_LETTERS[barcode_type]

        try:
            existing = await self.get_barcode_by_entity(entity_type, entity_id)
            if existing is not None:
                self.logger.debug(f"Reusing registered barcode {existing.barcode} for {entity_type.value} {entity_id}")
                return existing.barcode

            entity = await self._load_entity(entity_type, entity_id)
            if entity is None:
                raise NotFoundError(f"{entity_type.value} {entity_id} not found")

            if entity.barcode:
                adopted = await self._register_entity_barcode(entity, entity_type, barcode_type, options, source)
                if adopted is not None:
                    return adopted

            barcode = None
            for attempt in range(1, self.settings.BARCODE_MAX_RETRIES + 1):
                value = await self._next_counter_value(barcode_type)
                candidate = f"{prefix}{letter}{str(value).zfill(COUNTER_WIDTH)}"

                validation = self.validate_barcode(candidate)
                if not validation.is_valid:
                    await self.db.rollback()
                    raise ValidationError(f"Generated barcode {candidate} is invalid: {'; '.join(validation.errors)}")

                if await self.validate_uniqueness(candidate):
                    barcode = candidate
                    break

                self.logger.warning(
                    f"Barcode collision on {candidate} (attempt {attempt}/{self.settings.BARCODE_MAX_RETRIES})",
                    extra={"event": "barcode_collision", "entity_id": entity_id},
                )

            if barcode is None:
                # Keep the counter advance so the next attempt starts past the taken values
                await self.db.commit()
                raise GenerationConflict(
                    f"Could not generate a unique {barcode_type.value} barcode for "
                    f"{entity_type.value} {entity_id} after {self.settings.BARCODE_MAX_RETRIES} attempts"
                )

            self.db.add(BarcodeRegistry(
                barcode=barcode,
                barcode_type=barcode_type,
                entity_type=entity_type,
                entity_id=entity_id,
                format=BarcodeFormat.CODE128,
                generation_metadata=self._generation_metadata(entity, options),
            ))
            if not entity.barcode:
                entity.barcode = barcode

            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            self.logger.error(f"❌ Barcode generation failed for {entity_type.value} {entity_id}: {e}")
            raise StoreError(str(e))

        self.logger.info(
            f"✅ Generated barcode {barcode} for {entity_type.value} {entity_id}",
            extra={"event": "barcode_generated", "entity_id": entity_id, "barcode": barcode},
        )
        if self.coordinator is not None:
            self.coordinator.emit(
                CoordinationEventType.BARCODE_GENERATED,
                source,
                entity_id=entity_id,
                barcode=barcode,
                entity_type=entity_type.value,
            )
        return barcode

    async def generate_unit_barcode(
        self,
        unit_id: int,
        options: Optional[BarcodeGenerationOptions] = None,
        source: ModuleName = ModuleName.INVENTORY,
    ) -> str:
        return await self._generate(EntityType.PRODUCT_UNIT, unit_id, BarcodeType.UNIT, options, source)

    async def generate_product_barcode(
        self,
        product_id: int,
        options: Optional[BarcodeGenerationOptions] = None,
        source: ModuleName = ModuleName.INVENTORY,
    ) -> str:
        return await self._generate(EntityType.PRODUCT, product_id, BarcodeType.PRODUCT, options, source)

    async def get_or_generate_barcode(
        self,
        entity_type: EntityType,
        entity_id: int,
        barcode_type: BarcodeType,
        options: Optional[BarcodeGenerationOptions] = None,
        source: ModuleName = ModuleName.INVENTORY,
    ) -> str:
        """Return the entity's registered barcode, generating one only when none exists"""
        return await self._generate(EntityType(entity_type), entity_id, BarcodeType(barcode_type), options, source)

    async def generate_bulk_barcodes(self, requests: List[BulkBarcodeRequest]) -> Dict[int, str]:
        """Generate barcodes for several entities; failures are logged and skipped"""
        results: Dict[int, str] = {}
        for request in requests:
            try:
                if request.type == BarcodeType.UNIT:
                    results[request.entity_id] = await self.generate_unit_barcode(request.entity_id, request.options)
                else:
                    results[request.entity_id] = await self.generate_product_barcode(request.entity_id, request.options)
            except BaseAppException as e:
                self.logger.error(
                    f"Bulk generation failed for {request.type.value} {request.entity_id}: {e}",
                    extra={"event": "barcode_generation_failed", "entity_id": request.entity_id},
                )
        return results

    # endregion

    async def verify_barcode_integrity(
        self, barcode: str, expected_source: Optional[BarcodeSource] = None
    ) -> bool:
        """True iff the barcode is valid, registered exactly once and still bound to a live entity"""
        validation = self.validate_barcode(barcode)
        if not validation.is_valid:
            self.logger.warning(f"Barcode {barcode!r} failed validation: {validation.errors}")
            return False

        try:
            result = await self.db.execute(
                select(BarcodeRegistry).where(BarcodeRegistry.barcode == barcode)
            )
            rows = list(result.scalars().all())

            if len(rows) != 1:
                self.logger.warning(
                    f"Barcode {barcode} has {len(rows)} registry entries",
                    extra={"event": "barcode_registry_mismatch", "barcode": barcode},
                )
                return False

            row = rows[0]
            if expected_source is not None and (
                row.entity_type != expected_source.entity_type or row.entity_id != expected_source.entity_id
            ):
                self.logger.warning(
                    f"Barcode {barcode} belongs to {row.entity_type.value} {row.entity_id}, "
                    f"expected {expected_source.entity_type.value} {expected_source.entity_id}",
                    extra={"event": "barcode_source_mismatch", "barcode": barcode},
                )
                return False

            entity = await self._load_entity(row.entity_type, row.entity_id)
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise StoreError(str(e))

        if entity is None:
            self.logger.warning(f"Barcode {barcode} points at missing {row.entity_type.value} {row.entity_id}")
            return False
        if entity.barcode and entity.barcode != barcode:
            self.logger.warning(
                f"{row.entity_type.value} {row.entity_id} carries {entity.barcode}, registry says {barcode}"
            )
            return False
        return True

    async def health_check(self) -> Dict[str, Any]:
        try:
            registry_count = await self.db.execute(select(func.count(BarcodeRegistry.id)))
            counters = await self.db.execute(select(BarcodeCounter))
            missing = await self.db.execute(
                select(func.count(ProductUnit.id)).where(
                    or_(ProductUnit.barcode.is_(None), ProductUnit.barcode == "")
                )
            )
            return {
                "status": "healthy",
                "registry_entries": registry_count.scalar_one(),
                "units_without_barcode": missing.scalar_one(),
                "counters": {c.counter_type: c.value for c in counters.scalars().all()},
            }
        except SQLAlchemyError as e:
            self.logger.error(f"Barcode authority health check failed: {e}")
            return {"status": "unhealthy", "error": str(e)}
