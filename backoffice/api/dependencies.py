import logging
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession
from backoffice.core.database import get_async_session
from backoffice.services.barcode.barcode_authority_service import BarcodeAuthorityService
from backoffice.services.coordination.event_coordinator import EventCoordinator
from backoffice.services.integrity.consistency_checker_service import ConsistencyCheckerService
from backoffice.services.integrity.repair_engine_service import RepairEngineService
from backoffice.services.inventory.product_unit_service import ProductUnitService
from backoffice.services.purchase.orphaned_unit_recovery_service import OrphanedUnitRecoveryService

logger = logging.getLogger(__name__)

def get_event_coordinator(request: Request) -> EventCoordinator:
    """Application-lifetime coordinator created with the app"""
    return request.app.state.event_coordinator

def get_barcode_authority(
    db: AsyncSession = Depends(get_async_session),
    coordinator: EventCoordinator = Depends(get_event_coordinator),
) -> BarcodeAuthorityService:
    return BarcodeAuthorityService(db, coordinator)

def get_consistency_checker(db: AsyncSession = Depends(get_async_session)) -> ConsistencyCheckerService:
    return ConsistencyCheckerService(db)

def get_repair_engine(
    db: AsyncSession = Depends(get_async_session),
    coordinator: EventCoordinator = Depends(get_event_coordinator),
) -> RepairEngineService:
    return RepairEngineService(db, coordinator)

def get_recovery_service(
    db: AsyncSession = Depends(get_async_session),
    coordinator: EventCoordinator = Depends(get_event_coordinator),
) -> OrphanedUnitRecoveryService:
    return OrphanedUnitRecoveryService(db, coordinator)

def get_product_unit_service(
    db: AsyncSession = Depends(get_async_session),
    coordinator: EventCoordinator = Depends(get_event_coordinator),
) -> ProductUnitService:
    return ProductUnitService(db, coordinator)
