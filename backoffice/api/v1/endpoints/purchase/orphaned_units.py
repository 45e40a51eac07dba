import logging
from datetime import datetime
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, status
from backoffice.api.dependencies import get_recovery_service
from backoffice.schemas.purchase.recovery_schema import (
    OrphanedUnit,
    RecoveryDraft,
    RecoveryResult,
    RecoveryTransactionCreate,
    SuggestedRecovery,
)
from backoffice.services.purchase.orphaned_unit_recovery_service import OrphanedUnitRecoveryService

router = APIRouter()
logger = logging.getLogger(__name__)

@router.get("/", response_model=List[OrphanedUnit])
async def list_orphaned_units(
    since: Optional[datetime] = Query(None),
    service: OrphanedUnitRecoveryService = Depends(get_recovery_service),
):
    return await service.find_orphaned_units(since)

@router.post("/recovery", response_model=RecoveryResult, status_code=status.HTTP_201_CREATED)
async def create_recovery_transaction(
    recovery_data: RecoveryTransactionCreate,
    service: OrphanedUnitRecoveryService = Depends(get_recovery_service),
):
    """Link orphaned units to a new completed recovery transaction"""
    return await service.create_recovery_transaction(recovery_data)

@router.post("/recovery/suggestion", response_model=SuggestedRecovery)
async def suggest_recovery(
    draft: RecoveryDraft,
    service: OrphanedUnitRecoveryService = Depends(get_recovery_service),
):
    return service.get_suggested_recovery(draft)
