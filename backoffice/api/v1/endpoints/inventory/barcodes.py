import logging
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query, status
from backoffice.api.dependencies import get_barcode_authority
from backoffice.models.shared.enums import EntityType
from backoffice.schemas.inventory.barcode_schema import (
    BarcodeRecordResponse,
    BarcodeResolveRequest,
    BarcodeResolveResponse,
    BarcodeValidateRequest,
    BarcodeValidationResult,
    BarcodeVerifyRequest,
    BarcodeVerifyResponse,
)
from backoffice.services.barcode.barcode_authority_service import BarcodeAuthorityService

router = APIRouter()
logger = logging.getLogger(__name__)

@router.post("/validate", response_model=BarcodeValidationResult)
async def validate_barcode(
    request: BarcodeValidateRequest,
    authority: BarcodeAuthorityService = Depends(get_barcode_authority),
):
    return authority.validate_barcode(request.barcode)

@router.post("/resolve", response_model=BarcodeResolveResponse)
async def resolve_barcode(
    request: BarcodeResolveRequest,
    authority: BarcodeAuthorityService = Depends(get_barcode_authority),
):
    """Return the entity's barcode, generating and registering one if it has none"""
    barcode = await authority.get_or_generate_barcode(
        request.entity_type, request.entity_id, request.barcode_type, request.options
    )
    return BarcodeResolveResponse(entity_type=request.entity_type, entity_id=request.entity_id, barcode=barcode)

@router.post("/verify", response_model=BarcodeVerifyResponse)
async def verify_barcode(
    request: BarcodeVerifyRequest,
    authority: BarcodeAuthorityService = Depends(get_barcode_authority),
):
    verified = await authority.verify_barcode_integrity(request.barcode, request.expected_source)
    return BarcodeVerifyResponse(barcode=request.barcode, verified=verified)

@router.get("/history/{entity_id}", response_model=List[BarcodeRecordResponse])
async def get_barcode_history(
    entity_id: int,
    entity_type: Optional[EntityType] = Query(None),
    authority: BarcodeAuthorityService = Depends(get_barcode_authority),
):
    return await authority.get_barcode_history(entity_id, entity_type)

@router.get("/health")
async def barcode_health(authority: BarcodeAuthorityService = Depends(get_barcode_authority)):
    health = await authority.health_check()
    if health["status"] != "healthy":
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=health)
    return health
