from fastapi import APIRouter, Depends, status
from backoffice.api.dependencies import get_product_unit_service
from backoffice.schemas.inventory.product_unit_schema import (
    ProductPurgeResult,
    ProductUnitCreate,
    ProductUnitResponse,
    ProductUnitUpdate,
)
from backoffice.services.inventory.product_unit_service import ProductUnitService

router = APIRouter()

@router.post("/{product_id}", response_model=ProductUnitResponse, status_code=status.HTTP_201_CREATED)
async def create_unit(
    product_id: int,
    unit_data: ProductUnitCreate,
    service: ProductUnitService = Depends(get_product_unit_service),
):
    return await service.create_unit(product_id, unit_data)

@router.patch("/{unit_id}", response_model=ProductUnitResponse)
async def update_unit(
    unit_id: int,
    unit_data: ProductUnitUpdate,
    service: ProductUnitService = Depends(get_product_unit_service),
):
    return await service.update_unit(unit_id, unit_data)

@router.delete("/product/{product_id}", response_model=ProductPurgeResult)
async def purge_product(
    product_id: int,
    service: ProductUnitService = Depends(get_product_unit_service),
):
    """Delete a product with its units and barcode registry entries"""
    return await service.purge_product(product_id)
