from fastapi import APIRouter
from backoffice.api.v1.endpoints.integrity import integrity
from backoffice.api.v1.endpoints.inventory import barcodes, units
from backoffice.api.v1.endpoints.purchase import orphaned_units

api_router = APIRouter()

# Integrity routes
api_router.include_router(integrity.router, prefix="/integrity", tags=["Integrity"])

# Inventory routes
api_router.include_router(barcodes.router, prefix="/inventory/barcode", tags=["Inventory"])
api_router.include_router(units.router, prefix="/inventory/unit", tags=["Inventory"])

# Purchase routes
api_router.include_router(orphaned_units.router, prefix="/purchase/orphaned-units", tags=["Purchase"])
