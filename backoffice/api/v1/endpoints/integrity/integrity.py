import logging
from typing import List, Optional
from fastapi import APIRouter, Depends, Query
from backoffice.api.dependencies import get_consistency_checker, get_repair_engine
from backoffice.models.shared.enums import IntegrityCheck
from backoffice.schemas.integrity.integrity_schema import BackfillResult, ConsistencyReport, IntegrityReport
from backoffice.services.integrity.consistency_checker_service import ConsistencyCheckerService
from backoffice.services.integrity.repair_engine_service import RepairEngineService

router = APIRouter()
logger = logging.getLogger(__name__)

@router.get("/check", response_model=IntegrityReport)
async def run_integrity_check(
    checks: Optional[List[IntegrityCheck]] = Query(None),
    checker: ConsistencyCheckerService = Depends(get_consistency_checker),
):
    """Run consistency checks without changing anything"""
    return await checker.run_integrity_check(checks)

@router.get("/report", response_model=ConsistencyReport)
async def get_consistency_report(checker: ConsistencyCheckerService = Depends(get_consistency_checker)):
    return await checker.generate_consistency_report()

@router.post("/fix-transactions", response_model=ConsistencyReport)
async def fix_transaction_issues(repair: RepairEngineService = Depends(get_repair_engine)):
    logger.info("🔧 Transaction fix requested")
    return await repair.fix_transaction_issues()

@router.post("/repair", response_model=ConsistencyReport)
async def run_full_repair(repair: RepairEngineService = Depends(get_repair_engine)):
    logger.info("🔧 Full repair requested")
    return await repair.run_full_repair()

@router.post("/barcode-backfill", response_model=BackfillResult)
async def trigger_barcode_backfill(repair: RepairEngineService = Depends(get_repair_engine)):
    return await repair.backfill_missing_barcodes()
