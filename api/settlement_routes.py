"""
Settlement API Routes
=====================

Endpoints:
- POST /api/v1/settlements/run      - settle one month
- GET  /api/v1/settlements/{month}  - stored record set of a month
- POST /api/v1/allocations/edit     - edit one stored allocation
"""

import logging
import time

from fastapi import APIRouter, Depends

from .schemas import (
    AllocationEditRequest,
    AllocationEditResponse,
    ErrorResponse,
    SettlementRecordsResponse,
    SettlementRunRequest,
    SettlementRunResponse,
)
from .service import SettlementService, get_settlement_service

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/v1",
    tags=["Settlement"],
    responses={
        422: {"model": ErrorResponse, "description": "Invalid input"},
        500: {"model": ErrorResponse, "description": "Internal Server Error"},
    },
)


@router.post(
    "/settlements/run",
    response_model=SettlementRunResponse,
    summary="Run settlement",
    description="Match a month's production against consumption, then bank or lapse leftovers.",
)
async def run_settlement(
    request: SettlementRunRequest,
    service: SettlementService = Depends(get_settlement_service),
):
    start_time = time.perf_counter()
    result = service.run_settlement(request)
    payload = result.to_dict()

    return SettlementRunResponse(
        month=result.month,
        allocations=payload['allocations'],
        banking=payload['banking'],
        lapses=payload['lapses'],
        banking_usage=payload['bankingUsage'],
        residue=payload['residue'],
        skipped=payload['skipped'],
        summary=payload['summary'],
        processing_time_ms=round((time.perf_counter() - start_time) * 1000, 2),
    )


@router.get(
    "/settlements/{month}",
    response_model=SettlementRecordsResponse,
    responses={404: {"model": ErrorResponse, "description": "Month not settled"}},
    summary="Stored settlement",
)
async def get_settlement(
    month: str,
    service: SettlementService = Depends(get_settlement_service),
):
    result = service.get_result(month)
    return SettlementRecordsResponse(
        month=result.month,
        allocations=[r.to_dict() for r in result.allocations],
        banking=[r.to_dict() for r in result.banking],
        lapses=[r.to_dict() for r in result.lapses],
        banking_usage=[u.to_dict() for u in result.banking_usage],
        summary=result.summary.to_dict(),
    )


@router.post(
    "/allocations/edit",
    response_model=AllocationEditResponse,
    responses={
        404: {"model": ErrorResponse, "description": "Unknown allocation"},
        409: {"model": ErrorResponse, "description": "Charge conflict"},
    },
    summary="Edit allocation",
    description="Replace one allocation's period values; returns the new version and reconciliation.",
)
async def edit_allocation(
    request: AllocationEditRequest,
    service: SettlementService = Depends(get_settlement_service),
):
    outcome = service.edit_allocation(request)
    return AllocationEditResponse(
        record=outcome.record.to_dict(),
        previous_version=outcome.previous_version,
        zero_allocation=outcome.zero_allocation,
        reconciliation=outcome.reconciliation.to_dict(),
    )
