"""
API роутер финансового отдела
"""
from typing import List

from fastapi import APIRouter, Depends, Query

from apps.api.dependencies import get_current_actor, get_query_service, get_workflow_service
from apps.api.schemas import CoverageDetailResponse, CoverageResponse, PaidCoverageResponse, PaymentRequest
from shared.services.coverage_query_service import CoverageQueryService
from shared.services.coverage_transitions import Actor
from shared.services.coverage_workflow_service import CoverageWorkflowService

router = APIRouter(prefix="/finance", tags=["finance"])


@router.get("/payable", response_model=List[CoverageDetailResponse])
async def list_payable(
    actor: Actor = Depends(get_current_actor),
    service: CoverageQueryService = Depends(get_query_service),
):
    """Согласованные покрытия к оплате."""
    return await service.list_payable(actor)


@router.get("/history", response_model=List[PaidCoverageResponse])
async def list_paid(
    limit: int = Query(50, ge=1, le=200),
    actor: Actor = Depends(get_current_actor),
    service: CoverageQueryService = Depends(get_query_service),
):
    return await service.list_paid_history(actor, limit=limit)


@router.post("/{coverage_id}/pay", response_model=CoverageResponse)
async def pay_coverage(
    coverage_id: int,
    payment: PaymentRequest,
    actor: Actor = Depends(get_current_actor),
    service: CoverageWorkflowService = Depends(get_workflow_service),
):
    """Отметить оплату; квитанция передаётся как уже сохранённый файл."""
    attachment = payment.attachment.to_payload() if payment.attachment else None
    return await service.pay(coverage_id, actor, payment.to_details(), attachment)
