"""
API роутер очереди согласования
"""
from typing import List

from fastapi import APIRouter, Depends

from apps.api.dependencies import get_current_actor, get_query_service, get_workflow_service
from apps.api.schemas import ApprovalAction, ApprovalActionType, CoverageResponse, PendingApprovalItem
from shared.services.coverage_query_service import CoverageQueryService
from shared.services.coverage_transitions import Actor
from shared.services.coverage_workflow_service import CoverageWorkflowService

router = APIRouter(prefix="/approvals", tags=["approvals"])


@router.get("/pending", response_model=List[PendingApprovalItem])
async def list_pending(
    actor: Actor = Depends(get_current_actor),
    service: CoverageQueryService = Depends(get_query_service),
):
    """Покрытия, ожидающие решения роли пользователя, со счётчиками за месяц."""
    return await service.list_pending_approval(actor)


@router.post("/{coverage_id}", response_model=CoverageResponse)
async def decide(
    coverage_id: int,
    decision: ApprovalAction,
    actor: Actor = Depends(get_current_actor),
    service: CoverageWorkflowService = Depends(get_workflow_service),
):
    """Согласовать, отклонить или вернуть на корректировку."""
    if decision.action == ApprovalActionType.APPROVE:
        return await service.approve(coverage_id, actor, stage=decision.stage, note=decision.note)
    if decision.action == ApprovalActionType.REJECT:
        return await service.reject(coverage_id, actor, decision.note)
    return await service.request_adjustment(coverage_id, actor, decision.note)
