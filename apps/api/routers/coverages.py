"""
API роутер для лançamento покрытий супервайзером
"""
from typing import List

from fastapi import APIRouter, Depends, Query, status

from apps.api.dependencies import get_current_actor, get_query_service, get_workflow_service
from apps.api.schemas import (
    CoverageWrite, CoverageResponse, CoverageDetailResponse, HistoryEntryResponse
)
from shared.services.coverage_query_service import CoverageQueryService
from shared.services.coverage_transitions import Actor
from shared.services.coverage_workflow_service import CoverageWorkflowService

router = APIRouter(prefix="/coverages", tags=["coverages"])


@router.post("", response_model=CoverageResponse, status_code=status.HTTP_201_CREATED)
async def create_coverage(
    coverage_data: CoverageWrite,
    actor: Actor = Depends(get_current_actor),
    service: CoverageWorkflowService = Depends(get_workflow_service),
):
    """Новое покрытие в статусе PENDING."""
    return await service.create(coverage_data.to_input(), actor)


@router.get("", response_model=List[CoverageDetailResponse])
async def list_coverages(
    limit: int = Query(50, ge=1, le=200, description="Размер выборки"),
    actor: Actor = Depends(get_current_actor),
    service: CoverageQueryService = Depends(get_query_service),
):
    """Последние покрытия: свои для супервайзера, все для администратора."""
    return await service.list_for_actor(actor, limit=limit)


@router.get("/{coverage_id}", response_model=CoverageDetailResponse)
async def get_coverage(
    coverage_id: int,
    actor: Actor = Depends(get_current_actor),
    service: CoverageQueryService = Depends(get_query_service),
):
    return await service.get_coverage(coverage_id, actor)


@router.get("/{coverage_id}/history", response_model=List[HistoryEntryResponse])
async def get_coverage_history(
    coverage_id: int,
    actor: Actor = Depends(get_current_actor),
    service: CoverageQueryService = Depends(get_query_service),
):
    """Журнал переходов покрытия."""
    return await service.get_history(coverage_id, actor)


@router.put("/{coverage_id}/resubmit", response_model=CoverageResponse)
async def resubmit_coverage(
    coverage_id: int,
    coverage_data: CoverageWrite,
    actor: Actor = Depends(get_current_actor),
    service: CoverageWorkflowService = Depends(get_workflow_service),
):
    """Исправление и повторная отправка после запроса корректировки."""
    return await service.resubmit(coverage_id, actor, coverage_data.to_input())
