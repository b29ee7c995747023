"""
API роутер администрирования
"""
from fastapi import APIRouter, Depends

from apps.api.dependencies import (
    get_current_actor, get_maintenance_service, get_workflow_service
)
from apps.api.schemas import AdminEditRequest, CoverageResponse, ResetResponse
from shared.services.coverage_transitions import Actor
from shared.services.coverage_workflow_service import CoverageWorkflowService
from shared.services.maintenance_service import MaintenanceService

router = APIRouter(prefix="/admin", tags=["admin"])


@router.put("/coverages/{coverage_id}", response_model=CoverageResponse)
async def edit_coverage(
    coverage_id: int,
    changes: AdminEditRequest,
    actor: Actor = Depends(get_current_actor),
    service: CoverageWorkflowService = Depends(get_workflow_service),
):
    """Правка полей покрытия без смены статуса."""
    return await service.admin_edit(coverage_id, actor, changes.model_dump(exclude_unset=True))


@router.delete("/maintenance/reset", response_model=ResetResponse)
async def reset_workflow_data(
    actor: Actor = Depends(get_current_actor),
    service: MaintenanceService = Depends(get_maintenance_service),
):
    """Удаляет все покрытия, историю и квитанции. Справочники сохраняются."""
    deleted = await service.reset_transactional_data(actor)
    return {"message": "Dados de movimentação apagados", "deleted": deleted}
