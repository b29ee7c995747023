"""
Зависимости FastAPI: текущий пользователь и сервисы workflow
"""
from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from core.database.session import get_db_session
from shared.services.coverage_query_service import CoverageQueryService
from shared.services.coverage_transitions import Actor
from shared.services.coverage_workflow_service import CoverageWorkflowService
from shared.services.maintenance_service import MaintenanceService


async def get_current_actor(
    x_user_id: Optional[int] = Header(None, description="ID аутентифицированного пользователя"),
    x_user_role: Optional[str] = Header(None, description="Роль аутентифицированного пользователя"),
) -> Actor:
    """Идентичность передаётся шлюзом аутентификации в заголовках."""
    if x_user_id is None or not x_user_role:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Не переданы заголовки X-User-Id и X-User-Role"
        )
    return Actor(user_id=x_user_id, role=x_user_role.strip().lower())


def get_workflow_service(session: AsyncSession = Depends(get_db_session)) -> CoverageWorkflowService:
    return CoverageWorkflowService(session)


def get_query_service(session: AsyncSession = Depends(get_db_session)) -> CoverageQueryService:
    return CoverageQueryService(session)


def get_maintenance_service(session: AsyncSession = Depends(get_db_session)) -> MaintenanceService:
    return MaintenanceService(session)
