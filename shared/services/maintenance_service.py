"""Сервисные операции над данными workflow (опасная зона)."""

from typing import Dict

from sqlalchemy import delete
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.logging.logger import logger
from domain.entities.attachment import Attachment
from domain.entities.coverage import Coverage
from domain.entities.user import UserRole
from domain.entities.workflow_history import WorkflowHistoryEntry
from domain.exceptions import ForbiddenError, StorageError
from shared.services.coverage_transitions import Actor


class MaintenanceService:
    """Полный сброс транзакционных данных; справочники и пользователи не затрагиваются."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def reset_transactional_data(self, actor: Actor) -> Dict[str, int]:
        """
        Удалить всю историю, вложения покрытий и сами покрытия одной транзакцией.

        Returns:
            Количество удалённых строк по таблицам
        """
        if actor.user_role != UserRole.ADMIN:
            raise ForbiddenError("Only administrators can reset workflow data")

        try:
            history = await self.session.execute(delete(WorkflowHistoryEntry))
            attachments = await self.session.execute(
                delete(Attachment).where(Attachment.coverage_id.is_not(None))
            )
            coverages = await self.session.execute(delete(Coverage))
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error("Workflow data reset failed", actor_id=actor.user_id, error=str(e))
            raise StorageError("Failed to reset workflow data") from e

        counts = {
            "history": history.rowcount,
            "attachments": attachments.rowcount,
            "coverages": coverages.rowcount,
        }
        logger.warning("Workflow data reset", actor_id=actor.user_id, **counts)
        return counts
