"""Уведомления о событиях workflow покрытий."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from core.config.settings import settings
from core.logging.logger import logger
from domain.entities.coverage import Coverage, CoverageStatus
from domain.entities.user import User, UserRole, APPROVER_ROLES
from shared.services.coverage_transitions import statuses_awaiting
from shared.services.senders.email_sender import EmailNotificationSender, get_email_sender


class NotificationEvent(str, Enum):
    COVERAGE_CREATED = "coverage_created"
    COVERAGE_REJECTED = "coverage_rejected"
    COVERAGE_ADJUSTMENT_REQUESTED = "coverage_adjustment_requested"


# Группа получателей "approver" - все согласующие и администраторы
APPROVERS_GROUP = "approver"


@dataclass(frozen=True)
class NotificationIntent:
    """Намерение уведомить; доставка best-effort."""
    coverage_id: int
    event: NotificationEvent
    recipient_role: str
    recipient_user_id: Optional[int] = None
    note: Optional[str] = None


class NotificationSink(Protocol):
    async def notify(self, intent: NotificationIntent) -> None:
        ...


class NullNotificationSink:
    """Sink, который ничего не отправляет (тесты, скрипты)."""

    async def notify(self, intent: NotificationIntent) -> None:
        logger.debug("Notification skipped", coverage_id=intent.coverage_id, event=intent.event.value)


_SUBJECTS = {
    NotificationEvent.COVERAGE_CREATED: "[Novo Lançamento] {diarista} em {posto}",
    NotificationEvent.COVERAGE_REJECTED: "[Atenção] Cobertura REPROVADA: {diarista}",
    NotificationEvent.COVERAGE_ADJUSTMENT_REQUESTED: "[Atenção] Cobertura com AJUSTE solicitado: {diarista}",
}


class CoverageNotificationService:
    """Отправляет e-mail согласующим или автору покрытия."""

    def __init__(
        self,
        session: AsyncSession,
        sender: Optional[EmailNotificationSender] = None,
        required_stages: Optional[int] = None,
    ):
        self.session = session
        self.sender = sender or get_email_sender()
        self.required_stages = required_stages or settings.required_approval_stages

    async def notify(self, intent: NotificationIntent) -> None:
        coverage = await self._load_coverage(intent.coverage_id)
        if coverage is None:
            logger.warning("Notification target coverage not found", coverage_id=intent.coverage_id)
            return

        recipients = await self._resolve_recipients(intent, coverage)
        if not recipients:
            logger.info("No recipients for notification", coverage_id=intent.coverage_id, event=intent.event.value)
            return

        subject, html = self.render(intent, coverage)
        for user in recipients:
            await self.sender.send(user.email, subject, html)

        logger.info(
            "Coverage notification dispatched",
            coverage_id=intent.coverage_id,
            event=intent.event.value,
            recipients=len(recipients),
        )

    async def _load_coverage(self, coverage_id: int) -> Optional[Coverage]:
        result = await self.session.execute(
            select(Coverage)
            .where(Coverage.id == coverage_id)
            .options(
                selectinload(Coverage.diarista),
                selectinload(Coverage.posto),
                selectinload(Coverage.creator),
            )
        )
        return result.scalar_one_or_none()

    async def _resolve_recipients(self, intent: NotificationIntent, coverage: Coverage) -> List[User]:
        if intent.recipient_user_id is not None:
            user = coverage.creator if coverage.created_by == intent.recipient_user_id else None
            if user is None:
                user = await self.session.get(User, intent.recipient_user_id)
            return [user] if user is not None and user.is_active else []

        if intent.recipient_role == APPROVERS_GROUP:
            roles = self.approver_roles_for(CoverageStatus(coverage.status))
        else:
            roles = [intent.recipient_role]

        result = await self.session.execute(
            select(User).where(User.role.in_(roles), User.is_active.is_(True))
        )
        return list(result.scalars().all())

    def approver_roles_for(self, status: CoverageStatus) -> List[str]:
        """Роли согласующих, которые могут действовать в данном статусе."""
        return sorted(
            role.value
            for role in APPROVER_ROLES | {UserRole.ADMIN}
            if status in statuses_awaiting(role, self.required_stages)
        )

    @staticmethod
    def render(intent: NotificationIntent, coverage: Coverage) -> tuple[str, str]:
        """Тема и HTML письма."""
        diarista = coverage.diarista.name if coverage.diarista else f"#{coverage.diarista_id}"
        posto = coverage.posto.name if coverage.posto else f"#{coverage.posto_id}"
        date_str = coverage.date.strftime("%d/%m/%Y") if coverage.date else "-"
        subject = _SUBJECTS[intent.event].format(diarista=diarista, posto=posto)

        if intent.event == NotificationEvent.COVERAGE_CREATED:
            supervisor = coverage.creator.name if coverage.creator else f"#{coverage.created_by}"
            html = (
                "<h1>Nova Cobertura Lançada</h1>"
                f"<p><strong>Supervisor:</strong> {supervisor}</p>"
                f"<p><strong>Diarista:</strong> {diarista}</p>"
                f"<p><strong>Posto:</strong> {posto}</p>"
                f"<p><strong>Data:</strong> {date_str}</p>"
                "<p>Acesse o painel de aprovação para analisar.</p>"
            )
        else:
            status = "REPROVADA" if intent.event == NotificationEvent.COVERAGE_REJECTED else "AJUSTE SOLICITADO"
            justification = f"<p><strong>Justificativa:</strong> {intent.note}</p>" if intent.note else ""
            html = (
                "<h1>Atualização de Status</h1>"
                f"<p>A cobertura de <strong>{diarista}</strong> em {date_str} foi marcada como "
                f"<strong>{status}</strong>.</p>"
                f"{justification}"
                "<p>Por favor, verifique o sistema para realizar os ajustes necessários.</p>"
            )
        return subject, html
