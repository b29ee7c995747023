"""Чтение покрытий: очереди согласования и оплаты, история, списки по ролям."""

from __future__ import annotations

import calendar
from datetime import date
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from core.config.settings import settings
from core.logging.logger import logger
from domain.entities.coverage import Coverage, CoverageStatus
from domain.entities.user import UserRole, APPROVER_ROLES
from domain.entities.workflow_history import WorkflowHistoryEntry
from domain.exceptions import ForbiddenError, NotFoundError
from shared.services.coverage_transitions import Actor, statuses_awaiting

# Статусы, которые учитываются в месячных счётчиках
COUNTED_STATUSES = (CoverageStatus.APPROVED.value, CoverageStatus.PAID.value)

_REVIEWER_ROLES = frozenset(APPROVER_ROLES | {UserRole.FINANCE, UserRole.ADMIN})


def month_bounds(on_date: date) -> tuple[date, date]:
    """Первый и последний день месяца."""
    last_day = calendar.monthrange(on_date.year, on_date.month)[1]
    return on_date.replace(day=1), on_date.replace(day=last_day)


class CoverageQueryService:
    """Запросы без изменения данных."""

    def __init__(self, session: AsyncSession, required_stages: Optional[int] = None):
        self.session = session
        self.required_stages = required_stages or settings.required_approval_stages

    @staticmethod
    def _with_catalogs(stmt):
        return stmt.options(
            selectinload(Coverage.posto),
            selectinload(Coverage.diarista),
            selectinload(Coverage.reserva),
            selectinload(Coverage.motivo),
            selectinload(Coverage.carga_horaria),
            selectinload(Coverage.meio_pagamento_solicitado),
            selectinload(Coverage.empresa),
            selectinload(Coverage.creator),
        )

    async def get_coverage(self, coverage_id: int, actor: Actor) -> Coverage:
        """Автор, администратор, согласующие и финансы могут видеть запись."""
        result = await self.session.execute(
            self._with_catalogs(select(Coverage)).where(Coverage.id == coverage_id)
        )
        coverage = result.scalar_one_or_none()
        if coverage is None:
            raise NotFoundError(f"Coverage {coverage_id} not found")
        if actor.user_role not in _REVIEWER_ROLES and coverage.created_by != actor.user_id:
            raise ForbiddenError("Coverage belongs to another supervisor")
        return coverage

    async def list_for_actor(self, actor: Actor, limit: int = 50) -> List[Coverage]:
        """Супервайзер видит свои записи, администратор - все."""
        role = actor.user_role
        stmt = self._with_catalogs(select(Coverage))
        if role == UserRole.SUPERVISOR:
            stmt = stmt.where(Coverage.created_by == actor.user_id)
        elif role != UserRole.ADMIN:
            raise ForbiddenError(f"Role '{actor.role}' has no coverage list")
        stmt = stmt.order_by(Coverage.created_at.desc()).limit(limit)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_pending_approval(self, actor: Actor) -> List[Dict[str, Any]]:
        """
        Очередь согласования с информационными счётчиками за месяц.

        Returns:
            Список словарей {"coverage", "diarias_no_mes", "faltas_no_mes"}
        """
        statuses = statuses_awaiting(actor.role, self.required_stages)
        if not statuses:
            raise ForbiddenError(f"Role '{actor.role}' has no approval queue")

        result = await self.session.execute(
            self._with_catalogs(select(Coverage))
            .where(Coverage.status.in_([s.value for s in statuses]))
            .order_by(Coverage.date.asc())
        )
        items = []
        for coverage in result.scalars().all():
            counts = await self.monthly_counts(coverage.diarista_id, coverage.reserva_id, coverage.date)
            items.append({"coverage": coverage, **counts})

        logger.debug("Approval queue loaded", actor_id=actor.user_id, items=len(items))
        return items

    async def monthly_counts(
        self,
        diarista_id: int,
        reserva_id: Optional[int],
        on_date: date,
    ) -> Dict[str, int]:
        """Сколько согласованных/оплаченных покрытий за месяц у диаристы и у отсутствующего."""
        start, end = month_bounds(on_date)
        period = (
            Coverage.status.in_(COUNTED_STATUSES),
            Coverage.date >= start,
            Coverage.date <= end,
        )
        diarias = await self.session.scalar(
            select(func.count(Coverage.id)).where(Coverage.diarista_id == diarista_id, *period)
        )
        faltas = 0
        if reserva_id is not None:
            faltas = await self.session.scalar(
                select(func.count(Coverage.id)).where(Coverage.reserva_id == reserva_id, *period)
            )
        return {"diarias_no_mes": int(diarias or 0), "faltas_no_mes": int(faltas or 0)}

    def _ensure_finance(self, actor: Actor) -> None:
        if actor.user_role not in (UserRole.FINANCE, UserRole.ADMIN):
            raise ForbiddenError(f"Role '{actor.role}' has no access to payments")

    async def list_payable(self, actor: Actor) -> List[Coverage]:
        """Согласованные покрытия, ожидающие оплаты."""
        self._ensure_finance(actor)
        result = await self.session.execute(
            self._with_catalogs(select(Coverage))
            .options(selectinload(Coverage.approver), selectinload(Coverage.approver_n1))
            .where(Coverage.status == CoverageStatus.APPROVED.value)
            .order_by(Coverage.date.asc())
        )
        return list(result.scalars().all())

    async def list_paid_history(self, actor: Actor, limit: int = 50) -> List[Coverage]:
        """Оплаченные покрытия с квитанциями."""
        self._ensure_finance(actor)
        result = await self.session.execute(
            self._with_catalogs(select(Coverage))
            .options(
                selectinload(Coverage.attachments),
                selectinload(Coverage.payment_method_effective),
                selectinload(Coverage.payer),
            )
            .where(Coverage.status == CoverageStatus.PAID.value)
            .order_by(Coverage.paid_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def get_history(self, coverage_id: int, actor: Actor) -> List[WorkflowHistoryEntry]:
        """Журнал переходов, старые записи первыми."""
        await self.get_coverage(coverage_id, actor)
        result = await self.session.execute(
            select(WorkflowHistoryEntry)
            .where(WorkflowHistoryEntry.coverage_id == coverage_id)
            .order_by(WorkflowHistoryEntry.created_at.asc(), WorkflowHistoryEntry.id.asc())
        )
        return list(result.scalars().all())
