"""Сервис workflow покрытий: создание, согласование, оплата, правки.

Каждая операция - одна транзакция: условное обновление статуса
(UPDATE ... WHERE status = <ожидаемый>) и запись в workflow_history
фиксируются вместе или не фиксируются вовсе.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.config.settings import settings
from core.logging.logger import logger
from domain.entities.attachment import Attachment
from domain.entities.carga_horaria import CargaHoraria
from domain.entities.coverage import Coverage, CoverageStatus
from domain.entities.diarista import Diarista
from domain.entities.empresa import Empresa
from domain.entities.meio_pagamento import MeioPagamento
from domain.entities.motivo import Motivo
from domain.entities.posto import Posto
from domain.entities.reserva import Reserva
from domain.entities.user import UserRole
from domain.entities.workflow_history import WorkflowHistoryEntry
from domain.exceptions import (
    ConflictError,
    ForbiddenError,
    IllegalTransitionError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from shared.services.coverage_notification_service import (
    APPROVERS_GROUP,
    CoverageNotificationService,
    NotificationEvent,
    NotificationIntent,
    NotificationSink,
)
from shared.services.coverage_transitions import (
    Actor,
    ApprovalStage,
    CoverageOperation,
    approval_stage_for,
    ensure_operation_allowed,
    ensure_stage_allowed,
    next_status,
)


@dataclass
class CoverageInput:
    """Поля покрытия, которые заполняет супервайзер."""
    date: Optional[date]
    posto_id: Optional[int]
    diarista_id: Optional[int]
    motivo_id: Optional[int]
    carga_horaria_id: Optional[int]
    meio_pagamento_solicitado_id: Optional[int]
    value: Any
    reserva_id: Optional[int] = None
    empresa_id: Optional[int] = None
    observation: Optional[str] = None


@dataclass
class PaymentDetails:
    payment_method_effective_id: Optional[int]
    paid_at: Optional[datetime]
    note: Optional[str] = None


@dataclass
class AttachmentPayload:
    """Метаданные уже загруженного файла квитанции."""
    url: str
    original_name: str
    size: Optional[int] = None
    mime_type: Optional[str] = None


REQUIRED_INPUT_FIELDS = (
    "date",
    "posto_id",
    "diarista_id",
    "motivo_id",
    "carga_horaria_id",
    "meio_pagamento_solicitado_id",
)

REFERENCE_MODELS = {
    "posto_id": Posto,
    "diarista_id": Diarista,
    "reserva_id": Reserva,
    "motivo_id": Motivo,
    "carga_horaria_id": CargaHoraria,
    "meio_pagamento_solicitado_id": MeioPagamento,
    "empresa_id": Empresa,
}

# Поля, которые администратор может исправлять вне workflow
ADMIN_EDITABLE_FIELDS = ("date", "posto_id", "diarista_id", "reserva_id", "motivo_id", "value", "empresa_id")
ADMIN_NULLABLE_FIELDS = ("reserva_id", "empresa_id")

RESUBMIT_NOTE = "Correção de dados e reenvio."


def parse_value(raw: Any) -> Decimal:
    """Сумма покрытия: Decimal > 0 с двумя знаками."""
    if raw is None or isinstance(raw, bool):
        raise ValueError("value is required")
    try:
        value = Decimal(str(raw)).quantize(Decimal("0.01"))
    except (InvalidOperation, ValueError):
        raise ValueError(f"value '{raw}' is not a number")
    if not value.is_finite() or value <= 0:
        raise ValueError("value must be greater than zero")
    return value


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def booking_lock_key(kind: str, entity_id: int, on_date: date) -> str:
    return f"coverage:{kind}:{entity_id}:{on_date.isoformat()}"


class CoverageWorkflowService:
    """Единственная точка изменения статуса покрытия."""

    def __init__(
        self,
        session: AsyncSession,
        notification_sink: Optional[NotificationSink] = None,
        required_stages: Optional[int] = None,
        enforce_double_booking: Optional[bool] = None,
        record_creation_history: Optional[bool] = None,
    ):
        self.session = session
        self.required_stages = required_stages or settings.required_approval_stages
        self.notification_sink = notification_sink or CoverageNotificationService(
            session, required_stages=self.required_stages
        )
        self.enforce_double_booking = (
            settings.enforce_double_booking if enforce_double_booking is None else enforce_double_booking
        )
        self.record_creation_history = (
            settings.record_creation_history if record_creation_history is None else record_creation_history
        )
        if self.required_stages not in (1, 2):
            raise ValueError(f"required_stages must be 1 or 2, got {self.required_stages}")

    # ------------------------------------------------------------------
    # Операции
    # ------------------------------------------------------------------

    async def create(self, data: CoverageInput, actor: Actor) -> Coverage:
        """Создать покрытие в статусе PENDING."""
        ensure_operation_allowed(actor, CoverageOperation.CREATE)
        value = self._validate_input(data)
        references = await self._resolve_references(self._reference_ids(data))
        if self.enforce_double_booking:
            await self._ensure_no_double_booking(data.date, data.diarista_id, references.get("reserva_id"))

        coverage = Coverage(
            date=data.date,
            posto_id=data.posto_id,
            diarista_id=data.diarista_id,
            reserva_id=data.reserva_id,
            motivo_id=data.motivo_id,
            carga_horaria_id=data.carga_horaria_id,
            meio_pagamento_solicitado_id=data.meio_pagamento_solicitado_id,
            empresa_id=data.empresa_id,
            value=value,
            observation=data.observation,
            status=CoverageStatus.PENDING.value,
            created_by=actor.user_id,
        )
        try:
            self.session.add(coverage)
            if self.record_creation_history:
                await self.session.flush()
                self.session.add(self._history(coverage.id, actor, None, CoverageStatus.PENDING,
                                               CoverageOperation.CREATE, data.observation))
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error("Coverage creation failed", actor_id=actor.user_id, error=str(e))
            raise StorageError("Failed to store coverage") from e

        await self.session.refresh(coverage)
        logger.info(
            "Coverage created",
            coverage_id=coverage.id,
            actor_id=actor.user_id,
            diarista_id=coverage.diarista_id,
            date=str(coverage.date),
            value=str(coverage.value),
        )
        await self._notify(NotificationIntent(
            coverage_id=coverage.id,
            event=NotificationEvent.COVERAGE_CREATED,
            recipient_role=APPROVERS_GROUP,
        ))
        return coverage

    async def approve(
        self,
        coverage_id: int,
        actor: Actor,
        stage: Optional[ApprovalStage] = None,
        note: Optional[str] = None,
    ) -> Coverage:
        """
        Согласовать покрытие.

        Без явной ступени она определяется по текущему статусу
        (так работает администратор). Явная ступень, не совпадающая
        со статусом, - недопустимый переход.
        """
        ensure_operation_allowed(actor, CoverageOperation.APPROVE)
        coverage = await self._get_coverage(coverage_id)
        current = coverage.current_status
        target = next_status(current, self.required_stages, CoverageOperation.APPROVE)

        actual_stage = approval_stage_for(current, self.required_stages)
        if stage is not None and ApprovalStage(stage) != actual_stage:
            raise IllegalTransitionError(
                current.value,
                CoverageOperation.APPROVE.value,
                f"Coverage in status '{current.value}' awaits stage '{actual_stage.value}', not '{ApprovalStage(stage).value}'",
            )
        ensure_stage_allowed(actor, actual_stage, self.required_stages)

        now = _utcnow()
        if actual_stage == ApprovalStage.FIRST:
            values = {"approver_n1_id": actor.user_id, "approved_at_n1": now, "approval_note_n1": note}
        else:
            values = {"approver_id": actor.user_id, "approved_at": now}

        return await self._apply(coverage, current, target, CoverageOperation.APPROVE, values, actor, note)

    async def reject(self, coverage_id: int, actor: Actor, reason: Optional[str]) -> Coverage:
        """Отклонить покрытие (терминальный статус)."""
        ensure_operation_allowed(actor, CoverageOperation.REJECT)
        reason = self._require_text(reason, "reason")
        coverage = await self._get_coverage(coverage_id)
        current = coverage.current_status
        target = next_status(current, self.required_stages, CoverageOperation.REJECT)

        coverage = await self._apply(
            coverage, current, target, CoverageOperation.REJECT,
            {"rejection_reason": reason}, actor, reason,
        )
        await self._notify(NotificationIntent(
            coverage_id=coverage.id,
            event=NotificationEvent.COVERAGE_REJECTED,
            recipient_role=UserRole.SUPERVISOR.value,
            recipient_user_id=coverage.created_by,
            note=reason,
        ))
        return coverage

    async def request_adjustment(self, coverage_id: int, actor: Actor, note: Optional[str]) -> Coverage:
        """Вернуть покрытие автору на исправление."""
        ensure_operation_allowed(actor, CoverageOperation.REQUEST_ADJUSTMENT)
        note = self._require_text(note, "note")
        coverage = await self._get_coverage(coverage_id)
        current = coverage.current_status
        target = next_status(current, self.required_stages, CoverageOperation.REQUEST_ADJUSTMENT)

        coverage = await self._apply(
            coverage, current, target, CoverageOperation.REQUEST_ADJUSTMENT,
            {"adjustment_request": note}, actor, note,
        )
        await self._notify(NotificationIntent(
            coverage_id=coverage.id,
            event=NotificationEvent.COVERAGE_ADJUSTMENT_REQUESTED,
            recipient_role=UserRole.SUPERVISOR.value,
            recipient_user_id=coverage.created_by,
            note=note,
        ))
        return coverage

    async def resubmit(self, coverage_id: int, actor: Actor, data: CoverageInput) -> Coverage:
        """
        Исправить и отправить заново.

        Статус принудительно возвращается в PENDING; поля прошлых
        решений не очищаются, история остаётся в журнале.
        """
        ensure_operation_allowed(actor, CoverageOperation.RESUBMIT)
        value = self._validate_input(data)
        coverage = await self._get_coverage(coverage_id)
        if not actor.is_admin and coverage.created_by != actor.user_id:
            raise ForbiddenError("Only the creator or an administrator can resubmit this coverage")
        current = coverage.current_status
        target = next_status(current, self.required_stages, CoverageOperation.RESUBMIT)

        references = await self._resolve_references(self._reference_ids(data))
        if self.enforce_double_booking:
            await self._ensure_no_double_booking(
                data.date, data.diarista_id, references.get("reserva_id"), exclude_id=coverage.id
            )

        values = {
            "date": data.date,
            "posto_id": data.posto_id,
            "diarista_id": data.diarista_id,
            "reserva_id": data.reserva_id,
            "motivo_id": data.motivo_id,
            "carga_horaria_id": data.carga_horaria_id,
            "meio_pagamento_solicitado_id": data.meio_pagamento_solicitado_id,
            "empresa_id": data.empresa_id,
            "value": value,
            "observation": data.observation,
        }
        return await self._apply(coverage, current, target, CoverageOperation.RESUBMIT, values, actor, RESUBMIT_NOTE)

    async def pay(
        self,
        coverage_id: int,
        actor: Actor,
        payment: PaymentDetails,
        attachment: Optional[AttachmentPayload] = None,
    ) -> Coverage:
        """Отметить согласованное покрытие оплаченным; квитанция сохраняется в той же транзакции."""
        ensure_operation_allowed(actor, CoverageOperation.PAY)
        errors: Dict[str, str] = {}
        if payment.payment_method_effective_id is None:
            errors["payment_method_effective_id"] = "required"
        if payment.paid_at is None:
            errors["paid_at"] = "required"
        if attachment is not None:
            if not (attachment.url or "").strip():
                errors["attachment.url"] = "required"
            if not (attachment.original_name or "").strip():
                errors["attachment.original_name"] = "required"
        if errors:
            raise ValidationError("Invalid payment details", errors)

        coverage = await self._get_coverage(coverage_id)
        current = coverage.current_status
        target = next_status(current, self.required_stages, CoverageOperation.PAY)

        method = await self.session.get(MeioPagamento, payment.payment_method_effective_id)
        if method is None or not method.is_active:
            raise ValidationError(
                "Invalid payment details",
                {"payment_method_effective_id": "not found or inactive"},
            )

        values = {
            "payer_id": actor.user_id,
            "paid_at": payment.paid_at,
            "payment_method_effective_id": payment.payment_method_effective_id,
            "payment_note": payment.note,
        }
        extra_rows = []
        note = f"Pagamento realizado via {method.description}."
        if attachment is not None:
            extra_rows.append(Attachment(
                coverage_id=coverage.id,
                uploaded_by=actor.user_id,
                url=attachment.url,
                original_name=attachment.original_name,
                size=attachment.size,
                mime_type=attachment.mime_type,
            ))
            note += " Comprovante anexado."
        if payment.note:
            note += f" {payment.note}"

        return await self._apply(coverage, current, target, CoverageOperation.PAY, values, actor, note, extra_rows)

    async def admin_edit(self, coverage_id: int, actor: Actor, changes: Dict[str, Any]) -> Coverage:
        """Административная правка полей без смены статуса."""
        ensure_operation_allowed(actor, CoverageOperation.ADMIN_EDIT)
        values = self._validate_admin_changes(changes)
        coverage = await self._get_coverage(coverage_id)
        current = coverage.current_status
        target = next_status(current, self.required_stages, CoverageOperation.ADMIN_EDIT)

        await self._resolve_references({
            key: value for key, value in values.items() if key in REFERENCE_MODELS and value is not None
        })

        changed = [key for key, value in values.items() if getattr(coverage, key) != value]
        note = "Edição administrativa: " + (", ".join(changed) if changed else "sem alterações")
        return await self._apply(coverage, current, target, CoverageOperation.ADMIN_EDIT, values, actor, note)

    # ------------------------------------------------------------------
    # Внутреннее
    # ------------------------------------------------------------------

    async def _get_coverage(self, coverage_id: int) -> Coverage:
        coverage = await self.session.get(Coverage, coverage_id)
        if coverage is None:
            raise NotFoundError(f"Coverage {coverage_id} not found")
        return coverage

    async def _apply(
        self,
        coverage: Coverage,
        expected: CoverageStatus,
        target: CoverageStatus,
        operation: CoverageOperation,
        values: Dict[str, Any],
        actor: Actor,
        note: Optional[str],
        extra_rows: Iterable[Any] = (),
    ) -> Coverage:
        """Условное обновление + запись истории в одной транзакции."""
        coverage_id = coverage.id
        try:
            result = await self.session.execute(
                update(Coverage)
                .where(Coverage.id == coverage_id, Coverage.status == expected.value)
                .values(status=target.value, **values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                await self.session.rollback()
                logger.warning(
                    "Coverage status changed concurrently",
                    coverage_id=coverage_id,
                    expected_status=expected.value,
                    operation=operation.value,
                    actor_id=actor.user_id,
                )
                raise ConflictError(
                    f"Coverage {coverage_id} is no longer in status '{expected.value}'"
                )

            for key, value in values.items():
                setattr(coverage, key, value)
            coverage.status = target.value

            self.session.add(self._history(coverage_id, actor, expected, target, operation, note))
            for row in extra_rows:
                self.session.add(row)
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(
                "Coverage transition failed",
                coverage_id=coverage_id,
                operation=operation.value,
                error=str(e),
            )
            raise StorageError(f"Failed to apply '{operation.value}' to coverage {coverage_id}") from e

        await self.session.refresh(coverage)
        logger.info(
            "Coverage transition applied",
            coverage_id=coverage_id,
            operation=operation.value,
            from_status=expected.value,
            to_status=target.value,
            actor_id=actor.user_id,
            actor_role=actor.role,
        )
        return coverage

    @staticmethod
    def _history(
        coverage_id: int,
        actor: Actor,
        from_status: Optional[CoverageStatus],
        to_status: CoverageStatus,
        operation: CoverageOperation,
        note: Optional[str],
    ) -> WorkflowHistoryEntry:
        return WorkflowHistoryEntry(
            coverage_id=coverage_id,
            actor_id=actor.user_id,
            actor_role=actor.role,
            from_status=from_status.value if from_status else None,
            to_status=to_status.value,
            operation=operation.value,
            note=note,
            created_at=_utcnow(),
        )

    async def _notify(self, intent: NotificationIntent) -> None:
        """Уведомление best-effort: ошибки только логируются."""
        try:
            await self.notification_sink.notify(intent)
        except Exception:
            logger.exception(
                "Coverage notification failed",
                coverage_id=intent.coverage_id,
                event=intent.event.value,
            )

    @staticmethod
    def _require_text(text: Optional[str], field: str) -> str:
        if text is None or not text.strip():
            raise ValidationError(f"'{field}' is required", {field: "required"})
        return text.strip()

    @staticmethod
    def _validate_input(data: CoverageInput) -> Decimal:
        """Проверка обязательных полей; возвращает нормализованную сумму."""
        errors: Dict[str, str] = {}
        for field in REQUIRED_INPUT_FIELDS:
            if getattr(data, field) is None:
                errors[field] = "required"
        if data.date is not None and not isinstance(data.date, date):
            errors["date"] = "must be a date"
        value = None
        try:
            value = parse_value(data.value)
        except ValueError as e:
            errors["value"] = str(e)
        if errors:
            raise ValidationError("Invalid coverage data", errors)
        return value

    @staticmethod
    def _reference_ids(data: CoverageInput) -> Dict[str, int]:
        return {
            f.name: getattr(data, f.name)
            for f in fields(data)
            if f.name in REFERENCE_MODELS and getattr(data, f.name) is not None
        }

    async def _resolve_references(self, ids: Dict[str, int]) -> Dict[str, Any]:
        """Все ссылки должны существовать и быть активными."""
        resolved: Dict[str, Any] = {}
        errors: Dict[str, str] = {}
        for field, ref_id in ids.items():
            entity = await self.session.get(REFERENCE_MODELS[field], ref_id)
            if entity is None or not entity.is_active:
                errors[field] = "not found or inactive"
            else:
                resolved[field] = entity
        if errors:
            raise ValidationError("Unresolvable references", errors)
        return resolved

    async def _ensure_no_double_booking(
        self,
        on_date: date,
        diarista_id: int,
        reserva: Optional[Reserva],
        exclude_id: Optional[int] = None,
    ) -> None:
        """Одна диариста - одно покрытие в день; отсутствующий не покрывается дважды."""
        await self._lock_booking_keys(on_date, diarista_id, reserva)
        conditions = [
            Coverage.date == on_date,
            Coverage.status != CoverageStatus.REJECTED.value,
        ]
        if exclude_id is not None:
            conditions.append(Coverage.id != exclude_id)

        result = await self.session.execute(
            select(Coverage.id).where(Coverage.diarista_id == diarista_id, *conditions).limit(1)
        )
        if result.scalar_one_or_none() is not None:
            logger.info("Double booking rejected", diarista_id=diarista_id, date=str(on_date))
            raise ConflictError("Diarista already has a coverage on this date")

        if reserva is not None and not reserva.is_reserve_pool:
            result = await self.session.execute(
                select(Coverage.id).where(Coverage.reserva_id == reserva.id, *conditions).limit(1)
            )
            if result.scalar_one_or_none() is not None:
                logger.info("Double coverage rejected", reserva_id=reserva.id, date=str(on_date))
                raise ConflictError("Absent worker is already covered on this date")

    async def _lock_booking_keys(self, on_date: date, diarista_id: int, reserva: Optional[Reserva]) -> None:
        """
        Транзакционные advisory-блокировки на (диариста, дата) и (резерв, дата).

        Сериализуют проверку двойной записи и последующую вставку; снимаются
        при commit или rollback. Только для PostgreSQL.
        """
        if self.session.get_bind().dialect.name != "postgresql":
            return
        keys = [booking_lock_key("diarista", diarista_id, on_date)]
        if reserva is not None and not reserva.is_reserve_pool:
            keys.append(booking_lock_key("reserva", reserva.id, on_date))
        for key in keys:
            await self.session.execute(select(func.pg_advisory_xact_lock(func.hashtext(key))))

    @staticmethod
    def _validate_admin_changes(changes: Dict[str, Any]) -> Dict[str, Any]:
        errors: Dict[str, str] = {}
        values: Dict[str, Any] = {}
        if not changes:
            raise ValidationError("No fields to update", {"fields": "empty"})
        for key, raw in changes.items():
            if key not in ADMIN_EDITABLE_FIELDS:
                errors[key] = "not editable"
            elif key == "value":
                try:
                    values[key] = parse_value(raw)
                except ValueError as e:
                    errors[key] = str(e)
            elif key == "date":
                if not isinstance(raw, date):
                    errors[key] = "must be a date"
                else:
                    values[key] = raw
            elif raw is None and key not in ADMIN_NULLABLE_FIELDS:
                errors[key] = "required"
            else:
                values[key] = raw
        if errors:
            raise ValidationError("Invalid administrative changes", errors)
        return values
