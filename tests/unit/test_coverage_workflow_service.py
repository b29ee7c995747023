"""Unit-тесты CoverageWorkflowService."""

import pytest
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.sql.dml import Update

from domain.entities.coverage import Coverage, CoverageStatus
from domain.exceptions import (
    ConflictError,
    ForbiddenError,
    IllegalTransitionError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from shared.services.coverage_notification_service import NotificationEvent
from shared.services.coverage_transitions import Actor, ApprovalStage
from shared.services.coverage_workflow_service import (
    RESUBMIT_NOTE,
    AttachmentPayload,
    PaymentDetails,
    parse_value,
)
from tests.utils.test_helpers import CoverageDataFactory, where_equals

PAID_AT = datetime(2026, 3, 15, 14, 0, tzinfo=timezone.utc)


def _put(store, **kwargs) -> Coverage:
    return store.put(CoverageDataFactory.create_coverage(**kwargs))


# --- parse_value ---


@pytest.mark.parametrize("raw, expected", [
    ("150", Decimal("150.00")),
    (150.5, Decimal("150.50")),
    (Decimal("99.999"), Decimal("100.00")),
])
def test_parse_value_valid(raw, expected):
    assert parse_value(raw) == expected


@pytest.mark.parametrize("raw", [None, "", "abc", 0, "-10", True, "NaN"])
def test_parse_value_invalid(raw):
    with pytest.raises(ValueError):
        parse_value(raw)


def test_service_rejects_unsupported_stage_count(make_service):
    with pytest.raises(ValueError):
        make_service(required_stages=3)


# --- create ---


@pytest.mark.asyncio
async def test_create_pending_coverage(make_service, store, mock_db_session, notification_sink, supervisor):
    """Новое покрытие создаётся в PENDING, согласующие получают уведомление."""
    service = make_service()

    coverage = await service.create(CoverageDataFactory.create_input(), supervisor)

    assert coverage.id == 100
    assert coverage.status == CoverageStatus.PENDING.value
    assert coverage.created_by == supervisor.user_id
    assert coverage.value == Decimal("150.00")
    assert store.history == []
    mock_db_session.commit.assert_awaited_once()
    intent = notification_sink.notify.await_args.args[0]
    assert intent.coverage_id == 100
    assert intent.event == NotificationEvent.COVERAGE_CREATED
    assert intent.recipient_role == "approver"


@pytest.mark.asyncio
async def test_create_records_history_when_enabled(make_service, store, mock_db_session, supervisor):
    service = make_service(record_creation_history=True)

    await service.create(CoverageDataFactory.create_input(observation="Cobertura de férias"), supervisor)

    mock_db_session.flush.assert_awaited_once()
    assert len(store.history) == 1
    entry = store.history[0]
    assert entry.from_status is None
    assert entry.to_status == "PENDING"
    assert entry.operation == "create"
    assert entry.note == "Cobertura de férias"


@pytest.mark.asyncio
async def test_create_missing_fields(make_service, store, mock_db_session, supervisor):
    service = make_service()
    data = CoverageDataFactory.create_input(posto_id=None, date=None, value="0")

    with pytest.raises(ValidationError) as exc_info:
        await service.create(data, supervisor)

    assert set(exc_info.value.errors) == {"posto_id", "date", "value"}
    mock_db_session.get.assert_not_awaited()
    mock_db_session.add.assert_not_called()


@pytest.mark.asyncio
@pytest.mark.parametrize("field, bad_id", [
    ("posto_id", 99),
    ("posto_id", 9),
    ("meio_pagamento_solicitado_id", 9),
    ("reserva_id", 42),
])
async def test_create_unresolvable_reference(make_service, store, mock_db_session, supervisor, field, bad_id):
    """Несуществующая или неактивная ссылка - ошибка валидации."""
    service = make_service()

    with pytest.raises(ValidationError) as exc_info:
        await service.create(CoverageDataFactory.create_input(**{field: bad_id}), supervisor)

    assert exc_info.value.errors == {field: "not found or inactive"}
    mock_db_session.add.assert_not_called()


@pytest.mark.asyncio
async def test_create_forbidden_for_finance(make_service, store, mock_db_session, finance):
    service = make_service()

    with pytest.raises(ForbiddenError):
        await service.create(CoverageDataFactory.create_input(), finance)

    mock_db_session.get.assert_not_awaited()


@pytest.mark.asyncio
async def test_create_double_booking_diarista(make_service, store, mock_db_session, supervisor):
    """Диариста уже занята в этот день."""
    service = make_service()
    store.select_results = [55]

    with pytest.raises(ConflictError):
        await service.create(CoverageDataFactory.create_input(), supervisor)

    mock_db_session.add.assert_not_called()
    mock_db_session.commit.assert_not_awaited()


@pytest.mark.asyncio
async def test_create_double_booking_absent_worker(make_service, store, supervisor):
    """Отсутствующий сотрудник уже покрыт другой диаристой."""
    service = make_service()
    store.select_results = [None, 77]

    with pytest.raises(ConflictError):
        await service.create(CoverageDataFactory.create_input(reserva_id=2), supervisor)

    assert len(store.selects) == 2


@pytest.mark.asyncio
async def test_create_reserve_pool_not_checked_for_double_coverage(make_service, store, supervisor):
    service = make_service()

    await service.create(CoverageDataFactory.create_input(reserva_id=1), supervisor)

    assert len(store.selects) == 1


@pytest.mark.asyncio
async def test_create_without_double_booking_check(make_service, store, supervisor):
    service = make_service(enforce_double_booking=False)

    await service.create(CoverageDataFactory.create_input(reserva_id=2), supervisor)

    assert store.selects == []


def _lock_keys(store):
    keys = []
    for stmt in store.selects:
        if "pg_advisory_xact_lock" in str(stmt):
            keys.extend(value for value in stmt.compile().params.values() if isinstance(value, str))
    return keys


@pytest.mark.asyncio
async def test_create_locks_booking_keys_on_postgresql(make_service, store, mock_db_session, supervisor):
    """Проверка двойной записи и вставка идут под advisory-блокировками."""
    mock_db_session.get_bind.return_value.dialect.name = "postgresql"
    service = make_service()

    await service.create(CoverageDataFactory.create_input(reserva_id=2), supervisor)

    assert _lock_keys(store) == ["coverage:diarista:1:2026-03-10", "coverage:reserva:2:2026-03-10"]
    assert all("pg_advisory_xact_lock" in str(stmt) for stmt in store.selects[:2])
    assert len(store.selects) == 4
    mock_db_session.commit.assert_awaited_once()


@pytest.mark.asyncio
async def test_reserve_pool_is_not_locked(make_service, store, mock_db_session, supervisor):
    mock_db_session.get_bind.return_value.dialect.name = "postgresql"
    service = make_service()

    await service.create(CoverageDataFactory.create_input(reserva_id=1), supervisor)

    assert _lock_keys(store) == ["coverage:diarista:1:2026-03-10"]


@pytest.mark.asyncio
async def test_booking_locks_skipped_outside_postgresql(make_service, store, mock_db_session, supervisor):
    mock_db_session.get_bind.return_value.dialect.name = "sqlite"
    service = make_service()

    await service.create(CoverageDataFactory.create_input(reserva_id=2), supervisor)

    assert _lock_keys(store) == []
    assert len(store.selects) == 2


@pytest.mark.asyncio
async def test_create_storage_failure(make_service, store, mock_db_session, notification_sink, supervisor):
    service = make_service()
    mock_db_session.commit.side_effect = SQLAlchemyError("connection lost")

    with pytest.raises(StorageError):
        await service.create(CoverageDataFactory.create_input(), supervisor)

    mock_db_session.rollback.assert_awaited_once()
    notification_sink.notify.assert_not_awaited()


# --- approve / pay (одна ступень) ---


@pytest.mark.asyncio
async def test_single_stage_approve_then_pay(make_service, store, mock_db_session, approver, finance):
    """PENDING -> APPROVED -> PAID, по записи истории на переход."""
    service = make_service()
    _put(store, id=1)

    coverage = await service.approve(1, approver)
    assert coverage.status == "APPROVED"
    assert coverage.approver_id == approver.user_id
    assert coverage.approved_at is not None

    coverage = await service.pay(1, finance, PaymentDetails(payment_method_effective_id=1, paid_at=PAID_AT))
    assert coverage.status == "PAID"
    assert coverage.payer_id == finance.user_id
    assert coverage.paid_at == PAID_AT
    assert coverage.payment_method_effective_id == 1

    assert [(h.from_status, h.to_status, h.operation) for h in store.history] == [
        ("PENDING", "APPROVED", "approve"),
        ("APPROVED", "PAID", "pay"),
    ]
    assert store.history[0].actor_role == "approver"
    assert store.history[1].note == "Pagamento realizado via PIX."
    assert mock_db_session.commit.await_count == 2


@pytest.mark.asyncio
async def test_approve_not_found(make_service, store, approver):
    service = make_service()

    with pytest.raises(NotFoundError):
        await service.approve(404, approver)


@pytest.mark.asyncio
async def test_supervisor_cannot_approve(make_service, store, mock_db_session, supervisor):
    service = make_service()
    _put(store, id=1)

    with pytest.raises(ForbiddenError):
        await service.approve(1, supervisor)

    mock_db_session.get.assert_not_awaited()


@pytest.mark.asyncio
async def test_unknown_role_is_forbidden(make_service, store):
    service = make_service()
    _put(store, id=1)

    with pytest.raises(ForbiddenError):
        await service.approve(1, Actor(user_id=99, role="guest"))


@pytest.mark.asyncio
async def test_pay_requires_approved(make_service, store, finance):
    """Оплата возможна только из APPROVED."""
    service = make_service()
    _put(store, id=1, status=CoverageStatus.PENDING)

    with pytest.raises(IllegalTransitionError) as exc_info:
        await service.pay(1, finance, PaymentDetails(payment_method_effective_id=1, paid_at=PAID_AT))

    assert exc_info.value.current_status == "PENDING"
    assert exc_info.value.attempted_operation == "pay"
    assert store.executed == []
    assert store.history == []


@pytest.mark.asyncio
async def test_pay_with_receipt(make_service, store, finance):
    service = make_service()
    _put(store, id=1, status=CoverageStatus.APPROVED)
    receipt = AttachmentPayload(url="https://files.example.com/r/1.pdf", original_name="recibo.pdf",
                                size=2048, mime_type="application/pdf")

    await service.pay(1, finance, PaymentDetails(1, PAID_AT, note="Lote 12"), receipt)

    assert len(store.attachments) == 1
    attachment = store.attachments[0]
    assert attachment.coverage_id == 1
    assert attachment.uploaded_by == finance.user_id
    assert attachment.original_name == "recibo.pdf"
    assert store.history[0].note == "Pagamento realizado via PIX. Comprovante anexado. Lote 12"


@pytest.mark.asyncio
async def test_pay_validation(make_service, store, mock_db_session, finance):
    service = make_service()
    _put(store, id=1, status=CoverageStatus.APPROVED)

    with pytest.raises(ValidationError) as exc_info:
        await service.pay(1, finance, PaymentDetails(payment_method_effective_id=None, paid_at=None))

    assert set(exc_info.value.errors) == {"payment_method_effective_id", "paid_at"}
    mock_db_session.get.assert_not_awaited()


@pytest.mark.asyncio
async def test_pay_inactive_method(make_service, store, finance):
    service = make_service()
    _put(store, id=1, status=CoverageStatus.APPROVED)

    with pytest.raises(ValidationError):
        await service.pay(1, finance, PaymentDetails(payment_method_effective_id=9, paid_at=PAID_AT))

    assert store.history == []


@pytest.mark.asyncio
async def test_approver_cannot_pay(make_service, store, approver):
    service = make_service()
    _put(store, id=1, status=CoverageStatus.APPROVED)

    with pytest.raises(ForbiddenError):
        await service.pay(1, approver, PaymentDetails(1, PAID_AT))


# --- reject ---


@pytest.mark.asyncio
async def test_reject_is_terminal(make_service, store, notification_sink, approver):
    """Повторное отклонение - недопустимый переход, история не растёт."""
    service = make_service()
    _put(store, id=1)

    coverage = await service.reject(1, approver, "Valor incorreto")
    assert coverage.status == "REJECTED"
    assert coverage.rejection_reason == "Valor incorreto"

    intent = notification_sink.notify.await_args.args[0]
    assert intent.event == NotificationEvent.COVERAGE_REJECTED
    assert intent.recipient_user_id == 10
    assert intent.note == "Valor incorreto"

    with pytest.raises(IllegalTransitionError) as exc_info:
        await service.reject(1, approver, "De novo")
    assert exc_info.value.current_status == "REJECTED"
    assert len(store.history) == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("reason", [None, "", "   "])
async def test_reject_requires_reason(make_service, store, mock_db_session, approver, reason):
    service = make_service()
    _put(store, id=1)

    with pytest.raises(ValidationError):
        await service.reject(1, approver, reason)

    mock_db_session.get.assert_not_awaited()


@pytest.mark.asyncio
async def test_notification_failure_does_not_break_operation(make_service, store, mock_db_session,
                                                             notification_sink, approver):
    service = make_service()
    _put(store, id=1)
    notification_sink.notify.side_effect = RuntimeError("smtp down")

    coverage = await service.reject(1, approver, "Duplicado")

    assert coverage.status == "REJECTED"
    mock_db_session.commit.assert_awaited_once()


# --- adjustment / resubmit ---


@pytest.mark.asyncio
async def test_adjustment_round_trip(make_service, store, notification_sink, approver, supervisor):
    """PENDING -> ADJUSTMENT_REQUESTED -> PENDING с двумя записями истории."""
    service = make_service()
    _put(store, id=1)

    coverage = await service.request_adjustment(1, approver, "Corrigir valor")
    assert coverage.status == "ADJUSTMENT_REQUESTED"
    assert coverage.adjustment_request == "Corrigir valor"
    intent = notification_sink.notify.await_args.args[0]
    assert intent.event == NotificationEvent.COVERAGE_ADJUSTMENT_REQUESTED
    assert intent.recipient_user_id == supervisor.user_id

    coverage = await service.resubmit(1, supervisor, CoverageDataFactory.create_input(value="180"))
    assert coverage.status == "PENDING"
    assert coverage.value == Decimal("180.00")
    # Поля прошлого решения сохраняются
    assert coverage.adjustment_request == "Corrigir valor"

    assert [(h.from_status, h.to_status, h.note) for h in store.history] == [
        ("PENDING", "ADJUSTMENT_REQUESTED", "Corrigir valor"),
        ("ADJUSTMENT_REQUESTED", "PENDING", RESUBMIT_NOTE),
    ]


@pytest.mark.asyncio
async def test_resubmit_excludes_itself_from_double_booking(make_service, store, supervisor):
    service = make_service()
    _put(store, id=5, status=CoverageStatus.ADJUSTMENT_REQUESTED)

    await service.resubmit(5, supervisor, CoverageDataFactory.create_input())

    compiled = store.selects[0].compile()
    assert "coverages.id !=" in str(compiled)
    assert 5 in compiled.params.values()


@pytest.mark.asyncio
async def test_resubmit_by_other_supervisor(make_service, store, other_supervisor):
    service = make_service()
    _put(store, id=1, status=CoverageStatus.ADJUSTMENT_REQUESTED)

    with pytest.raises(ForbiddenError):
        await service.resubmit(1, other_supervisor, CoverageDataFactory.create_input())

    assert store.history == []


@pytest.mark.asyncio
async def test_admin_can_resubmit_any_coverage(make_service, store, admin):
    service = make_service()
    _put(store, id=1, status=CoverageStatus.ADJUSTMENT_REQUESTED)

    coverage = await service.resubmit(1, admin, CoverageDataFactory.create_input())

    assert coverage.status == "PENDING"
    assert store.history[0].actor_role == "admin"


@pytest.mark.asyncio
async def test_resubmit_from_approved_is_illegal(make_service, store, supervisor):
    service = make_service()
    _put(store, id=1, status=CoverageStatus.APPROVED)

    with pytest.raises(IllegalTransitionError):
        await service.resubmit(1, supervisor, CoverageDataFactory.create_input())


# --- две ступени ---


@pytest.mark.asyncio
async def test_two_stage_flow(make_service, store, approver_n1, approver_n2):
    service = make_service(required_stages=2)
    _put(store, id=1)

    coverage = await service.approve(1, approver_n1, note="Confere")
    assert coverage.status == "APPROVED_STAGE1"
    assert coverage.approver_n1_id == approver_n1.user_id
    assert coverage.approval_note_n1 == "Confere"
    assert coverage.approver_id is None

    with pytest.raises(ForbiddenError):
        await service.approve(1, approver_n1)

    coverage = await service.approve(1, approver_n2, stage=ApprovalStage.FINAL)
    assert coverage.status == "APPROVED"
    assert coverage.approver_id == approver_n2.user_id
    assert [h.to_status for h in store.history] == ["APPROVED_STAGE1", "APPROVED"]


@pytest.mark.asyncio
async def test_legacy_approver_only_closes_final_stage(make_service, store, approver):
    service = make_service(required_stages=2)
    _put(store, id=1)
    _put(store, id=2, status=CoverageStatus.APPROVED_STAGE1)

    with pytest.raises(ForbiddenError):
        await service.approve(1, approver)

    coverage = await service.approve(2, approver)
    assert coverage.status == "APPROVED"


@pytest.mark.asyncio
async def test_admin_approves_stage_derived_from_status(make_service, store, admin):
    service = make_service(required_stages=2)
    _put(store, id=1)

    assert (await service.approve(1, admin)).status == "APPROVED_STAGE1"
    assert (await service.approve(1, admin)).status == "APPROVED"


@pytest.mark.asyncio
async def test_explicit_stage_must_match_status(make_service, store, admin):
    service = make_service(required_stages=2)
    _put(store, id=1)

    with pytest.raises(IllegalTransitionError):
        await service.approve(1, admin, stage=ApprovalStage.FINAL)

    assert store.executed == []


@pytest.mark.asyncio
async def test_reject_after_first_stage(make_service, store, approver_n2):
    service = make_service(required_stages=2)
    _put(store, id=1, status=CoverageStatus.APPROVED_STAGE1)

    coverage = await service.reject(1, approver_n2, "Fora da escala")

    assert coverage.status == "REJECTED"


# --- конкурентность и хранилище ---


@pytest.mark.asyncio
async def test_transition_update_is_guarded_by_expected_status(make_service, store, approver):
    service = make_service()
    _put(store, id=1)

    await service.approve(1, approver)

    update_stmt = next(stmt for stmt in store.executed if isinstance(stmt, Update))
    compiled = update_stmt.compile()
    assert "coverages.status = :status_1" in str(compiled)
    assert compiled.params["status_1"] == CoverageStatus.PENDING.value
    assert compiled.params["status"] == CoverageStatus.APPROVED.value
    assert where_equals(update_stmt) == {"id": 1, "status": CoverageStatus.PENDING.value}


@pytest.mark.asyncio
async def test_stale_status_raises_conflict(make_service, store, mock_db_session, approver):
    """Статус изменился между чтением и записью."""
    service = make_service()
    _put(store, id=1)
    store.stored_status[1] = CoverageStatus.REJECTED.value

    with pytest.raises(ConflictError):
        await service.approve(1, approver)

    mock_db_session.rollback.assert_awaited_once()
    mock_db_session.commit.assert_not_awaited()
    assert store.history == []
    assert store.stored_status[1] == CoverageStatus.REJECTED.value


@pytest.mark.asyncio
async def test_concurrent_decisions_single_winner(make_service, store, approver, admin):
    """Одновременные approve и reject: побеждает один, запись истории одна."""
    service = make_service()
    _put(store, id=1)

    await service.approve(1, approver)

    # второй участник прочитал запись до коммита первого
    store.put(CoverageDataFactory.create_coverage(id=1), stored=False)
    with pytest.raises(ConflictError):
        await service.reject(1, admin, "Duplicado")

    assert store.stored_status[1] == CoverageStatus.APPROVED.value
    assert len(store.history) == 1
    assert store.history[0].to_status == "APPROVED"


@pytest.mark.asyncio
async def test_transition_storage_failure(make_service, store, mock_db_session, notification_sink, approver):
    service = make_service()
    _put(store, id=1)
    mock_db_session.commit.side_effect = SQLAlchemyError("deadlock")

    with pytest.raises(StorageError):
        await service.reject(1, approver, "Valor incorreto")

    mock_db_session.rollback.assert_awaited_once()
    notification_sink.notify.assert_not_awaited()


# --- admin edit ---


@pytest.mark.asyncio
async def test_admin_edit_keeps_status(make_service, store, admin):
    service = make_service()
    _put(store, id=1, status=CoverageStatus.APPROVED)

    coverage = await service.admin_edit(1, admin, {"value": "200", "reserva_id": None})

    assert coverage.status == "APPROVED"
    assert coverage.value == Decimal("200.00")
    entry = store.history[0]
    assert (entry.from_status, entry.to_status, entry.operation) == ("APPROVED", "APPROVED", "admin_edit")
    assert entry.note == "Edição administrativa: value"


@pytest.mark.asyncio
async def test_admin_edit_does_not_check_double_booking(make_service, store, admin):
    service = make_service()
    _put(store, id=1, status=CoverageStatus.PAID)

    await service.admin_edit(1, admin, {"diarista_id": 2})

    assert store.selects == []


@pytest.mark.asyncio
@pytest.mark.parametrize("changes, field", [
    ({"status": "PAID"}, "status"),
    ({"value": "-5"}, "value"),
    ({"date": "2026-03-10"}, "date"),
    ({"posto_id": None}, "posto_id"),
    ({}, "fields"),
])
async def test_admin_edit_validation(make_service, store, admin, changes, field):
    service = make_service()
    _put(store, id=1)

    with pytest.raises(ValidationError) as exc_info:
        await service.admin_edit(1, admin, changes)

    assert field in exc_info.value.errors


@pytest.mark.asyncio
async def test_admin_edit_inactive_reference(make_service, store, admin):
    service = make_service()
    _put(store, id=1)

    with pytest.raises(ValidationError):
        await service.admin_edit(1, admin, {"posto_id": 9})


@pytest.mark.asyncio
async def test_admin_edit_forbidden_for_supervisor(make_service, store, supervisor):
    service = make_service()
    _put(store, id=1)

    with pytest.raises(ForbiddenError):
        await service.admin_edit(1, supervisor, {"value": "10"})
