"""Unit-тесты CoverageQueryService."""

import pytest
from datetime import date
from unittest.mock import MagicMock

from domain.entities.coverage import CoverageStatus
from domain.entities.workflow_history import WorkflowHistoryEntry
from domain.exceptions import ForbiddenError, NotFoundError
from shared.services.coverage_query_service import CoverageQueryService, month_bounds
from tests.utils.test_helpers import CoverageDataFactory


def _scalars_result(rows):
    result = MagicMock()
    result.scalars.return_value.all.return_value = rows
    return result


def _one_result(row):
    result = MagicMock()
    result.scalar_one_or_none.return_value = row
    return result


@pytest.fixture
def query_service(mock_db_session):
    return CoverageQueryService(mock_db_session, required_stages=1)


def test_month_bounds():
    assert month_bounds(date(2026, 2, 14)) == (date(2026, 2, 1), date(2026, 2, 28))
    assert month_bounds(date(2028, 2, 1)) == (date(2028, 2, 1), date(2028, 2, 29))
    assert month_bounds(date(2026, 12, 31)) == (date(2026, 12, 1), date(2026, 12, 31))


@pytest.mark.asyncio
async def test_get_coverage_by_creator(query_service, mock_db_session, supervisor):
    coverage = CoverageDataFactory.create_coverage(id=3, created_by=supervisor.user_id)
    mock_db_session.execute.return_value = _one_result(coverage)

    assert await query_service.get_coverage(3, supervisor) is coverage


@pytest.mark.asyncio
async def test_get_coverage_foreign_supervisor(query_service, mock_db_session, other_supervisor):
    mock_db_session.execute.return_value = _one_result(CoverageDataFactory.create_coverage(created_by=10))

    with pytest.raises(ForbiddenError):
        await query_service.get_coverage(1, other_supervisor)


@pytest.mark.asyncio
async def test_get_coverage_visible_to_finance(query_service, mock_db_session, finance):
    coverage = CoverageDataFactory.create_coverage(created_by=10)
    mock_db_session.execute.return_value = _one_result(coverage)

    assert await query_service.get_coverage(1, finance) is coverage


@pytest.mark.asyncio
async def test_get_coverage_not_found(query_service, mock_db_session, admin):
    mock_db_session.execute.return_value = _one_result(None)

    with pytest.raises(NotFoundError):
        await query_service.get_coverage(404, admin)


@pytest.mark.asyncio
async def test_list_for_supervisor_filters_by_creator(query_service, mock_db_session, supervisor):
    rows = [CoverageDataFactory.create_coverage(id=1), CoverageDataFactory.create_coverage(id=2)]
    mock_db_session.execute.return_value = _scalars_result(rows)

    out = await query_service.list_for_actor(supervisor)

    assert out == rows
    statement = mock_db_session.execute.await_args.args[0]
    assert "coverages.created_by" in str(statement)


@pytest.mark.asyncio
async def test_list_for_admin_is_unfiltered(query_service, mock_db_session, admin):
    mock_db_session.execute.return_value = _scalars_result([])

    await query_service.list_for_actor(admin)

    statement = mock_db_session.execute.await_args.args[0]
    assert statement.whereclause is None


@pytest.mark.asyncio
async def test_list_for_finance_forbidden(query_service, finance):
    with pytest.raises(ForbiddenError):
        await query_service.list_for_actor(finance)


@pytest.mark.asyncio
async def test_pending_queue_with_monthly_counts(query_service, mock_db_session, approver):
    """Очередь согласования содержит счётчики диарий и отсутствий за месяц."""
    coverage = CoverageDataFactory.create_coverage(id=7, reserva_id=2)
    mock_db_session.execute.return_value = _scalars_result([coverage])
    mock_db_session.scalar.side_effect = [4, 2]

    items = await query_service.list_pending_approval(approver)

    assert items == [{"coverage": coverage, "diarias_no_mes": 4, "faltas_no_mes": 2}]
    assert mock_db_session.scalar.await_count == 2


@pytest.mark.asyncio
async def test_pending_queue_without_absent_worker(query_service, mock_db_session, approver):
    coverage = CoverageDataFactory.create_coverage(id=7, reserva_id=None)
    mock_db_session.execute.return_value = _scalars_result([coverage])
    mock_db_session.scalar.return_value = None

    items = await query_service.list_pending_approval(approver)

    assert items[0]["diarias_no_mes"] == 0
    assert items[0]["faltas_no_mes"] == 0
    assert mock_db_session.scalar.await_count == 1


@pytest.mark.asyncio
async def test_pending_queue_by_stage(mock_db_session, approver_n2):
    service = CoverageQueryService(mock_db_session, required_stages=2)
    mock_db_session.execute.return_value = _scalars_result([])

    await service.list_pending_approval(approver_n2)

    params = mock_db_session.execute.await_args.args[0].compile().params
    assert CoverageStatus.APPROVED_STAGE1.value in str(params)
    assert CoverageStatus.PENDING.value not in str(params)


@pytest.mark.asyncio
async def test_pending_queue_forbidden_for_supervisor(query_service, supervisor):
    with pytest.raises(ForbiddenError):
        await query_service.list_pending_approval(supervisor)


@pytest.mark.asyncio
async def test_payable_and_history_for_finance(query_service, mock_db_session, finance):
    approved = CoverageDataFactory.create_coverage(id=1, status=CoverageStatus.APPROVED)
    paid = CoverageDataFactory.create_coverage(id=2, status=CoverageStatus.PAID)
    mock_db_session.execute.side_effect = [_scalars_result([approved]), _scalars_result([paid])]

    assert await query_service.list_payable(finance) == [approved]
    assert await query_service.list_paid_history(finance) == [paid]


@pytest.mark.asyncio
async def test_payable_forbidden_for_approver(query_service, approver):
    with pytest.raises(ForbiddenError):
        await query_service.list_payable(approver)


@pytest.mark.asyncio
async def test_history_ordered_entries(query_service, mock_db_session, supervisor):
    coverage = CoverageDataFactory.create_coverage(id=1, created_by=supervisor.user_id)
    entries = [
        WorkflowHistoryEntry(coverage_id=1, to_status="ADJUSTMENT_REQUESTED", from_status="PENDING",
                             operation="request_adjustment"),
        WorkflowHistoryEntry(coverage_id=1, to_status="PENDING", from_status="ADJUSTMENT_REQUESTED",
                             operation="resubmit"),
    ]
    mock_db_session.execute.side_effect = [_one_result(coverage), _scalars_result(entries)]

    assert await query_service.get_history(1, supervisor) == entries
    statement = mock_db_session.execute.await_args.args[0]
    assert "ORDER BY workflow_history.created_at ASC, workflow_history.id ASC" in str(statement)
