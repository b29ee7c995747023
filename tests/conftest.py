"""
Конфигурация pytest для тестов Coberturas
Моки сессии БД, участники workflow и фабрики сервисов
"""
import pytest
from unittest.mock import AsyncMock, MagicMock

from sqlalchemy.ext.asyncio import AsyncSession

from shared.services.coverage_transitions import Actor
from shared.services.coverage_workflow_service import CoverageWorkflowService
from tests.utils.test_helpers import SessionStub, build_catalog


# =============================================================================
# Моки для unit тестов
# =============================================================================

@pytest.fixture
def mock_db_session():
    """Мок сессии базы данных для unit тестов"""
    session = AsyncMock(spec=AsyncSession)
    session.execute = AsyncMock()
    session.scalar = AsyncMock()
    session.get = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.refresh = AsyncMock()
    session.flush = AsyncMock()
    session.add = MagicMock()
    session.get_bind = MagicMock()
    return session


@pytest.fixture
def store(mock_db_session):
    """Справочники и покрытия, доступные через session.get."""
    return SessionStub(mock_db_session, build_catalog())


@pytest.fixture
def notification_sink():
    sink = MagicMock()
    sink.notify = AsyncMock()
    return sink


@pytest.fixture
def make_service(mock_db_session, notification_sink):
    """Фабрика сервиса workflow с явными настройками."""
    def _make(**overrides):
        options = dict(
            notification_sink=notification_sink,
            required_stages=1,
            enforce_double_booking=True,
            record_creation_history=False,
        )
        options.update(overrides)
        return CoverageWorkflowService(mock_db_session, **options)
    return _make


# =============================================================================
# Участники workflow
# =============================================================================

@pytest.fixture
def supervisor():
    return Actor(user_id=10, role="supervisor")


@pytest.fixture
def other_supervisor():
    return Actor(user_id=11, role="supervisor")


@pytest.fixture
def approver():
    return Actor(user_id=20, role="approver")


@pytest.fixture
def approver_n1():
    return Actor(user_id=21, role="approver_n1")


@pytest.fixture
def approver_n2():
    return Actor(user_id=22, role="approver_n2")


@pytest.fixture
def finance():
    return Actor(user_id=30, role="finance")


@pytest.fixture
def admin():
    return Actor(user_id=1, role="admin")
