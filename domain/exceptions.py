"""Исключения workflow покрытий."""

from typing import Dict, Optional


class CoverageWorkflowError(Exception):
    """Базовое исключение workflow."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(CoverageWorkflowError):
    """Некорректные или отсутствующие входные данные."""

    def __init__(self, message: str, errors: Optional[Dict[str, str]] = None):
        super().__init__(message)
        self.errors = errors or {}


class ForbiddenError(CoverageWorkflowError):
    """Роль пользователя не допускает операцию."""


class NotFoundError(CoverageWorkflowError):
    """Покрытие не найдено."""


class IllegalTransitionError(CoverageWorkflowError):
    """Текущий статус не допускает запрошенную операцию."""

    def __init__(self, current_status: str, attempted_operation: str, message: Optional[str] = None):
        super().__init__(
            message or f"Operation '{attempted_operation}' is not allowed from status '{current_status}'"
        )
        self.current_status = current_status
        self.attempted_operation = attempted_operation


class ConflictError(CoverageWorkflowError):
    """Конфликт бизнес-правила или проигранная гонка за статус."""


class StorageError(CoverageWorkflowError):
    """Сбой транзакции хранилища; изменения откатены."""
