"""Таблица переходов и прав доступа workflow покрытий.

Чистые функции без обращения к БД: сервис workflow сначала спрашивает
здесь, допустима ли операция, и только потом меняет данные.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, List, Optional, Tuple

from domain.entities.coverage import CoverageStatus
from domain.entities.user import UserRole, APPROVER_ROLES
from domain.exceptions import ForbiddenError, IllegalTransitionError


class CoverageOperation(str, Enum):
    """Операции над покрытием."""
    CREATE = "create"
    APPROVE = "approve"
    REJECT = "reject"
    REQUEST_ADJUSTMENT = "request_adjustment"
    RESUBMIT = "resubmit"
    PAY = "pay"
    ADMIN_EDIT = "admin_edit"


class ApprovalStage(str, Enum):
    """Ступень согласования."""
    FIRST = "first"  # N1, только при двух ступенях
    FINAL = "final"


@dataclass(frozen=True)
class Actor:
    """Пользователь, выполняющий операцию (приходит от провайдера идентификации)."""
    user_id: int
    role: str

    @property
    def user_role(self) -> Optional[UserRole]:
        return to_user_role(self.role)

    @property
    def is_admin(self) -> bool:
        return self.user_role == UserRole.ADMIN


S = CoverageStatus
Op = CoverageOperation

SUPPORTED_STAGES = (1, 2)

# (текущий статус, число ступеней, операция) -> новый статус
TRANSITIONS: Dict[Tuple[CoverageStatus, int, CoverageOperation], CoverageStatus] = {
    (S.PENDING, 1, Op.APPROVE): S.APPROVED,
    (S.PENDING, 2, Op.APPROVE): S.APPROVED_STAGE1,
    (S.APPROVED_STAGE1, 2, Op.APPROVE): S.APPROVED,
}
for _stages in SUPPORTED_STAGES:
    TRANSITIONS[(S.PENDING, _stages, Op.REJECT)] = S.REJECTED
    TRANSITIONS[(S.PENDING, _stages, Op.REQUEST_ADJUSTMENT)] = S.ADJUSTMENT_REQUESTED
    TRANSITIONS[(S.PENDING, _stages, Op.RESUBMIT)] = S.PENDING
    TRANSITIONS[(S.ADJUSTMENT_REQUESTED, _stages, Op.RESUBMIT)] = S.PENDING
    TRANSITIONS[(S.APPROVED, _stages, Op.PAY)] = S.PAID
TRANSITIONS[(S.APPROVED_STAGE1, 2, Op.REJECT)] = S.REJECTED
TRANSITIONS[(S.APPROVED_STAGE1, 2, Op.REQUEST_ADJUSTMENT)] = S.ADJUSTMENT_REQUESTED

TERMINAL_STATUSES: FrozenSet[CoverageStatus] = frozenset({S.REJECTED, S.PAID})

_APPROVERS_AND_ADMIN = frozenset(APPROVER_ROLES | {UserRole.ADMIN})

OPERATION_ROLES: Dict[CoverageOperation, FrozenSet[UserRole]] = {
    Op.CREATE: frozenset({UserRole.SUPERVISOR, UserRole.ADMIN}),
    Op.APPROVE: _APPROVERS_AND_ADMIN,
    Op.REJECT: _APPROVERS_AND_ADMIN,
    Op.REQUEST_ADJUSTMENT: _APPROVERS_AND_ADMIN,
    Op.RESUBMIT: frozenset({UserRole.SUPERVISOR, UserRole.ADMIN}),
    Op.PAY: frozenset({UserRole.FINANCE, UserRole.ADMIN}),
    Op.ADMIN_EDIT: frozenset({UserRole.ADMIN}),
}

# Legacy-роль APPROVER при двух ступенях согласует только финальную ступень
STAGE_ROLES: Dict[Tuple[int, ApprovalStage], FrozenSet[UserRole]] = {
    (1, ApprovalStage.FINAL): _APPROVERS_AND_ADMIN,
    (2, ApprovalStage.FIRST): frozenset({UserRole.APPROVER_N1, UserRole.ADMIN}),
    (2, ApprovalStage.FINAL): frozenset({UserRole.APPROVER_N2, UserRole.APPROVER, UserRole.ADMIN}),
}


def to_user_role(role: str | UserRole | None) -> Optional[UserRole]:
    """Конвертирует строку в UserRole, возвращает None если роль неизвестна."""
    if isinstance(role, UserRole):
        return role
    if not role:
        return None
    try:
        return UserRole(role.lower())
    except ValueError:
        return None


def to_coverage_status(status: str | CoverageStatus) -> CoverageStatus:
    if isinstance(status, CoverageStatus):
        return status
    return CoverageStatus(status)


def _check_stages(required_stages: int) -> None:
    if required_stages not in SUPPORTED_STAGES:
        raise ValueError(f"required_stages must be one of {SUPPORTED_STAGES}, got {required_stages}")


def next_status(
    current: str | CoverageStatus,
    required_stages: int,
    operation: CoverageOperation,
) -> CoverageStatus:
    """Новый статус для операции или IllegalTransitionError."""
    _check_stages(required_stages)
    current_status = to_coverage_status(current)
    if operation == Op.ADMIN_EDIT:
        return current_status
    target = TRANSITIONS.get((current_status, required_stages, operation))
    if target is None:
        raise IllegalTransitionError(current_status.value, operation.value)
    return target


def can_transition(current: str | CoverageStatus, required_stages: int, operation: CoverageOperation) -> bool:
    try:
        next_status(current, required_stages, operation)
    except IllegalTransitionError:
        return False
    return True


def allowed_operations(current: str | CoverageStatus, required_stages: int) -> List[CoverageOperation]:
    """Операции, допустимые из текущего статуса (без учёта ролей)."""
    return [op for op in CoverageOperation if op != Op.CREATE and can_transition(current, required_stages, op)]


def approval_stage_for(current: str | CoverageStatus, required_stages: int) -> ApprovalStage:
    """Какую ступень закрывает согласование из текущего статуса."""
    _check_stages(required_stages)
    current_status = to_coverage_status(current)
    if required_stages == 2 and current_status == S.PENDING:
        return ApprovalStage.FIRST
    return ApprovalStage.FINAL


def ensure_operation_allowed(actor: Actor, operation: CoverageOperation) -> UserRole:
    """Проверка роли до чтения записи."""
    role = actor.user_role
    if role is None:
        raise ForbiddenError(f"Unknown role '{actor.role}'")
    if role not in OPERATION_ROLES[operation]:
        raise ForbiddenError(f"Role '{role.value}' is not allowed to {operation.value}")
    return role


def ensure_stage_allowed(actor: Actor, stage: ApprovalStage, required_stages: int) -> None:
    """Проверка роли для конкретной ступени согласования."""
    _check_stages(required_stages)
    role = actor.user_role
    allowed = STAGE_ROLES.get((required_stages, stage))
    if allowed is None:
        raise IllegalTransitionError("-", Op.APPROVE.value, f"Stage '{stage.value}' does not exist with {required_stages} stage(s)")
    if role not in allowed:
        raise ForbiddenError(f"Role '{actor.role}' cannot approve stage '{stage.value}'")


def statuses_awaiting(role: str | UserRole, required_stages: int) -> List[CoverageStatus]:
    """Статусы, ожидающие действия данной роли согласующего."""
    _check_stages(required_stages)
    user_role = to_user_role(role)
    if user_role is None:
        return []
    statuses = []
    if required_stages == 1:
        if user_role in STAGE_ROLES[(1, ApprovalStage.FINAL)]:
            statuses.append(S.PENDING)
        return statuses
    if user_role in STAGE_ROLES[(2, ApprovalStage.FIRST)]:
        statuses.append(S.PENDING)
    if user_role in STAGE_ROLES[(2, ApprovalStage.FINAL)]:
        statuses.append(S.APPROVED_STAGE1)
    return statuses
