"""
Модуль доменных сущностей Coberturas
"""

# Импортируем модели в правильном порядке
from .base import Base
from .user import User, UserRole, APPROVER_ROLES
from .posto import Posto
from .diarista import Diarista
from .reserva import Reserva, RESERVE_POOL_NAME
from .motivo import Motivo
from .carga_horaria import CargaHoraria
from .meio_pagamento import MeioPagamento
from .empresa import Empresa
from .coverage import Coverage, CoverageStatus
from .workflow_history import WorkflowHistoryEntry
from .attachment import Attachment

__all__ = [
    "Base",
    "User",
    "UserRole",
    "APPROVER_ROLES",
    "Posto",
    "Diarista",
    "Reserva",
    "RESERVE_POOL_NAME",
    "Motivo",
    "CargaHoraria",
    "MeioPagamento",
    "Empresa",
    "Coverage",
    "CoverageStatus",
    "WorkflowHistoryEntry",
    "Attachment",
]
