"""
Схемы Pydantic для API Coberturas
"""
import datetime as dt
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from shared.services.coverage_transitions import ApprovalStage
from shared.services.coverage_workflow_service import AttachmentPayload, CoverageInput, PaymentDetails


class CoverageWrite(BaseModel):
    """Поля покрытия от супервайзера (создание и повторная отправка).

    Обязательность проверяет сервис workflow, чтобы вернуть ошибки по полям.
    """
    date: Optional[dt.date] = Field(None, description="Дата покрытия")
    posto_id: Optional[int] = Field(None, description="Пост")
    diarista_id: Optional[int] = Field(None, description="Диариста")
    reserva_id: Optional[int] = Field(None, description="Отсутствующий сотрудник или банк резервов")
    motivo_id: Optional[int] = Field(None, description="Причина отсутствия")
    carga_horaria_id: Optional[int] = Field(None, description="Длительность смены")
    meio_pagamento_solicitado_id: Optional[int] = Field(None, description="Запрошенный способ оплаты")
    empresa_id: Optional[int] = Field(None, description="Юридическое лицо")
    value: Optional[Decimal] = Field(None, description="Сумма")
    observation: Optional[str] = Field(None, max_length=2000)

    def to_input(self) -> CoverageInput:
        return CoverageInput(
            date=self.date,
            posto_id=self.posto_id,
            diarista_id=self.diarista_id,
            reserva_id=self.reserva_id,
            motivo_id=self.motivo_id,
            carga_horaria_id=self.carga_horaria_id,
            meio_pagamento_solicitado_id=self.meio_pagamento_solicitado_id,
            empresa_id=self.empresa_id,
            value=self.value,
            observation=self.observation,
        )


class ApprovalActionType(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"
    ADJUST = "adjust"


class ApprovalAction(BaseModel):
    """Решение согласующего."""
    action: ApprovalActionType
    stage: Optional[ApprovalStage] = Field(None, description="Ступень; по умолчанию определяется статусом")
    note: Optional[str] = Field(None, description="Обоснование (обязательно для reject/adjust)")


class AttachmentIn(BaseModel):
    """Квитанция, уже загруженная во внешнее хранилище."""
    url: str
    original_name: str
    size: Optional[int] = Field(None, ge=0)
    mime_type: Optional[str] = None

    def to_payload(self) -> AttachmentPayload:
        return AttachmentPayload(
            url=self.url,
            original_name=self.original_name,
            size=self.size,
            mime_type=self.mime_type,
        )


class PaymentRequest(BaseModel):
    payment_method_effective_id: Optional[int] = None
    paid_at: Optional[dt.datetime] = None
    note: Optional[str] = None
    attachment: Optional[AttachmentIn] = None

    def to_details(self) -> PaymentDetails:
        return PaymentDetails(
            payment_method_effective_id=self.payment_method_effective_id,
            paid_at=self.paid_at,
            note=self.note,
        )


class AdminEditRequest(BaseModel):
    """Административная правка; передаются только изменяемые поля."""
    date: Optional[dt.date] = None
    posto_id: Optional[int] = None
    diarista_id: Optional[int] = None
    reserva_id: Optional[int] = None
    motivo_id: Optional[int] = None
    value: Optional[Decimal] = None
    empresa_id: Optional[int] = None


class CoverageResponse(BaseModel):
    """Покрытие без связанных справочников."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    date: dt.date
    posto_id: int
    diarista_id: int
    reserva_id: Optional[int] = None
    motivo_id: int
    carga_horaria_id: int
    meio_pagamento_solicitado_id: int
    empresa_id: Optional[int] = None
    value: Decimal
    status: str
    observation: Optional[str] = None
    created_by: int
    approver_n1_id: Optional[int] = None
    approved_at_n1: Optional[dt.datetime] = None
    approval_note_n1: Optional[str] = None
    approver_id: Optional[int] = None
    approved_at: Optional[dt.datetime] = None
    rejection_reason: Optional[str] = None
    adjustment_request: Optional[str] = None
    payer_id: Optional[int] = None
    paid_at: Optional[dt.datetime] = None
    payment_method_effective_id: Optional[int] = None
    payment_note: Optional[str] = None


class NamedRef(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str


class DescribedRef(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    description: str


class CoverageDetailResponse(CoverageResponse):
    """Покрытие со справочниками (для списков и очередей)."""
    posto: Optional[NamedRef] = None
    diarista: Optional[NamedRef] = None
    reserva: Optional[NamedRef] = None
    motivo: Optional[DescribedRef] = None
    carga_horaria: Optional[DescribedRef] = None
    meio_pagamento_solicitado: Optional[DescribedRef] = None
    empresa: Optional[NamedRef] = None
    creator: Optional[NamedRef] = None


class PendingApprovalItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    coverage: CoverageDetailResponse
    diarias_no_mes: int
    faltas_no_mes: int


class AttachmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    url: str
    original_name: str
    size: Optional[int] = None
    mime_type: Optional[str] = None


class PaidCoverageResponse(CoverageDetailResponse):
    payment_method_effective: Optional[DescribedRef] = None
    payer: Optional[NamedRef] = None
    attachments: List[AttachmentResponse] = []


class HistoryEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    coverage_id: int
    actor_id: Optional[int] = None
    actor_role: Optional[str] = None
    from_status: Optional[str] = None
    to_status: str
    operation: str
    note: Optional[str] = None
    created_at: dt.datetime


class ResetResponse(BaseModel):
    message: str
    deleted: Dict[str, int]


class ErrorResponse(BaseModel):
    """Схема ответа с ошибкой."""
    error: str
    message: str
    details: Optional[Dict[str, str]] = None
