"""Модель покрытия (cobertura) - корневой агрегат workflow."""

from enum import Enum
from typing import Any, Dict

from sqlalchemy import Column, Integer, String, Date, DateTime, ForeignKey, Numeric, Text, Index
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .base import Base


class CoverageStatus(str, Enum):
    """Статусы покрытия."""
    PENDING = "PENDING"
    APPROVED_STAGE1 = "APPROVED_STAGE1"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    ADJUSTMENT_REQUESTED = "ADJUSTMENT_REQUESTED"
    PAID = "PAID"


class Coverage(Base):
    """
    Покрытие: диариста отработала на посту вместо отсутствующего сотрудника.

    Статус - единственный источник истины о положении записи в workflow.
    Переходы выполняет только CoverageWorkflowService; каждое изменение
    сопровождается записью в workflow_history.
    """

    __tablename__ = "coverages"

    id = Column(Integer, primary_key=True, index=True)
    date = Column(Date, nullable=False, index=True)

    # Справочники
    posto_id = Column(Integer, ForeignKey("postos.id"), nullable=False, index=True)
    diarista_id = Column(Integer, ForeignKey("diaristas.id"), nullable=False, index=True)
    reserva_id = Column(Integer, ForeignKey("reservas.id"), nullable=True, index=True)
    motivo_id = Column(Integer, ForeignKey("motivos.id"), nullable=False)
    carga_horaria_id = Column(Integer, ForeignKey("cargas_horarias.id"), nullable=False)
    meio_pagamento_solicitado_id = Column(Integer, ForeignKey("meios_pagamento.id"), nullable=False)
    empresa_id = Column(Integer, ForeignKey("empresas.id"), nullable=True)

    value = Column(Numeric(10, 2), nullable=False)
    status = Column(String(32), nullable=False, default=CoverageStatus.PENDING.value, index=True)
    observation = Column(Text, nullable=True)

    created_by = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    # Согласование (первая ступень - только в двухступенчатом режиме)
    approver_n1_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    approved_at_n1 = Column(DateTime(timezone=True), nullable=True)
    approval_note_n1 = Column(Text, nullable=True)
    approver_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    approved_at = Column(DateTime(timezone=True), nullable=True)
    rejection_reason = Column(Text, nullable=True)
    adjustment_request = Column(Text, nullable=True)

    # Оплата
    payer_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    payment_method_effective_id = Column(Integer, ForeignKey("meios_pagamento.id"), nullable=True)
    payment_note = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    posto = relationship("Posto")
    diarista = relationship("Diarista")
    reserva = relationship("Reserva")
    motivo = relationship("Motivo")
    carga_horaria = relationship("CargaHoraria")
    meio_pagamento_solicitado = relationship("MeioPagamento", foreign_keys=[meio_pagamento_solicitado_id])
    payment_method_effective = relationship("MeioPagamento", foreign_keys=[payment_method_effective_id])
    empresa = relationship("Empresa")
    creator = relationship("User", foreign_keys=[created_by])
    approver_n1 = relationship("User", foreign_keys=[approver_n1_id])
    approver = relationship("User", foreign_keys=[approver_id])
    payer = relationship("User", foreign_keys=[payer_id])
    history = relationship(
        "WorkflowHistoryEntry",
        back_populates="coverage",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="WorkflowHistoryEntry.created_at",
    )
    attachments = relationship("Attachment", back_populates="coverage")

    __table_args__ = (
        Index("ix_coverages_diarista_date", "diarista_id", "date"),
        Index("ix_coverages_reserva_date", "reserva_id", "date"),
    )

    def __repr__(self) -> str:
        return f"<Coverage(id={self.id}, date={self.date}, status='{self.status}', value={self.value})>"

    @property
    def current_status(self) -> CoverageStatus:
        return CoverageStatus(self.status)

    def to_dict(self) -> Dict[str, Any]:
        """Сериализация покрытия в словарь."""
        return {
            "id": self.id,
            "date": self.date.isoformat() if self.date else None,
            "posto_id": self.posto_id,
            "diarista_id": self.diarista_id,
            "reserva_id": self.reserva_id,
            "motivo_id": self.motivo_id,
            "carga_horaria_id": self.carga_horaria_id,
            "meio_pagamento_solicitado_id": self.meio_pagamento_solicitado_id,
            "empresa_id": self.empresa_id,
            "value": str(self.value) if self.value is not None else None,
            "status": self.status,
            "observation": self.observation,
            "created_by": self.created_by,
            "approver_n1_id": self.approver_n1_id,
            "approved_at_n1": self.approved_at_n1.isoformat() if self.approved_at_n1 else None,
            "approval_note_n1": self.approval_note_n1,
            "approver_id": self.approver_id,
            "approved_at": self.approved_at.isoformat() if self.approved_at else None,
            "rejection_reason": self.rejection_reason,
            "adjustment_request": self.adjustment_request,
            "payer_id": self.payer_id,
            "paid_at": self.paid_at.isoformat() if self.paid_at else None,
            "payment_method_effective_id": self.payment_method_effective_id,
            "payment_note": self.payment_note,
        }
