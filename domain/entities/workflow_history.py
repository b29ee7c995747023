"""Модель истории переходов workflow покрытия."""

from datetime import datetime, timezone
from typing import Dict, Any

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Text, Index
from sqlalchemy.orm import relationship

from .base import Base


class WorkflowHistoryEntry(Base):
    """
    Журнал переходов покрытия.

    Только добавление: записи не изменяются и не удаляются
    (кроме сервисного сброса данных). from_status == to_status
    означает административную правку без смены статуса.
    """

    __tablename__ = "workflow_history"

    id = Column(Integer, primary_key=True, index=True)
    coverage_id = Column(Integer, ForeignKey("coverages.id", ondelete="CASCADE"), nullable=False, index=True)
    actor_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    actor_role = Column(String(32), nullable=True)

    from_status = Column(String(32), nullable=True)  # None - создание записи
    to_status = Column(String(32), nullable=False)
    operation = Column(String(32), nullable=False)  # create, approve, reject, pay, ...
    note = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))

    coverage = relationship("Coverage", back_populates="history")
    actor = relationship("User", foreign_keys=[actor_id])

    __table_args__ = (
        Index("ix_workflow_history_coverage_created", "coverage_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<WorkflowHistoryEntry coverage_id={self.coverage_id} {self.from_status}->{self.to_status}>"

    def to_dict(self) -> Dict[str, Any]:
        """Сериализация истории в словарь."""
        return {
            "id": self.id,
            "coverage_id": self.coverage_id,
            "actor_id": self.actor_id,
            "actor_role": self.actor_role,
            "from_status": self.from_status,
            "to_status": self.to_status,
            "operation": self.operation,
            "note": self.note,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
