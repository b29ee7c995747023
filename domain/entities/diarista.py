"""Модель диаристы (подменного работника)."""

from sqlalchemy import Column, Integer, String, Boolean, DateTime
from sqlalchemy.sql import func

from .base import Base


class Diarista(Base):
    """Подменный работник, которому выплачивается покрытие."""

    __tablename__ = "diaristas"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    cpf = Column(String(14), nullable=True, unique=True)
    pix_key = Column(String(255), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self) -> str:
        return f"<Diarista(id={self.id}, name='{self.name}')>"
