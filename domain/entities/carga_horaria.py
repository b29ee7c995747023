"""Модель длительности смены."""

from sqlalchemy import Column, Integer, String, Boolean, DateTime
from sqlalchemy.sql import func

from .base import Base


class CargaHoraria(Base):
    __tablename__ = "cargas_horarias"

    id = Column(Integer, primary_key=True, index=True)
    description = Column(String(50), nullable=False, unique=True)  # "06:00", "12:36"
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self) -> str:
        return f"<CargaHoraria(id={self.id}, description='{self.description}')>"
