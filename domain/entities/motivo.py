"""Модель причины отсутствия."""

from sqlalchemy import Column, Integer, String, Boolean, DateTime
from sqlalchemy.sql import func

from .base import Base


class Motivo(Base):
    __tablename__ = "motivos"

    id = Column(Integer, primary_key=True, index=True)
    description = Column(String(255), nullable=False, unique=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self) -> str:
        return f"<Motivo(id={self.id}, description='{self.description}')>"
