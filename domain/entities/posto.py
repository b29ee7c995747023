"""Модель поста (рабочего места)."""

from sqlalchemy import Column, Integer, String, Boolean, DateTime
from sqlalchemy.sql import func

from .base import Base


class Posto(Base):
    """Пост, на котором выполняется покрытие."""

    __tablename__ = "postos"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False, unique=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self) -> str:
        return f"<Posto(id={self.id}, name='{self.name}')>"
