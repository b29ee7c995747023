"""Модель способа оплаты."""

from sqlalchemy import Column, Integer, String, Boolean, DateTime
from sqlalchemy.sql import func

from .base import Base


class MeioPagamento(Base):
    """Способ оплаты: запрошенный диаристой или фактически использованный финансами."""

    __tablename__ = "meios_pagamento"

    id = Column(Integer, primary_key=True, index=True)
    description = Column(String(100), nullable=False, unique=True)  # PIX, Transferência, Dinheiro
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self) -> str:
        return f"<MeioPagamento(id={self.id}, description='{self.description}')>"
