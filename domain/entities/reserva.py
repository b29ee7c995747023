"""Модель отсутствующего сотрудника (резерва)."""

from sqlalchemy import Column, Integer, String, Boolean, DateTime
from sqlalchemy.sql import func

from .base import Base

RESERVE_POOL_NAME = "Banco de Reservas"


class Reserva(Base):
    """
    Сотрудник, которого подменяют.

    Запись с is_reserve_pool=True - обезличенный "банк резервов",
    на неё не распространяется запрет двойного покрытия.
    """

    __tablename__ = "reservas"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    cpf = Column(String(14), nullable=True, unique=True)
    is_reserve_pool = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self) -> str:
        return f"<Reserva(id={self.id}, name='{self.name}', pool={self.is_reserve_pool})>"
