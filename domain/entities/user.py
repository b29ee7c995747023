"""Модель пользователя."""

from sqlalchemy import Column, Integer, String, Boolean, DateTime
from sqlalchemy.sql import func
from enum import Enum

from .base import Base


class UserRole(str, Enum):
    """Роли пользователей."""
    SUPERVISOR = "supervisor"
    APPROVER = "approver"  # одноступенчатое согласование (legacy)
    APPROVER_N1 = "approver_n1"
    APPROVER_N2 = "approver_n2"
    FINANCE = "finance"
    ADMIN = "admin"


APPROVER_ROLES = frozenset({UserRole.APPROVER, UserRole.APPROVER_N1, UserRole.APPROVER_N2})


class User(Base):
    """Модель пользователя."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False, unique=True, index=True)
    role = Column(String(32), nullable=False, default=UserRole.SUPERVISOR.value, index=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email='{self.email}', role='{self.role}')>"

    def is_admin(self) -> bool:
        """Проверка, является ли пользователь администратором."""
        return self.role == UserRole.ADMIN.value
