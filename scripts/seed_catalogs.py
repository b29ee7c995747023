#!/usr/bin/env python3
"""
Скрипт для заполнения справочников и демо-пользователей.

Повторный запуск безопасен: существующие записи не дублируются.
"""

import asyncio
import sys
import os

# Добавляем корневую папку проекта в путь
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.database.session import get_async_session, close_database
from domain.entities import (
    User, UserRole, Posto, Reserva, RESERVE_POOL_NAME, Motivo, CargaHoraria, MeioPagamento
)
from sqlalchemy import select


CARGAS_HORARIAS = ["06:00", "08:00", "09:00", "12:00", "12:36"]
MEIOS_PAGAMENTO = ["PIX", "Dinheiro", "Transferência", "Cheque"]
MOTIVOS = ["Falta Justificada", "Falta Injustificada", "Atestado Médico", "Férias"]
POSTOS = ["Posto Alpha", "Posto Beta"]

DEMO_USERS = [
    {"name": "Administrador", "email": "admin@example.com", "role": UserRole.ADMIN},
    {"name": "Supervisor Demo", "email": "supervisor@example.com", "role": UserRole.SUPERVISOR},
    {"name": "Aprovador Demo", "email": "aprovador@example.com", "role": UserRole.APPROVER},
    {"name": "Financeiro Demo", "email": "financeiro@example.com", "role": UserRole.FINANCE},
]


async def _ensure(session, model, field: str, value: str, **extra) -> bool:
    """Создаёт запись, если записи с таким значением поля ещё нет."""
    existing = await session.execute(select(model).where(getattr(model, field) == value))
    if existing.scalars().first():
        return False
    session.add(model(**{field: value}, **extra))
    return True


async def seed_catalogs(with_demo_users: bool = True):
    """Заполнение справочников."""
    async with get_async_session() as session:
        try:
            created = 0
            for description in CARGAS_HORARIAS:
                created += await _ensure(session, CargaHoraria, "description", description)
            for description in MEIOS_PAGAMENTO:
                created += await _ensure(session, MeioPagamento, "description", description)
            for description in MOTIVOS:
                created += await _ensure(session, Motivo, "description", description)
            for name in POSTOS:
                created += await _ensure(session, Posto, "name", name)
            created += await _ensure(session, Reserva, "name", RESERVE_POOL_NAME, is_reserve_pool=True)

            if with_demo_users:
                for user_data in DEMO_USERS:
                    created += await _ensure(
                        session, User, "email", user_data["email"],
                        name=user_data["name"], role=user_data["role"].value,
                    )

            await session.commit()
            print(f"Создано записей: {created}")

        except Exception as e:
            print(f"Ошибка при заполнении справочников: {e}")
            await session.rollback()
            raise

    await close_database()


if __name__ == "__main__":
    asyncio.run(seed_catalogs(with_demo_users="--no-demo-users" not in sys.argv))
