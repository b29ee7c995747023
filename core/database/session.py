"""
Фабрика для создания сессий базы данных
"""

from typing import AsyncGenerator, Optional
from contextlib import asynccontextmanager
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from core.config.settings import settings
from core.logging.logger import logger


class DatabaseManager:
    """Менеджер базы данных для создания сессий."""

    def __init__(self):
        self.engine: Optional[AsyncEngine] = None
        self.session_factory: Optional[async_sessionmaker] = None
        self._initialized = False

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    async def initialize(self):
        """Инициализирует подключение к базе данных."""
        if self._initialized:
            return

        try:
            self.engine = create_async_engine(
                settings.async_database_url,
                pool_size=settings.database_pool_size,
                max_overflow=settings.database_max_overflow,
                echo=settings.database_echo,
                pool_pre_ping=True,
                pool_recycle=3600,
            )

            self.session_factory = async_sessionmaker(
                bind=self.engine,
                class_=AsyncSession,
                expire_on_commit=False
            )

            self._initialized = True
            logger.info(
                "Database connection initialized successfully",
                pool_size=settings.database_pool_size,
                max_overflow=settings.database_max_overflow,
            )

        except Exception as e:
            logger.error(f"Failed to initialize database connection: {e}")
            raise

    async def close(self):
        """Закрывает подключение к базе данных."""
        if self.engine:
            await self.engine.dispose()
            self._initialized = False
            logger.info("Database connection closed")

    def get_session(self) -> AsyncSession:
        """Возвращает новую сессию базы данных."""
        if not self._initialized:
            raise RuntimeError("Database not initialized. Call initialize() first.")

        return self.session_factory()


# Глобальный экземпляр менеджера БД
db_manager = DatabaseManager()


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Dependency для получения сессии БД."""
    async with get_async_session() as session:
        yield session


async def init_database():
    """Инициализирует базу данных."""
    await db_manager.initialize()


async def close_database():
    """Закрывает подключение к базе данных."""
    await db_manager.close()


@asynccontextmanager
async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """Асинхронный контекстный менеджер для получения сессии БД.

    Обеспечивает ленивую инициализацию подключения и корректное закрытие сессии.
    Использование:
        async with get_async_session() as session:
            ...
    """
    if not db_manager.is_initialized:
        await db_manager.initialize()
    session = db_manager.get_session()
    try:
        yield session
    finally:
        await session.close()
