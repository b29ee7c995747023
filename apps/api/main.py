"""
Главный API роутер Coberturas
"""
from fastapi import APIRouter

from apps.api.routers.admin import router as admin_router
from apps.api.routers.approvals import router as approvals_router
from apps.api.routers.coverages import router as coverages_router
from apps.api.routers.finance import router as finance_router

# Создаем главный роутер
api_router = APIRouter(prefix="/api/v1")

# Подключаем роутеры
api_router.include_router(coverages_router)
api_router.include_router(approvals_router)
api_router.include_router(finance_router)
api_router.include_router(admin_router)
