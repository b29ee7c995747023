"""
FastAPI приложение Coberturas
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from starlette.exceptions import HTTPException as StarletteHTTPException
import time
import uuid

from core.config.settings import settings
from core.database.session import close_database, init_database
from core.logging.logger import logger, setup_logging
from domain.exceptions import (
    CoverageWorkflowError, ValidationError, ForbiddenError, NotFoundError,
    IllegalTransitionError, ConflictError, StorageError
)
from .main import api_router

# Соответствие доменных ошибок HTTP-статусам
ERROR_STATUS_CODES = {
    ValidationError: 400,
    ForbiddenError: 403,
    NotFoundError: 404,
    IllegalTransitionError: 409,
    ConflictError: 409,
    StorageError: 503,
}


def status_code_for(exc: CoverageWorkflowError) -> int:
    for error_type, status_code in ERROR_STATUS_CODES.items():
        if isinstance(exc, error_type):
            return status_code
    return 500


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    await init_database()
    logger.info("Application started", app=settings.app_name, environment=settings.environment)
    yield
    await close_database()
    logger.info("Application stopped")


def create_app() -> FastAPI:
    """Создание FastAPI приложения."""
    app = FastAPI(
        title=settings.app_name,
        description="API для учёта и согласования покрытий смен",
        version=settings.version,
        debug=settings.debug,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )
    
    # Middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # В продакшене ограничить
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    
    app.add_middleware(
        TrustedHostMiddleware,
        allowed_hosts=["*"]  # В продакшене ограничить
    )
    
    # Middleware для логирования запросов
    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Логирование всех HTTP запросов."""
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        start_time = time.time()
        
        logger.info(
            "HTTP Request started",
            request_id=request_id,
            method=request.method,
            path=request.url.path,
            user_id=request.headers.get("X-User-Id"),
            user_role=request.headers.get("X-User-Role"),
        )
        
        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                "HTTP Request failed",
                request_id=request_id,
                error=str(e),
                process_time=time.time() - start_time
            )
            raise
        
        process_time = time.time() - start_time
        logger.info(
            "HTTP Request completed",
            request_id=request_id,
            status_code=response.status_code,
            process_time=process_time
        )
        
        # Добавляем заголовки для отслеживания
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Process-Time"] = str(process_time)
        return response
    
    # Обработчики ошибок
    @app.exception_handler(CoverageWorkflowError)
    async def workflow_exception_handler(request: Request, exc: CoverageWorkflowError):
        """Доменные ошибки workflow."""
        status_code = status_code_for(exc)
        content = {
            "error": type(exc).__name__,
            "message": exc.message,
        }
        if isinstance(exc, ValidationError) and exc.errors:
            content["details"] = exc.errors
        if isinstance(exc, IllegalTransitionError):
            content["current_status"] = exc.current_status
            content["attempted_operation"] = exc.attempted_operation
        
        log = logger.error if status_code >= 500 else logger.warning
        log(
            "Workflow error",
            error_type=type(exc).__name__,
            status_code=status_code,
            detail=exc.message,
            path=request.url.path
        )
        return JSONResponse(status_code=status_code, content=content)
    
    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        """Обработчик HTTP исключений."""
        logger.warning(
            "HTTP Exception",
            status_code=exc.status_code,
            detail=exc.detail,
            path=request.url.path
        )
        
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": "HTTP Error",
                "message": exc.detail,
                "status_code": exc.status_code
            }
        )
    
    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Обработчик ошибок валидации."""
        logger.warning(
            "Validation Error",
            errors=exc.errors(),
            path=request.url.path
        )
        
        return JSONResponse(
            status_code=422,
            content=jsonable_encoder({
                "error": "Validation Error",
                "message": "Ошибка валидации данных",
                "details": exc.errors()
            })
        )
    
    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Общий обработчик исключений."""
        logger.error(
            "General Exception",
            error=str(exc),
            path=request.url.path,
            exc_info=True
        )
        
        return JSONResponse(
            status_code=500,
            content={
                "error": "Internal Server Error",
                "message": "Внутренняя ошибка сервера"
            }
        )
    
    # Подключаем API роутеры
    app.include_router(api_router)
    
    # Корневой эндпоинт
    @app.get("/")
    async def root():
        """Корневой эндпоинт."""
        return {
            "app": settings.app_name,
            "version": settings.version,
            "status": "running",
            "approval_stages": settings.required_approval_stages,
            "docs": "/docs" if settings.debug else "disabled"
        }
    
    # Health check
    @app.get("/health")
    async def health_check():
        """Проверка состояния приложения."""
        return {
            "status": "healthy",
            "timestamp": time.time(),
            "version": settings.version
        }
    
    return app


# Создаем экземпляр приложения
app = create_app()
