"""
Главный файл FastAPI приложения
CRM: календарь слотов, записи клиентов, контроль качества
"""
import logging
from contextlib import asynccontextmanager
from datetime import date

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.sessions import SessionMiddleware

from .config import get_settings
from .database import engine, init_db
from .exceptions import (
    AlreadyClaimed,
    AuthExpired,
    BackendError,
    CrmError,
    DataUnavailable,
    InvalidQcStatus,
    InvalidTransition,
    MissingCustomer,
    RecordNotFound,
    SlotGenerationError,
    TransientNetworkError
)
from .routes.appointments import router as appointments_router
from .routes.customers import router as customers_router
from .routes.qc import router as qc_router
from .routes.slots import router as slots_router
from .services.calendar import SlotReconciler, week_range
from .services.context import create_context

settings = get_settings()

# Настройка логирования
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Меньше шума от HTTP-клиента
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)

# Исключение -> HTTP статус (проверяются по порядку)
ERROR_STATUS_CODES = [
    (AlreadyClaimed, 409),
    (MissingCustomer, 400),
    (InvalidTransition, 400),
    (InvalidQcStatus, 400),
    (SlotGenerationError, 400),
    (RecordNotFound, 404),
    (AuthExpired, 401),
    (TransientNetworkError, 503),
    (DataUnavailable, 503),
]


def error_status_code(exc: CrmError) -> int:
    for error_class, status_code in ERROR_STATUS_CODES:
        if isinstance(exc, error_class):
            return status_code
    if isinstance(exc, BackendError) and exc.status and 400 <= exc.status < 500:
        return exc.status
    return 502 if isinstance(exc, BackendError) else 500


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Запуск CRM...")
    if settings.BACKEND == "local":
        init_db()
        logger.info("Таблицы локальной базы созданы")

    context = create_context(settings)
    reconciler = SlotReconciler(context)
    app.state.context = context
    app.state.reconciler = reconciler

    # Текущая неделя держится в памяти и обновляется по событиям
    range_start, range_end = week_range(date.today(), settings.WEEK_STARTS_ON)
    try:
        await reconciler.start(range_start, range_end)
    except CrmError as e:
        logger.error(f"Календарь не загружен при запуске: {e}")

    yield

    logger.info("Остановка CRM...")
    await reconciler.stop()
    await context.close()


# FastAPI приложение
app = FastAPI(
    title="CRM Calendar API",
    description="API календаря слотов и записей",
    version="1.0.0",
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None,
    lifespan=lifespan,
)


@app.exception_handler(CrmError)
async def crm_exception_handler(request: Request, exc: CrmError):
    status_code = error_status_code(exc)
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path}: {exc}")
    else:
        logger.info(f"{request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status_code,
        content={"detail": str(exc), "error": type(exc).__name__}
    )


# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Session Middleware (для админки)
app.add_middleware(SessionMiddleware, secret_key=settings.SECRET_KEY)

# Подключение роутеров
app.include_router(appointments_router)
app.include_router(slots_router)
app.include_router(qc_router)
app.include_router(customers_router)

# Админ-панель работает только с локальной базой
if settings.BACKEND == "local":
    from .admin import setup_admin
    setup_admin(app, engine)
    logger.info("Админ-панель доступна: http://localhost:8000/admin")


@app.get("/health")
async def health_check(request: Request):
    reconciler = getattr(request.app.state, "reconciler", None)
    view = reconciler.view if reconciler is not None else None
    return {
        "status": "ok",
        "environment": settings.ENVIRONMENT,
        "backend": settings.BACKEND,
        "calendar_error": view.error if view is not None else None
    }
