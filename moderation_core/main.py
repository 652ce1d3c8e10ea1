import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from moderation_core.api.v1.router import router as v1_router
from moderation_core.config import settings
from moderation_core.core.exception_handlers import (
    app_exception_handler,
    generic_exception_handler,
    http_exception_handler,
    validation_exception_handler,
)
from moderation_core.core.exceptions import AppException
from moderation_core.database import async_session_maker, check_db_connection
from moderation_core.workers.expiration_worker import spawn_expiration_worker

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Database tables are managed by Alembic migrations
    # Run: alembic upgrade head
    if await check_db_connection():
        logger.info("Database connection successful")
    else:
        logger.warning("Database connection failed - ensure database is running")

    worker_task = None
    if settings.ENABLE_EXPIRATION_WORKER:
        worker_task = spawn_expiration_worker(async_session_maker)
        logger.info(
            "Expiration worker started (interval=%ss)", settings.EXPIRATION_INTERVAL_SECONDS
        )

    yield

    if worker_task is not None:
        worker_task.cancel()
        try:
            await worker_task
        except asyncio.CancelledError:
            logger.info("Expiration worker stopped")


app = FastAPI(
    title=settings.APP_NAME,
    lifespan=lifespan,
)

# Register exception handlers
app.add_exception_handler(AppException, app_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(StarletteHTTPException, http_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)

cors_origins = [origin.strip() for origin in settings.CORS_ORIGINS.split(",") if origin.strip()]

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(v1_router, prefix="/api/v1")


@app.get("/health")
async def health_check():
    return {"status": "healthy"}
