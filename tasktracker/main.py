import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Depends
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from redis.exceptions import ConnectionError
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from tasktracker.common.api_key import require_api_key
from tasktracker.common.database import create_session_factory
from tasktracker.common.exceptions import (
    OperationFailedException,
    ResourceNotFoundException,
    UnauthorizedException,
    operation_failed_handler,
    rate_limit_exception_handler,
    resource_not_found_handler,
    unauthorized_handler,
    unexpected_exception_handler,
    redis_connection_exception_handler,
    validation_exception_handler,
    service_unavailable_response,
    internal_error_response,
    validation_error_response,
)
from tasktracker.common.opentelemetry import setup_opentelemetry
from tasktracker.common.rate_limiter import create_rate_limiter
from tasktracker.common.redis import create_redis_client
from tasktracker.config import get_settings
from tasktracker.tasks.router import router as tasks_router
from tasktracker.jobs.router import router as dead_letters_router
from tasktracker.healthcheck.router import router as health_router
from tasktracker.celery import celery_app

settings = get_settings()

logging.basicConfig(
    level=settings.LOG_LEVEL,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.redis_client = create_redis_client(
        settings.REDIS_URL, socket_timeout=settings.REDIS_SOCKET_TIMEOUT_SECONDS
    )
    app.state.session_factory = create_session_factory(settings.DATABASE_URL)
    app.state.celery_app = celery_app
    yield
    app.state.redis_client.close()


app = FastAPI(
    title=settings.API_NAME,
    summary=settings.API_SUMMARY,
    dependencies=[Depends(require_api_key)],
    lifespan=lifespan,
    responses={
        **service_unavailable_response,
        **internal_error_response,
        **validation_error_response,
    },
    version=settings.API_VERSION,
)

if settings.OTEL_ENABLED:
    setup_opentelemetry(settings.OTEL_SERVICE_NAME, app)

if settings.CORS_ENABLED:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

if settings.RATE_LIMIT_ENABLED:
    app.state.limiter = create_rate_limiter(settings.RATE_LIMIT, settings.REDIS_URL)
    app.add_middleware(SlowAPIMiddleware)
    app.exception_handler(RateLimitExceeded)(rate_limit_exception_handler)

app.exception_handler(RequestValidationError)(validation_exception_handler)
app.exception_handler(ResourceNotFoundException)(resource_not_found_handler)
app.exception_handler(UnauthorizedException)(unauthorized_handler)
app.exception_handler(OperationFailedException)(operation_failed_handler)
app.exception_handler(ConnectionError)(redis_connection_exception_handler)
app.exception_handler(Exception)(unexpected_exception_handler)


app.include_router(health_router)
app.include_router(tasks_router)
app.include_router(dead_letters_router)
