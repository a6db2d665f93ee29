from typing import Any
from celery import Celery
from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy import text

from tasktracker.common.database import SessionFactory, get_session_factory
from tasktracker.common.redis import RedisClient, get_redis_client
from tasktracker.celery import get_celery_app

router = APIRouter()


@router.get(
    "/healthcheck",
    tags=["Healthcheck"],
    status_code=status.HTTP_200_OK,
    responses={
        200: {
            "description": "Healthcheck status",
            "content": {
                "application/json": {
                    "example": {
                        "api": {"status": "ok"},
                        "redis": {"status": "ok"},
                        "database": {"status": "ok"},
                        "workers": {"status": "ok", "active_workers": 2},
                    }
                }
            },
        },
        503: {
            "description": "Service unavailable",
            "content": {
                "application/json": {
                    "example": {
                        "api": {"status": "ok"},
                        "redis": {"status": "error", "message": "Connection error"},
                        "database": {
                            "status": "error",
                            "message": "Connection error or unexpected result",
                        },
                        "workers": {
                            "status": "error",
                            "message": "No active workers found",
                        },
                    }
                }
            },
        },
    },
)
def healthcheck(
    redis_client: RedisClient = Depends(get_redis_client),
    session_factory: SessionFactory = Depends(get_session_factory),
    celery_app: Celery = Depends(get_celery_app),
) -> JSONResponse:
    health_status: dict[str, Any] = {
        "api": {"status": "ok"},
        "redis": {"status": "ok"},
        "database": {"status": "ok"},
        "workers": {"status": "ok"},
    }
    has_error = False

    # Check Redis connection
    try:
        redis_client.ping()
    except Exception as e:
        health_status["redis"].update({"status": "error", "message": str(e)})
        has_error = True

    # Check database connection
    try:
        with session_factory() as session:
            result = session.execute(text("SELECT 1")).scalar()
            if result != 1:
                raise Exception("Database health check failed")
    except Exception as e:
        health_status["database"].update({"status": "error", "message": str(e)})
        has_error = True

    # Check Celery Worker status
    try:
        inspect = celery_app.control.inspect()
        active_workers = inspect.active()
        if not active_workers:
            raise Exception("No active workers found")
        worker_count = len(active_workers.keys())
        health_status["workers"].update(
            {"status": "ok", "active_workers": worker_count}
        )
    except Exception as e:
        health_status["workers"].update({"status": "error", "message": str(e)})
        has_error = True

    if has_error:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content=health_status
        )

    return JSONResponse(status_code=status.HTTP_200_OK, content=health_status)
