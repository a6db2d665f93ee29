from functools import lru_cache
from typing import Any, Literal
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Application Configuration
    API_NAME: str = "Task Tracker"
    API_SUMMARY: str = "Task tracking with an asynchronous task-lifecycle pipeline"
    API_VERSION: str = "v0.1.x"

    TRACKER_API_KEY: str | None = None

    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"

    CORS_ENABLED: bool = False
    CORS_ORIGINS: list[str] = ["*"]

    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT: str = "100/minute"

    # Database Configuration
    REDIS_URL: str = "redis://localhost:6379"
    REDIS_SOCKET_TIMEOUT_SECONDS: float = 2.0
    DATABASE_URL: str = "postgresql://localhost:5432/tasktracker"  # Assumes a local Postgres db named 'tasktracker' exists

    # Cache Settings
    CACHE_TTL_SECONDS: int = 300

    # Queue Settings
    TASK_QUEUE_NAME: str = "task-processing"
    DEAD_LETTER_QUEUE_NAME: str = "task-processing-dlq"
    JOB_MAX_ATTEMPTS: int = 3
    JOB_BACKOFF_BASE_MS: int = 1000
    JOB_VISIBILITY_TIMEOUT_SECONDS: int = 3600
    JOB_RESULT_RETENTION_DAYS: int = 7

    OUTBOX_RELAY_BATCH_SIZE: int = 500
    OUTBOX_RELAY_INTERVAL_SECONDS: float = 5.0
    OUTBOX_RETENTION_HOURS: int = 24

    # Worker Settings
    WORKER_CONCURRENCY: int = 10
    WORKER_RATE_LIMIT: int = 100
    WORKER_RATE_LIMIT_WINDOW_SECONDS: float = 1.0

    # Overdue Scanner
    OVERDUE_SCAN_BATCH_SIZE: int = 100

    # OpenTelemetry Settings
    OTEL_ENABLED: bool = False
    OTEL_SERVICE_NAME: str = "tasktracker"

    @field_validator("LOG_LEVEL", mode="before")
    def normalize_log_level(cls, v: Any):
        if isinstance(v, str):
            return v.upper()
        return v

    @field_validator("CORS_ORIGINS", mode="before")
    def validate_list_from_string(cls, v: Any):
        if isinstance(v, str):
            return [item.strip() for item in v.split(",")]
        return v

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


@lru_cache
def get_settings():
    return Settings()
