from datetime import datetime
from enum import Enum
from typing import Any
from pydantic import BaseModel


class JobKind(str, Enum):
    STATUS_UPDATE = "status-update"
    OVERDUE_PROCESS = "overdue-process"
    DEAD_LETTER = "dead-letter"


class BackoffPolicy(BaseModel):
    type: str = "exponential"
    delay_ms: int = 1000
    max_attempts: int = 3


class Job(BaseModel):
    id: str
    kind: JobKind
    payload: dict[str, Any]
    backoff: BackoffPolicy = BackoffPolicy()
    enqueued_at: datetime


class DeadLetterPayload(BaseModel):
    original: dict[str, Any]
    kind: str
    error: str
    attempts: int
    failed_at: datetime
    original_job_id: str


class DeadLetterRecord(DeadLetterPayload):
    id: str
    recorded_at: datetime


class OverdueScanResult(BaseModel):
    total: int
    batches: int
    enqueued: int
