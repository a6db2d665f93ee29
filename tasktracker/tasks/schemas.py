from datetime import datetime
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field, model_validator


class TaskStatus(str, Enum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"


class TaskPriority(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class Task(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    description: str | None
    status: TaskStatus
    priority: TaskPriority
    due_date: datetime | None
    user_id: str
    created_at: datetime
    updated_at: datetime


class CreateTaskRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    status: TaskStatus = TaskStatus.PENDING
    priority: TaskPriority = TaskPriority.MEDIUM
    due_date: datetime | None = None
    user_id: str


class UpdateTaskRequest(BaseModel):
    title: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = None
    status: TaskStatus | None = None
    priority: TaskPriority | None = None
    due_date: datetime | None = None

    @model_validator(mode="after")
    def require_one_field(self):
        if not self.model_dump(exclude_none=True):
            raise ValueError("At least one field must be provided to update")
        return self


class ChangeStatusRequest(BaseModel):
    status: TaskStatus


class TaskFilter(BaseModel):
    status: TaskStatus | None = None
    priority: TaskPriority | None = None
    page: int = Field(1, ge=1)
    limit: int = Field(10, ge=1, le=100)


class TaskPage(BaseModel):
    data: list[Task]
    total: int
    page: int
    limit: int


class TaskStats(BaseModel):
    total: int
    by_status: dict[TaskStatus, int]
    by_priority: dict[TaskPriority, int]
    overdue: int


class BatchAction(str, Enum):
    COMPLETE = "complete"
    DELETE = "delete"


class BatchRequest(BaseModel):
    tasks: list[str] = Field(..., min_length=1)
    # Kept as a plain string so an unknown action fails per item, not the request.
    action: str


class BatchItemResult(BaseModel):
    task_id: str
    success: bool
    error: str | None = None
