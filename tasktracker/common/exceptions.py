from enum import Enum
import logging
from typing import Any
from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from redis.exceptions import ConnectionError

logger = logging.getLogger(__name__)


class ResourceType(str, Enum):
    TASK = "Task"


# Exceptions
class ResourceNotFoundException(Exception):
    def __init__(self, resource_type: ResourceType, identifier: str):
        self.resource_type = resource_type.value
        self.identifier = identifier
        super().__init__(f"{self.resource_type} '{identifier}' not found")


class UnauthorizedException(Exception):
    def __init__(self, resource_type: ResourceType, identifier: str):
        self.resource_type = resource_type.value
        self.identifier = identifier
        super().__init__(f"Unauthorized access to {self.resource_type.lower()} '{identifier}'")


class InvalidActionException(Exception):
    def __init__(self, action: str):
        self.action = action
        super().__init__(f"Unknown action: {action}")


class OperationFailedException(Exception):
    def __init__(self, message: str = "Operation failed"):
        super().__init__(message)


class JobValidationException(Exception):
    """Raised for a malformed job payload or an unrecognized enum value."""


class TransientQueueException(Exception):
    """Raised when a job could not be handed to the broker; safe to retry."""


class TerminalJobException(Exception):
    def __init__(self, job_id: str | None, attempts: int, reason: str):
        self.job_id = job_id
        self.attempts = attempts
        self.reason = reason
        super().__init__(
            f"Job '{job_id}' failed after {attempts} attempt(s): {reason}"
        )


# Exception handlers
def resource_not_found_handler(request: Request, exc: ResourceNotFoundException):
    logger.error(exc)
    return JSONResponse(
        status_code=status.HTTP_404_NOT_FOUND,
        content={"detail": str(exc)},
    )


def unauthorized_handler(request: Request, exc: UnauthorizedException):
    logger.error(exc)
    return JSONResponse(
        status_code=status.HTTP_403_FORBIDDEN,
        content={"detail": str(exc)},
    )


def operation_failed_handler(request: Request, exc: OperationFailedException):
    logger.error(exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Operation failed"},
    )


def unexpected_exception_handler(request: Request, exc: Exception):
    logger.error(exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "An unexpected error occurred"},
    )


def redis_connection_exception_handler(request: Request, exc: ConnectionError):
    logger.error(f"Failed to connect to Redis: {exc}")
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": "Service unavailable"},
    )


def rate_limit_exception_handler(request: Request, exc: Exception):
    return JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        content={"detail": "Too many requests. Please try again later."},
    )


def validation_exception_handler(request: Request, exc: RequestValidationError):
    def loc_to_dot_sep(loc: tuple[Any, ...]) -> str:
        """Convert a tuple of location parts to a dot-separated string"""
        path = ""
        for i, x in enumerate(loc):
            if isinstance(x, str):
                if i > 0:
                    path += "."
                path += x
            elif isinstance(x, int):
                path += f"[{x}]"
            else:
                raise TypeError("Unexpected type")
        return path

    def process_error(error: dict[str, Any]) -> dict[str, Any]:
        error["loc"] = loc_to_dot_sep(error["loc"])
        error.pop("ctx", None)
        return error

    errors = [process_error(error) for error in exc.errors()]

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": "Validation error", "errors": errors},
    )


# Response definitions for OpenAPI documentation
ResponseDict = dict[int | str, dict[str, Any]]


def resource_not_found_response(
    resource_type: ResourceType,
) -> ResponseDict:
    return {
        404: {
            "description": f"{resource_type.value} not found",
            "content": {
                "application/json": {
                    "example": {"detail": f"{resource_type.value} 'example' not found"}
                }
            },
        }
    }


def unauthorized_response(resource_type: ResourceType) -> ResponseDict:
    return {
        403: {
            "description": f"Unauthorized access to {resource_type.value.lower()}",
            "content": {
                "application/json": {
                    "example": {
                        "detail": f"Unauthorized access to {resource_type.value.lower()} 'example'"
                    }
                }
            },
        }
    }


service_unavailable_response: ResponseDict = {
    503: {
        "description": "Service unavailable",
        "content": {"application/json": {"example": {"detail": "Service unavailable"}}},
    }
}

internal_error_response: ResponseDict = {
    500: {
        "description": "Internal server error",
        "content": {
            "application/json": {"example": {"detail": "An unexpected error occurred"}}
        },
    }
}

validation_error_response: ResponseDict = {
    422: {
        "description": "Validation error",
        "content": {
            "application/json": {
                "example": {
                    "detail": "Validation error",
                    "errors": [
                        {
                            "type": "type",
                            "loc": "field.sub_field",
                            "msg": "error message",
                            "input": "input value",
                        }
                    ],
                }
            }
        },
    }
}
