from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette import status
from starlette.exceptions import HTTPException as StarletteHTTPException

from tripstore.models.constants import ValidationErrorType

logger = logging.getLogger("tripstore.errors")


class TripDataError(Exception):
    """Base error for the trip document core.

    Carries a taxonomy kind plus the structured error list (dicts shaped like
    ``ValidationIssue``) so transports can render a stable payload.
    """

    error_type: ValidationErrorType = ValidationErrorType.VALIDATION_ERROR

    def __init__(
        self,
        message: str,
        error_type: Optional[ValidationErrorType] = None,
        errors: Optional[List[Dict[str, Any]]] = None,
        **context: Any,
    ) -> None:
        super().__init__(message)
        self.message = message
        if error_type is not None:
            self.error_type = error_type
        self.errors = list(errors or [])
        self.context = {k: v for k, v in context.items() if v is not None}

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "success": False,
            "error": self.error_type.value,
            "detail": self.message,
            "errors": self.errors,
        }
        payload.update(self.context)
        return payload


class TripNotFoundError(TripDataError):
    error_type = ValidationErrorType.TRIP_NOT_FOUND


class ExpenseNotFoundError(TripDataError):
    error_type = ValidationErrorType.EXPENSE_NOT_FOUND


class TravelItemNotFoundError(TripDataError):
    error_type = ValidationErrorType.TRAVEL_ITEM_NOT_FOUND


class CrossTripReferenceError(TripDataError):
    error_type = ValidationErrorType.CROSS_TRIP_REFERENCE


class DuplicateLinkError(TripDataError):
    error_type = ValidationErrorType.DUPLICATE_LINK


class SplitValidationError(TripDataError):
    error_type = ValidationErrorType.SPLIT_VALIDATION_FAILED


class InvalidTripDataError(TripDataError):
    error_type = ValidationErrorType.INVALID_TRIP_DATA


class OutdatedSchemaError(InvalidTripDataError):
    """Document could not be migrated to the current schema version."""


class BoundaryViolationError(TripDataError):
    error_type = ValidationErrorType.CROSS_TRIP_REFERENCE


class ConflictError(TripDataError):
    """Document changed since it was loaded; the caller must reload and retry."""

    error_type = ValidationErrorType.VERSION_CONFLICT


class UnknownTravelItemType(TripDataError, TypeError):
    error_type = ValidationErrorType.VALIDATION_ERROR


_NOT_FOUND_TYPES = {
    ValidationErrorType.TRIP_NOT_FOUND,
    ValidationErrorType.EXPENSE_NOT_FOUND,
    ValidationErrorType.TRAVEL_ITEM_NOT_FOUND,
}
_CONFLICT_TYPES = {
    ValidationErrorType.DUPLICATE_LINK,
    ValidationErrorType.VERSION_CONFLICT,
}


def status_for(error_type: ValidationErrorType) -> int:
    if error_type in _NOT_FOUND_TYPES:
        return status.HTTP_404_NOT_FOUND
    if error_type in _CONFLICT_TYPES:
        return status.HTTP_409_CONFLICT
    return status.HTTP_400_BAD_REQUEST


def trip_data_error_handler(request: Request, exc: TripDataError):  # type: ignore
    code = status_for(exc.error_type)
    if code >= 400 and exc.errors:
        logger.info(
            "request rejected: %s",
            exc.message,
            extra={"errors": exc.errors, "trip_id": exc.context.get("trip_id")},
        )
    return JSONResponse(status_code=code, content=exc.to_payload())


def http_error_handler(request: Request, exc: StarletteHTTPException):  # type: ignore
    if exc.status_code == status.HTTP_404_NOT_FOUND and exc.detail == "Not Found":
        detail: Any = f"No route for {request.method} {request.url.path}"
    else:
        detail = exc.detail
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "error": "not_found" if exc.status_code == 404 else "http_error",
            "detail": detail,
        },
    )


def validation_error_handler(request: Request, exc: RequestValidationError):  # type: ignore
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "success": False,
            "error": ValidationErrorType.VALIDATION_ERROR.value,
            "detail": jsonable_errors(exc.errors()),
        },
    )


def server_error_handler(request: Request, exc: Exception):  # type: ignore
    logger.exception("unhandled exception")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "success": False,
            "error": "internal_error",
            "detail": "An unexpected error occurred.",
        },
    )


def jsonable_errors(errors: Any) -> List[Dict[str, Any]]:
    # pydantic v2 may put exception instances under "ctx"
    cleaned = []
    for err in errors:
        item = dict(err)
        ctx = item.get("ctx")
        if isinstance(ctx, dict):
            item["ctx"] = {k: str(v) for k, v in ctx.items()}
        cleaned.append(item)
    return cleaned
