"""Ledger exception taxonomy and the FastAPI handlers that render it.

Every business failure is a typed FarmVaultException carrying an HTTP
status and a stable error code, so the UI can show the specific reason
(insufficient funds, unpaid pickers, validation) and the corrective action
that goes with it.
"""

import logging
import traceback
from typing import Union

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import IntegrityError, OperationalError
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class FarmVaultException(Exception):
    """Base exception for FarmVault ledger errors."""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        error_code: str = "INTERNAL_ERROR",
        details: dict | None = None,
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details
        super().__init__(self.message)


class ValidationError(FarmVaultException):
    """Malformed input, rejected before any write."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(
            message=message,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            error_code="VALIDATION_ERROR",
            details=details,
        )


class ResourceNotFoundError(FarmVaultException):
    """Exception for resources not found."""

    def __init__(self, resource: str, identifier: str):
        super().__init__(
            message=f"{resource} not found: {identifier}",
            status_code=status.HTTP_404_NOT_FOUND,
            error_code="RESOURCE_NOT_FOUND",
        )


class WalletNotFoundError(FarmVaultException):
    def __init__(self, wallet_id: str):
        self.wallet_id = wallet_id
        super().__init__(
            message="No harvest wallet found for this project/crop. Add cash first.",
            status_code=status.HTTP_404_NOT_FOUND,
            error_code="WALLET_NOT_FOUND",
            details={"wallet_id": wallet_id},
        )


class InsufficientFundsError(FarmVaultException):
    def __init__(self, wallet_id: str, balance: float, required: float):
        self.wallet_id = wallet_id
        self.balance = balance
        self.required = required
        super().__init__(
            message=(
                f"Not enough cash in harvest wallet: balance {balance:.2f}, "
                f"required {required:.2f}"
            ),
            status_code=status.HTTP_409_CONFLICT,
            error_code="INSUFFICIENT_FUNDS",
            details={"wallet_id": wallet_id, "balance": balance, "required": required},
        )


class UnpaidPickersError(FarmVaultException):
    def __init__(self, collection_id: str, unpaid_picker_ids: list[str]):
        self.collection_id = collection_id
        self.unpaid_picker_ids = unpaid_picker_ids
        super().__init__(
            message=(
                f"Cannot close harvest: {len(unpaid_picker_ids)} picker(s) "
                f"are still unpaid."
            ),
            status_code=status.HTTP_409_CONFLICT,
            error_code="UNPAID_PICKERS",
            details={"collection_id": collection_id, "unpaid_picker_ids": unpaid_picker_ids},
        )


class InvalidTransitionError(FarmVaultException):
    """A collection operation not allowed in its current status."""

    def __init__(self, from_status: str, to_status: str, reason: str | None = None):
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason
        msg = f"Invalid transition from '{from_status}' to '{to_status}'"
        if reason:
            msg += f": {reason}"
        super().__init__(
            message=msg,
            status_code=status.HTTP_409_CONFLICT,
            error_code="INVALID_TRANSITION",
        )


class RecomputeError(FarmVaultException):
    """Totals are stale after a durably recorded weigh entry.

    Retry the recompute step, do not re-submit the weight.
    """

    def __init__(self, picker_id: str, collection_id: str, weigh_entry_id: str | None = None):
        self.picker_id = picker_id
        self.collection_id = collection_id
        self.weigh_entry_id = weigh_entry_id
        super().__init__(
            message="Weigh entry saved but totals could not be recomputed. Retry the recompute.",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            error_code="RECOMPUTE_FAILED",
            details={
                "picker_id": picker_id,
                "collection_id": collection_id,
                "weigh_entry_id": weigh_entry_id,
            },
        )


class ImmutableRecordError(FarmVaultException):
    def __init__(self, entity_type: str, entity_id: str):
        super().__init__(
            message=f"{entity_type} {entity_id} is immutable once recorded",
            error_code="IMMUTABLE_RECORD",
        )


def create_error_response(
    status_code: int,
    message: str,
    error_code: str = "ERROR",
    details: Union[dict, list, None] = None,
) -> JSONResponse:
    """Create standardized error response.

    Format:
    {
        "error": {
            "code": "ERROR_CODE",
            "message": "Human-readable error message",
            "details": {...}  // Optional additional details
        }
    }
    """
    content = {
        "error": {
            "code": error_code,
            "message": message,
        }
    }

    if details:
        content["error"]["details"] = details

    return JSONResponse(
        status_code=status_code,
        content=content,
    )


async def farmvault_exception_handler(
    request: Request,
    exc: FarmVaultException,
) -> JSONResponse:
    """Handle ledger exceptions."""
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        f"FarmVault exception: {exc.error_code} - {exc.message}",
        extra={
            "error_code": exc.error_code,
            "path": request.url.path,
            "method": request.method,
        },
    )

    return create_error_response(
        status_code=exc.status_code,
        message=exc.message,
        error_code=exc.error_code,
        details=exc.details,
    )


async def http_exception_handler(
    request: Request,
    exc: Union[HTTPException, StarletteHTTPException],
) -> JSONResponse:
    """Handle FastAPI HTTP exceptions."""
    if exc.status_code >= 500:
        logger.error(
            f"HTTP {exc.status_code}: {exc.detail}",
            extra={
                "path": request.url.path,
                "method": request.method,
            },
        )

    return create_error_response(
        status_code=exc.status_code,
        message=str(exc.detail),
        error_code=f"HTTP_{exc.status_code}",
    )


async def validation_exception_handler(
    request: Request,
    exc: Union[RequestValidationError, PydanticValidationError],
) -> JSONResponse:
    """Handle Pydantic validation errors."""
    logger.warning(
        f"Validation error on {request.url.path}",
        extra={
            "path": request.url.path,
            "method": request.method,
        },
    )

    errors = []
    for error in exc.errors():
        field = " -> ".join(str(loc) for loc in error["loc"])
        errors.append({
            "field": field,
            "message": error["msg"],
            "type": error["type"],
        })

    return create_error_response(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        message="Validation error",
        error_code="VALIDATION_ERROR",
        details={"errors": errors},
    )


async def database_exception_handler(
    request: Request,
    exc: IntegrityError,
) -> JSONResponse:
    """Handle database integrity errors (unique violations, foreign key, etc.)."""
    logger.error(
        f"Database integrity error on {request.url.path}: {str(exc)}",
        extra={
            "path": request.url.path,
            "method": request.method,
        },
    )

    error_msg = str(exc.orig) if hasattr(exc, "orig") else str(exc)

    if "unique" in error_msg.lower():
        message = "A record with this value already exists"
        error_code = "DUPLICATE_RECORD"
    elif "foreign key" in error_msg.lower():
        message = "Referenced record does not exist"
        error_code = "FOREIGN_KEY_VIOLATION"
    else:
        message = "Database constraint violation"
        error_code = "INTEGRITY_ERROR"

    return create_error_response(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        message=message,
        error_code=error_code,
    )


async def operational_exception_handler(
    request: Request,
    exc: OperationalError,
) -> JSONResponse:
    """Handle database operational errors (connection issues, lock timeouts)."""
    logger.error(
        f"Database operational error on {request.url.path}: {str(exc)}",
        extra={
            "path": request.url.path,
            "method": request.method,
        },
    )

    # The transaction may still have committed: re-fetch before retrying a payout
    return create_error_response(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        message="Database temporarily unavailable. Re-check the wallet before retrying.",
        error_code="DATABASE_UNAVAILABLE",
    )


async def general_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """Handle all other unhandled exceptions."""
    logger.error(
        f"Unhandled exception on {request.url.path}: {str(exc)}",
        extra={
            "path": request.url.path,
            "method": request.method,
            "traceback": traceback.format_exc(),
        },
        exc_info=True,
    )

    return create_error_response(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        message="An unexpected error occurred. Please try again later.",
        error_code="INTERNAL_SERVER_ERROR",
    )


def register_exception_handlers(app):
    """Register all custom exception handlers with FastAPI app."""
    app.add_exception_handler(FarmVaultException, farmvault_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(PydanticValidationError, validation_exception_handler)
    app.add_exception_handler(IntegrityError, database_exception_handler)
    app.add_exception_handler(OperationalError, operational_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)
