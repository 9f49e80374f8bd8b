"""Centralized CLI error handling with a stable error contract."""

from __future__ import annotations

import logging

from pydantic import ValidationError

from crypto import FieldCodecError
from db.rest_client import AuthError, StoreError
from services.auth_service import NotAuthenticatedError
from services.task_service import TaskNotFoundError

logger = logging.getLogger(__name__)

EXIT_CODES = {
    "internal_error": 1,
    "unauthorized": 2,
    "not_found": 3,
    "validation_error": 4,
    "store_error": 5,
    "codec_error": 6,
}


def _payload(
    *,
    code: str,
    message: str,
    retryable: bool,
    details: dict | list | str | None = None,
) -> dict:
    error: dict[str, object] = {
        "code": code,
        "message": message,
        "retryable": retryable,
    }
    if details is not None:
        error["details"] = details
    return {"error": error}


def error_payload(exc: Exception) -> tuple[int, dict]:
    """Map an exception to (exit code, error envelope)."""
    if isinstance(exc, NotAuthenticatedError):
        return EXIT_CODES["unauthorized"], _payload(
            code="unauthorized", message=str(exc), retryable=False
        )
    if isinstance(exc, AuthError):
        return EXIT_CODES["unauthorized"], _payload(
            code="unauthorized",
            message=exc.message,
            retryable=exc.retryable,
            details={"backend_code": exc.code},
        )
    if isinstance(exc, TaskNotFoundError):
        return EXIT_CODES["not_found"], _payload(
            code="not_found", message=str(exc), retryable=False
        )
    if isinstance(exc, ValidationError):
        return EXIT_CODES["validation_error"], _payload(
            code="validation_error",
            message="Input validation failed.",
            retryable=False,
            details=[
                {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
                for err in exc.errors()
            ],
        )
    if isinstance(exc, StoreError):
        details = {"backend_code": exc.code}
        if exc.status_code is not None:
            details["status_code"] = exc.status_code
        return EXIT_CODES["store_error"], _payload(
            code="store_error", message=exc.message, retryable=exc.retryable, details=details
        )
    if isinstance(exc, ValueError):
        return EXIT_CODES["validation_error"], _payload(
            code="validation_error", message=str(exc), retryable=False
        )
    if isinstance(exc, FieldCodecError):
        return EXIT_CODES["codec_error"], _payload(
            code="codec_error",
            message=str(exc),
            retryable=False,
            details={"exception": exc.__class__.__name__},
        )

    logger.exception("Unhandled error", exc_info=exc)
    return EXIT_CODES["internal_error"], _payload(
        code="internal_error",
        message="Unexpected error.",
        retryable=True,
        details={"exception": exc.__class__.__name__},
    )
