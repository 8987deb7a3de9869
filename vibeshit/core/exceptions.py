# core/exceptions.py
import logging
from typing import Any

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)

GENERIC_ERROR_MESSAGE = "Internal server error"


class VibeShitException(Exception):
    """
    Base exception for the API.

    Business-rule and validation errors carry a user-facing message that is
    returned verbatim; upstream failures carry an opaque one.
    """

    status_code = 500
    code = "ERROR"

    def __init__(self, message: str, errors: list[str] | None = None):
        super().__init__(message)
        self.message = message
        self.errors = errors or []

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"success": False, "error": self.message, "code": self.code}
        if self.errors:
            result["errors"] = self.errors
        return result


class ValidationError(VibeShitException):
    status_code = 400
    code = "VALIDATION_ERROR"

    @classmethod
    def from_messages(cls, messages: list[str]) -> "ValidationError":
        return cls(messages[0], errors=list(messages))


class Unauthorized(VibeShitException):
    status_code = 401
    code = "UNAUTHORIZED"

    def __init__(self, message: str = "Not authenticated"):
        super().__init__(message)


class NotFound(VibeShitException):
    status_code = 404
    code = "NOT_FOUND"


# === Conflicts (business rule violations) ===

class Conflict(VibeShitException):
    status_code = 400
    code = "CONFLICT"


class InvalidAction(Conflict):
    def __init__(self, action: Any):
        super().__init__(f"Invalid action: {action!r}")


class InvalidSelfVote(Conflict):
    def __init__(self):
        super().__init__("You cannot vote on your own project")


class AlreadyVoted(Conflict):
    def __init__(self):
        super().__init__("You have already voted for this project")


class NoExistingVote(Conflict):
    def __init__(self):
        super().__init__("You have not voted for this project")


class UploadRejected(VibeShitException):
    status_code = 400
    code = "UPLOAD_REJECTED"


class UpstreamFailure(VibeShitException):
    status_code = 500
    code = "UPSTREAM_FAILURE"

    def __init__(self, message: str = GENERIC_ERROR_MESSAGE):
        super().__init__(message)


# === Handlers ===

def internal_error_response() -> JSONResponse:
    return JSONResponse(status_code=500, content={"success": False, "error": GENERIC_ERROR_MESSAGE})


async def vibeshit_exception_handler(request: Request, exc: VibeShitException) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def request_validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    messages = []
    for err in exc.errors():
        loc = ".".join(str(part) for part in err.get("loc", ()) if part != "body")
        messages.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    if not messages:
        messages = ["Invalid request"]
    return await vibeshit_exception_handler(request, ValidationError.from_messages(messages))


async def upstream_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    # Store and object-storage errors never leak to the caller
    logger.exception(f"Upstream failure on {request.method} {request.url.path}: {exc}")
    return await vibeshit_exception_handler(request, UpstreamFailure())
