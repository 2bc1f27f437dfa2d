"""Error taxonomy and the uniform error envelope returned to API callers."""
import logging
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

logger = logging.getLogger(__name__)


class HospitalError(Exception):
    """Base class for errors that are rendered as an error envelope"""
    status_code = 500

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class InvalidRequest(HospitalError):
    status_code = 400


class NotFound(HospitalError):
    status_code = 404


class BadCredentials(HospitalError):
    status_code = 401


class InvalidToken(BadCredentials):
    """Token signature, structure or expiry could not be verified"""


class AuthenticationRequired(HospitalError):
    status_code = 401


class Forbidden(HospitalError):
    status_code = 403

    def __init__(self, message: str = "Access denied"):
        super().__init__(message)


class Conflict(HospitalError):
    status_code = 409


class ProviderConflict(Conflict):
    """Email is already registered through a different identity provider"""


class OAuthError(HospitalError):
    status_code = 502


def error_envelope(message: str, status_code: int) -> JSONResponse:
    """Build the JSON body every failed request gets"""
    return JSONResponse(
        status_code=status_code,
        content={
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "error": message,
            "status": status_code,
        },
    )


async def hospital_error_handler(request: Request, exc: HospitalError):
    logger.info("%s %s -> %s: %s", request.method, request.url.path,
                exc.status_code, type(exc).__name__)
    return error_envelope(exc.message, exc.status_code)


async def http_exception_handler(request: Request, exc: HTTPException):
    return error_envelope(str(exc.detail), exc.status_code)


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    problems = "; ".join(
        f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}" for error in exc.errors()
    )
    return error_envelope(problems or "Invalid request", 422)


def register_error_handlers(app: FastAPI):
    app.add_exception_handler(HospitalError, hospital_error_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
