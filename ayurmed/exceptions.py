"""Error taxonomy shared by the services and mapped to HTTP responses in main."""

import logging

from fastapi import Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class AyurMedError(Exception):
    status_code = 500

    def __init__(self, message: str = "") -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(AyurMedError):
    """A login email, health ID, patient or prescription id did not resolve."""

    status_code = 404


class ExtractionError(AyurMedError):
    """The model call failed or returned something that is not the agreed schema."""

    status_code = 502


class ConfigurationError(AyurMedError):
    """A credential required for an AI call is missing."""

    status_code = 503


class ValidationInputError(AyurMedError):
    status_code = 400


class InvalidTransitionError(ValidationInputError):
    status_code = 409


async def ayurmed_exception_handler(request: Request, exc: AyurMedError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc.message)
    else:
        logger.info("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})
