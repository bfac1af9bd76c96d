"""Global exception handlers for FastAPI."""

import logging
import traceback

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.responses import JSONResponse

from api.base import error_response
from auth.config import AuthConfig
from auth.exceptions import AuthError, RateLimitedError
from clients.email_client import EmailGatewayError

logger = logging.getLogger(__name__)


def register_error_handlers(app: FastAPI, config: AuthConfig) -> None:
    """Register global exception handlers on the app."""

    def details(exc: Exception, cause=None) -> dict:
        if config.is_production:
            return {}
        return {
            "cause": cause,
            "stack": "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
        }

    @app.exception_handler(AuthError)
    async def auth_error_handler(request: Request, exc: AuthError):
        headers = None
        if isinstance(exc, RateLimitedError):
            headers = {"Retry-After": str(exc.retry_after_seconds)}
        if exc.status_code >= 500:
            logger.error(f"{type(exc).__name__} on {request.url.path}: {exc.message}")
        return JSONResponse(
            status_code=exc.status_code,
            headers=headers,
            content=error_response(
                exc.status_code,
                exc.message,
                **details(exc, jsonable_encoder(exc.cause)),
            ),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=422,
            content=error_response(
                422,
                "Invalid request",
                **details(exc, jsonable_encoder(exc.errors())),
            ),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            headers=getattr(exc, "headers", None),
            content=error_response(exc.status_code, str(exc.detail)),
        )

    @app.exception_handler(EmailGatewayError)
    async def email_error_handler(request: Request, exc: EmailGatewayError):
        logger.error(f"Email delivery failed on {request.url.path}: {exc}")
        return JSONResponse(
            status_code=503,
            content=error_response(
                503,
                "Email service unavailable. Please try again later.",
                **details(exc, str(exc)),
            ),
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled exception")
        return JSONResponse(
            status_code=500,
            content=error_response(
                500,
                "An internal error occurred",
                **details(exc, str(exc)),
            ),
        )
