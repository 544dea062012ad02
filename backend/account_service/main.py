"""Account service application.

Wires the account router, the error envelope for every failure path,
response headers, and the liveness probe.
"""

import logging

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from account_service.api.security import router as account_router
from account_service.core.config import settings
from account_service.core.errors import APIError
from account_service.core.responses import ErrorDetail, ErrorResponse

logger = structlog.get_logger()

HEALTH_PATH = "/health"

# JSON-only API: nothing may frame it or load resources from it
_STATIC_HEADERS = {
    "X-Frame-Options": "DENY",
    "X-Content-Type-Options": "nosniff",
    "Content-Security-Policy": "default-src 'none'; frame-ancestors 'none'",
    # Reset and confirmation links carry their token in the query string
    "Referrer-Policy": "no-referrer",
}


class AccountHeadersMiddleware(BaseHTTPMiddleware):
    """Adds the static headers, plus no-store on every account response.

    Form pages embed CSRF tokens and login responses set the session
    cookie, so only the health probe may be cached. HSTS is sent in
    production, where TLS terminates at the proxy.
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        response = await call_next(request)
        response.headers.update(_STATIC_HEADERS)
        if request.url.path != HEALTH_PATH:
            response.headers["Cache-Control"] = "no-store, max-age=0"
        if settings.environment == "production":
            response.headers["Strict-Transport-Security"] = (
                "max-age=31536000; includeSubDomains"
            )
        return response


def _error_response(
    status_code: int, code: str, message: str, details: list[dict] | None = None
) -> JSONResponse:
    body = ErrorResponse(
        error=ErrorDetail(code=code, message=message, details=details)
    )
    return JSONResponse(status_code=status_code, content=body.model_dump())


def api_error_handler(_request: Request, exc: APIError) -> JSONResponse:
    """Render an account error, including any form redirect hint."""
    return _error_response(exc.status_code, exc.code, exc.message, exc.details)


def validation_error_handler(
    _request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Malformed request bodies share the 400 VALIDATION_ERROR code."""
    details = [
        {"loc": list(e["loc"]), "msg": e["msg"], "type": e["type"]}
        for e in exc.errors()
    ]
    return _error_response(
        400, "VALIDATION_ERROR", "Request validation failed", details
    )


def internal_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled exception", exc_info=exc, path=str(request.url.path))
    return _error_response(500, "INTERNAL_ERROR", "An unexpected error occurred")


def create_app() -> FastAPI:
    """Build the account service app from ``settings``."""
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    app = FastAPI(
        title="Account Service",
        version="1.0.0",
        description="Registration, email confirmation, and password reset",
    )

    app.add_middleware(AccountHeadersMiddleware)
    # Added last so it runs first and answers preflight requests
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Accept"],
    )

    app.add_exception_handler(APIError, api_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, internal_error_handler)

    app.include_router(account_router)

    @app.get(HEALTH_PATH)
    def health_check() -> dict:
        return {"status": "healthy"}

    return app


# uvicorn account_service.main:app
app = create_app()
