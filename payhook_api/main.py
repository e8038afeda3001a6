"""FastAPI application for payhook (payment webhook → order → push)."""

import logging
import os
import time
import uuid
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from payhook_api import __version__
from payhook_api.context import event_id_var, order_id_var, request_id_var
from payhook_api.payments.ingress import WebhookIngressHandler
from payhook_api.routers import health, webhooks
from payhook_api.schemas import ProblemDetail
from payhook_api.utils.logging import configure_json_logging

logger = logging.getLogger(__name__)

_STATUS_TITLES = {
    400: "Bad Request",
    401: "Unauthorized",
    403: "Forbidden",
    404: "Not Found",
    405: "Method Not Allowed",
    409: "Conflict",
    429: "Too Many Requests",
    500: "Internal Server Error",
    502: "Bad Gateway",
    503: "Service Unavailable",
}


def _get_title_for_status(status_code: int) -> str:
    """Get human-readable title for HTTP status code."""
    return _STATUS_TITLES.get(status_code, f"HTTP {status_code}")


def _instance() -> str:
    request_id = request_id_var.get()
    return f"urn:payhook:trace:{request_id or uuid.uuid4()}"


# ============================================================================
# RFC 9457 Global Exception Handlers
# ============================================================================


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Render HTTP exceptions as RFC 9457 Problem Details."""
    detail_value = exc.detail if exc.detail is not None else _get_title_for_status(exc.status_code)
    problem = ProblemDetail(
        type=f"urn:payhook:problem:http-{exc.status_code}",
        title=_get_title_for_status(exc.status_code),
        status=exc.status_code,
        detail=detail_value,
        instance=_instance(),
    )
    headers = {"Retry-After": "60"} if exc.status_code in (429, 503) else None
    return JSONResponse(
        status_code=exc.status_code,
        content=problem.model_dump(exclude_none=True),
        media_type="application/problem+json",
        headers=headers,
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Render request validation errors as 422 Problem Details."""
    first_error = exc.errors()[0] if exc.errors() else {}
    field = ".".join(str(loc) for loc in first_error.get("loc", []))
    msg = first_error.get("msg", "Validation error")
    problem = ProblemDetail(
        type="urn:payhook:problem:validation-error",
        title="Request Validation Failed",
        status=422,
        detail=f"Invalid field '{field}': {msg}",
        instance=_instance(),
    )
    return JSONResponse(
        status_code=422,
        content=problem.model_dump(exclude_none=True),
        media_type="application/problem+json",
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Render uncaught exceptions as 500 Problem Details (details only in logs)."""
    logger.error("UNHANDLED_EXCEPTION", extra={"path": request.url.path}, exc_info=True)
    problem = ProblemDetail(
        type="urn:payhook:problem:internal-error",
        title="Internal Server Error",
        status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="An unexpected error occurred. Please try again later.",
        instance=_instance(),
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=problem.model_dump(exclude_none=True),
        media_type="application/problem+json",
        headers={"Retry-After": "60"},
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    handler: Optional[WebhookIngressHandler] = getattr(app.state, "webhook_handler", None)
    if handler is not None:
        await handler.dispatcher.fanout.gateway.aclose()


# ============================================================================
# Application Factory
# ============================================================================


def create_app(
    *,
    webhook_handler: Optional[WebhookIngressHandler] = None,
    json_logs: Optional[bool] = None,
) -> FastAPI:
    """Create the FastAPI application.

    Args:
        webhook_handler: Pre-built ingress handler (tests). When omitted the
            handler is built from the environment on the first webhook.
        json_logs: Force JSON logging on/off (default: PAYHOOK_JSON_LOGS, true)

    Returns:
        Configured FastAPI application instance
    """
    if json_logs is None:
        json_logs = os.getenv("PAYHOOK_JSON_LOGS", "true").lower() in {"1", "true", "yes"}
    if json_logs:
        configure_json_logging(os.getenv("LOG_LEVEL", "INFO").upper())

    new_app = FastAPI(
        title="payhook",
        description="Signed payment webhooks → idempotent order transitions → push notifications.",
        version=__version__,
        lifespan=lifespan,
    )
    new_app.state.webhook_handler = webhook_handler

    new_app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    new_app.add_exception_handler(RequestValidationError, validation_exception_handler)
    new_app.add_exception_handler(Exception, general_exception_handler)

    new_app.include_router(health.router, tags=["health"])
    new_app.include_router(webhooks.router)

    # Completion logging middleware (inner)
    @new_app.middleware("http")
    async def completion_logging_mw(request: Request, call_next):
        """Log every HTTP request completion (http.request.completed)."""
        event_id_var.set("")
        order_id_var.set("")

        start_time = time.perf_counter()
        status_code = 500

        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            duration_ms = (time.perf_counter() - start_time) * 1000
            logger.info(
                "http.request.completed",
                extra={
                    "event": "http.request.completed",
                    "method": request.method,
                    "path": request.url.path,
                    "status_code": status_code,
                    "duration_ms": round(duration_ms, 2),
                },
            )

    # Request ID middleware (outermost for context propagation)
    @new_app.middleware("http")
    async def request_id_mw(request: Request, call_next):
        """Accept or generate X-Request-ID and echo it on the response."""
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request_id_var.set(request_id)
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response

    return new_app


app = create_app()
