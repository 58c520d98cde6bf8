import logging
import time
from uuid import uuid4

from fastapi import FastAPI, HTTPException, Request, Response
from fastapi.exceptions import RequestValidationError

from clinic_booking.api.v1.admin import router as admin_router
from clinic_booking.api.v1.availability import router as availability_router
from clinic_booking.api.v1.bookings import router as bookings_router
from clinic_booking.api.v1.sessions import router as sessions_router
from clinic_booking.api.v1.users import router as users_router
from clinic_booking.core.errors import BookingError
from clinic_booking.core.exceptions import (
    booking_error_handler,
    http_exception_handler,
    validation_exception_handler,
)
from clinic_booking.core.logging import setup_logging
from clinic_booking.core.metrics import REQUEST_COUNT, REQUEST_LATENCY, render_metrics
from clinic_booking.core.request_context import request_id_ctx_var

setup_logging()
logger = logging.getLogger("clinic_booking.request")

app = FastAPI(title="Clinic Booking API", version="0.1.0")
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(BookingError, booking_error_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)

app.include_router(users_router)
app.include_router(availability_router)
app.include_router(bookings_router)
app.include_router(sessions_router)
app.include_router(admin_router)


def _route_template(request: Request) -> str:
    # label metrics by "/bookings/{booking_id}", not by every booking id
    route = request.scope.get("route")
    return getattr(route, "path", None) or request.url.path


def _observe(request: Request, status_code: int, started: float) -> float:
    elapsed = time.perf_counter() - started
    path = _route_template(request)
    REQUEST_COUNT.labels(method=request.method, path=path, status_code=status_code).inc()
    REQUEST_LATENCY.labels(method=request.method, path=path).observe(elapsed)
    return elapsed * 1000


@app.middleware("http")
async def observability_middleware(request: Request, call_next):
    request_id = request.headers.get("x-request-id") or str(uuid4())
    token = request_id_ctx_var.set(request_id)
    started = time.perf_counter()
    try:
        try:
            response = await call_next(request)
        except Exception:
            duration_ms = _observe(request, 500, started)
            logger.exception(
                "request_failed method=%s path=%s status=500 duration_ms=%.2f",
                request.method,
                request.url.path,
                duration_ms,
            )
            raise

        duration_ms = _observe(request, response.status_code, started)
        response.headers["X-Request-ID"] = request_id
        logger.info(
            "request_completed method=%s path=%s status=%s duration_ms=%.2f",
            request.method,
            request.url.path,
            response.status_code,
            duration_ms,
        )
        return response
    finally:
        request_id_ctx_var.reset(token)


@app.get("/health", tags=["health"])
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/metrics", tags=["observability"])
def metrics() -> Response:
    payload, content_type = render_metrics()
    return Response(content=payload, media_type=content_type)
