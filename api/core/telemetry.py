"""Request timing middleware and operation tracking."""

import asyncio
import os
import time
import uuid
from collections.abc import Callable
from functools import wraps
from typing import ParamSpec, TypeVar, cast

from starlette.types import ASGIApp, Message, Receive, Scope, Send

from core.logger import get_logger
from core.wide_event import (
    clear_wide_event,
    get_wide_event,
    init_wide_event,
    set_wide_event_fields,
)

logger = get_logger(__name__)

TELEMETRY_ENABLED = bool(os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT"))

SERVICE_NAME = os.getenv("SERVICE_NAME", "journey-visibility-api")
SERVICE_VERSION = os.getenv("SERVICE_VERSION", "0.1.0")

if TELEMETRY_ENABLED:
    from opentelemetry import trace
    from opentelemetry.trace import Status, StatusCode

    tracer = trace.get_tracer(__name__)
else:
    trace = None
    tracer = None
    Status = None
    StatusCode = None

P = ParamSpec("P")
R = TypeVar("R")


class SecurityHeadersMiddleware:
    """Adds security headers (X-Content-Type-Options, X-Frame-Options, etc)."""

    SECURITY_HEADERS: list[tuple[bytes, bytes]] = [
        (b"x-content-type-options", b"nosniff"),
        (b"x-frame-options", b"DENY"),
        (b"referrer-policy", b"strict-origin-when-cross-origin"),
        (b"strict-transport-security", b"max-age=31536000; includeSubDomains"),
    ]

    def __init__(self, app: ASGIApp):
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        async def send_wrapper(message: Message) -> None:
            if message.get("type") == "http.response.start":
                headers: list[tuple[bytes, bytes]] = list(message.get("headers", []))
                headers.extend(self.SECURITY_HEADERS)
                message["headers"] = headers
            await send(message)

        await self.app(scope, receive, send_wrapper)


class RequestTimingMiddleware:
    """Times each request and emits one wide event (canonical log line) at the end.

    Errors, slow requests and admin requests are always emitted; plain
    successful public reads are not.
    """

    def __init__(self, app: ASGIApp):
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        start_time = time.perf_counter()
        method = scope.get("method", "UNKNOWN")
        path = scope.get("path", "")
        request_id = str(uuid.uuid4())

        wide_event = init_wide_event()
        wide_event["service_name"] = SERVICE_NAME
        wide_event["service_version"] = SERVICE_VERSION
        wide_event["request_id"] = request_id
        wide_event["http_method"] = method
        wide_event["http_path"] = path

        response_status: int | None = None

        async def send_wrapper(message: Message) -> None:
            nonlocal response_status

            if message.get("type") == "http.response.start":
                response_status = int(message.get("status", 0))
                headers: list[tuple[bytes, bytes]] = list(message.get("headers", []))
                duration_ms = (time.perf_counter() - start_time) * 1000
                headers.append(
                    (b"x-request-duration-ms", f"{duration_ms:.2f}".encode())
                )
                headers.append((b"x-request-id", request_id.encode()))
                message["headers"] = headers

            elif message.get("type") == "http.response.body" and not message.get(
                "more_body", False
            ):
                duration_ms = (time.perf_counter() - start_time) * 1000
                route = scope.get("route")
                route_path = getattr(route, "path", None) or path

                event = get_wide_event()
                event["http_route"] = route_path
                event["http_status_code"] = response_status
                event["duration_ms"] = round(duration_ms, 2)
                event["outcome"] = (
                    "success" if response_status and response_status < 400 else "error"
                )

                should_emit = (
                    response_status is None
                    or response_status >= 400
                    or duration_ms > 1000
                    or event.get("admin_user_id")
                )
                if should_emit:
                    logger.info("request.completed", **event)

                clear_wide_event()

            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        except Exception as exc:
            duration_ms = (time.perf_counter() - start_time) * 1000
            event = get_wide_event()
            event["duration_ms"] = round(duration_ms, 2)
            event["outcome"] = "exception"
            event["exception_type"] = type(exc).__name__
            logger.info("request.completed", **event)
            clear_wide_event()
            raise


def track_operation(operation_name: str):
    """Decorator to track service operations.

    Opens an OpenTelemetry span when telemetry is configured. Failures are
    recorded on the wide event either way and re-raised.
    """

    def decorator(func: Callable[P, R]) -> Callable[P, R]:
        if not asyncio.iscoroutinefunction(func):
            raise TypeError("track_operation only supports async functions")

        @wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs):
            start_time = time.perf_counter()
            try:
                if TELEMETRY_ENABLED and tracer:
                    with tracer.start_as_current_span(
                        operation_name,
                        attributes={"operation.name": operation_name},
                    ) as span:
                        try:
                            return await func(*args, **kwargs)
                        except Exception as e:
                            span.record_exception(e)
                            if Status is not None and StatusCode is not None:
                                span.set_status(Status(StatusCode.ERROR, str(e)))
                            raise
                return await func(*args, **kwargs)
            except Exception as e:
                set_wide_event_fields(
                    operation_failed=operation_name,
                    operation_error_type=type(e).__name__,
                )
                raise
            finally:
                duration_ms = (time.perf_counter() - start_time) * 1000
                if duration_ms > 1000:
                    logger.warning(
                        "operation.slow",
                        operation=operation_name,
                        duration_ms=round(duration_ms, 2),
                    )

        return cast(Callable[P, R], wrapper)

    return decorator
