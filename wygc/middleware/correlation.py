"""Correlation ID middleware.

Generates or extracts a correlation ID per request so every log line of an
alert's intake can be traced back to the request that created it.
"""

import time
import uuid

from starlette.types import ASGIApp, Message, Receive, Scope, Send

from wygc.logging_config import correlation_id_ctx, get_logger

logger = get_logger(__name__)

CORRELATION_ID_HEADER = "X-Correlation-ID"

# Probe endpoints are polled constantly and would drown the request log
QUIET_PATHS = frozenset({"/health", "/health/live", "/health/ready", "/status"})


class CorrelationIdMiddleware:
    """Pure ASGI middleware that adds correlation IDs to requests.

    If the incoming request has an X-Correlation-ID header, it uses that value.
    Otherwise, it generates a new UUID for the request. The ID is set in the
    logging context for the duration of the request and echoed back in the
    response headers.

    Escalation tasks started during a request copy the context, so their
    log lines carry the ID of the request that received the alert.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        headers = dict(scope.get("headers", []))
        correlation_id = headers.get(b"x-correlation-id", b"").decode() or str(
            uuid.uuid4()
        )
        token = correlation_id_ctx.set(correlation_id)

        start_time = time.perf_counter()
        status_code: int | None = None
        method = scope.get("method", "")
        path = scope.get("path", "")
        quiet = path in QUIET_PATHS

        if not quiet:
            client = scope.get("client")
            logger.info(
                "Request started",
                method=method,
                path=path,
                client_ip=client[0] if client else None,
            )

        async def send_wrapper(message: Message) -> None:
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message.get("status")
                response_headers = list(message.get("headers", []))
                response_headers.append(
                    (CORRELATION_ID_HEADER.lower().encode(), correlation_id.encode())
                )
                message = {**message, "headers": response_headers}
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
            if not quiet:
                logger.info(
                    "Request completed",
                    method=method,
                    path=path,
                    status_code=status_code,
                    duration_ms=round((time.perf_counter() - start_time) * 1000, 2),
                )
        except Exception:
            logger.exception(
                "Request failed",
                method=method,
                path=path,
                duration_ms=round((time.perf_counter() - start_time) * 1000, 2),
            )
            raise
        finally:
            correlation_id_ctx.reset(token)
