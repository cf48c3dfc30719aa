"""Structured logging for the learning service.

Every request gets a trace_id. Experiment and training job ids found in the
path are bound alongside it, so service log lines about an experiment or a
job carry the request that touched it. The calling user is only known once
authentication has run, so it is attached to the request's closing line.
"""
import logging
import re
import time
import uuid
from typing import Callable, Dict

import structlog
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from pricelab.config import get_settings

_PATH_IDS = (
    ("experiment_id", re.compile(r"^/learning/experiment/(?!create/?$)([^/]+)")),
    ("job_id", re.compile(r"^/learning/rl/train/([^/]+)")),
    ("listing_id", re.compile(r"^/learning/listings/([^/]+)")),
)


def configure_logging(debug: bool = False) -> None:
    """JSON lines to stdout; debug events are only emitted in debug mode."""
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.JSONRenderer()
        ],
        wrapper_class=structlog.make_filtering_bound_logger(logging.DEBUG if debug else logging.INFO),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=False
    )


configure_logging(get_settings().debug)

logger = structlog.get_logger()


def path_context(path: str) -> Dict[str, str]:
    """Resource ids addressed by a learning API path."""
    context = {}
    for name, pattern in _PATH_IDS:
        match = pattern.match(path)
        if match:
            context[name] = match.group(1)
    return context


class LoggingMiddleware(BaseHTTPMiddleware):
    """
    Binds trace_id and path ids for the request, logs its start and end,
    and returns the trace_id in the X-Trace-ID header.
    """

    async def dispatch(self, request: Request, call_next: Callable):
        trace_id = str(uuid.uuid4())
        request.state.trace_id = trace_id

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(trace_id=trace_id, **path_context(request.url.path))

        logger.info(
            "request_started",
            method=request.method,
            path=request.url.path,
            client_ip=request.client.host if request.client else None
        )

        start_time = time.time()
        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                "request_failed",
                user_id=getattr(request.state, "user_id", None),
                error=str(e),
                error_type=type(e).__name__,
                latency_ms=int((time.time() - start_time) * 1000)
            )
            raise

        log = logger.warning if response.status_code >= 500 else logger.info
        log(
            "request_completed",
            user_id=getattr(request.state, "user_id", None),
            status_code=response.status_code,
            latency_ms=int((time.time() - start_time) * 1000)
        )

        response.headers["X-Trace-ID"] = trace_id
        return response


def get_logger():
    """Get configured structured logger."""
    return logger
