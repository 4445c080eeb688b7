"""
Structured logging for the team pulse API and workers.

JSON lines in deployed environments, a readable console renderer in local
development. Request-scoped values bound via structlog.contextvars (the
request id from RequestContextMiddleware) are merged into every entry.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.stdlib import LoggerFactory

NOISY_LOGGERS = ("httpx", "httpcore", "openai", "uvicorn.access")

_shared_processors = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_log_level,
    structlog.stdlib.add_logger_name,
    structlog.processors.TimeStamper(fmt="iso", utc=True),
    structlog.processors.format_exc_info,
]


def setup_logging(log_level: str = "INFO", json_logs: bool | None = None) -> None:
    """
    Configure structlog over stdlib logging.

    Args:
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL
        json_logs: force JSON (True) or console (False) output; by default
            JSON is used unless stdout is an interactive terminal
    """
    if json_logs is None:
        json_logs = not sys.stdout.isatty()

    renderer = (
        structlog.processors.JSONRenderer()
        if json_logs
        else structlog.dev.ConsoleRenderer(colors=False)
    )

    structlog.configure(
        processors=[*_shared_processors, renderer],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper(), logging.INFO),
    )

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def log_health_check(service: str, healthy: bool, latency_ms: float, error: str | None = None):
    """One line per dependency probe; failures at error level."""
    logger = get_logger("health")
    fields: dict[str, Any] = {"service": service, "healthy": healthy, "latency_ms": latency_ms}
    if error:
        fields["error"] = error

    if healthy:
        logger.info("Health check passed", **fields)
    else:
        logger.error("Health check failed", **fields)


def log_job_run(job: str, status: str, duration_ms: float, **fields: Any):
    """
    One summary line per background job run.

    status follows RunStatus values: "error" logs at error level, "partial"
    at warning, anything else at info.
    """
    logger = get_logger("jobs")
    fields = {"job": job, "status": status, "duration_ms": round(duration_ms, 2), **fields}

    if status == "error":
        logger.error("Background job failed", **fields)
    elif status == "partial":
        logger.warning("Background job partially completed", **fields)
    else:
        logger.info("Background job completed", **fields)
