"""
Structured logging for the Flag Gateway.

Events are rendered as one JSON object per line. Request correlation
(``request_id``, rate limit ``client_key``) is carried in structlog's
contextvars, and the active OpenTelemetry span contributes trace ids.
Loggers are named ``<service>.<component>``, e.g. ``flag_gateway.cache``.
"""

import logging
import sys
import uuid
from typing import Any, Callable, Dict, Optional

import structlog
from opentelemetry import trace

EventDict = Dict[str, Any]


def configure_logging(service_name: str, log_level: str = "info") -> None:
    """Configure structlog and the stdlib root logger for a service."""
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            _service_fields(service_name),
            add_trace_context,
            structlog.processors.JSONRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper(), logging.INFO),
    )


def _service_fields(service_name: str) -> Callable[[Any, str, EventDict], EventDict]:
    def add_service_fields(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
        event_dict.setdefault("service", service_name)
        _, _, component = event_dict.get("logger", "").partition(".")
        if component:
            event_dict.setdefault("component", component)
        return event_dict
    return add_service_fields


def add_trace_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Attach trace and span ids when a recording span is active."""
    span_context = trace.get_current_span().get_span_context()
    if span_context.is_valid:
        event_dict["trace_id"] = f"{span_context.trace_id:032x}"
        event_dict["span_id"] = f"{span_context.span_id:016x}"
    return event_dict


def set_request_id(request_id: Optional[str] = None) -> str:
    """Bind the request id (generated when absent) to the logging context."""
    request_id = request_id or str(uuid.uuid4())
    structlog.contextvars.bind_contextvars(request_id=request_id)
    return request_id


def set_client_context(client_key: Optional[str] = None) -> None:
    """Bind the rate limit client key to the logging context."""
    if client_key:
        structlog.contextvars.bind_contextvars(client_key=client_key)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
