"""
Structured logging utility for the Recipe Acquisition Pipeline.
Provides structured logs with trace IDs so one import can be followed
through cache, scrapers, AI fallback and image resolution.
"""
import uuid
import logging
import structlog
from contextvars import ContextVar
from typing import Any, List, Optional

from recipe_acquisition.config import config

# Trace ID of the request being served
trace_id_var: ContextVar[str] = ContextVar("trace_id", default="")


def get_trace_id() -> str:
    """Current trace ID, starting a new trace when none is bound."""
    return trace_id_var.get() or set_trace_id()


def set_trace_id(trace_id: Optional[str] = None) -> str:
    """Start a new trace for the current context, dropping fields bound for the previous one."""
    new_trace_id = trace_id or str(uuid.uuid4())[:8]
    trace_id_var.set(new_trace_id)
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(trace_id=new_trace_id)
    return new_trace_id


def bind_request_context(**fields: Any):
    """Attach request fields (url, user_id, ...) to every log line of this trace."""
    structlog.contextvars.bind_contextvars(**{key: value for key, value in fields.items() if value is not None})


def configure_logging():
    """Configure structlog with appropriate processors."""
    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]

    if config.LOG_FORMAT == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, config.LOG_LEVEL.upper())
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a logger instance with the given name."""
    return structlog.get_logger(name)


class LayerLogger:
    """
    Component logger for the acquisition pipeline.
    Keeps event names and fields consistent across layers and adapters.
    """

    def __init__(self, layer_name: str):
        self.layer_name = layer_name
        self.logger = get_logger(layer_name)

    def log_decision(
        self,
        decision: str,
        reason: str,
        url: Optional[str] = None,
        **extra
    ):
        """Log a decision made by this layer."""
        self.logger.info(
            "decision_made",
            layer=self.layer_name,
            decision=decision,
            reason=reason,
            url=url,
            **extra
        )

    def log_action(
        self,
        action: str,
        status: str = "started",
        **extra
    ):
        """Log an action being performed."""
        self.logger.info(
            f"action_{status}",
            layer=self.layer_name,
            action=action,
            **extra
        )

    def log_fallback(
        self,
        from_source: str,
        to_source: str,
        reason: str,
        **extra
    ):
        """Log a fallback from one strategy to another."""
        self.logger.warning(
            "fallback_triggered",
            layer=self.layer_name,
            from_source=from_source,
            to_source=to_source,
            reason=reason,
            **extra
        )

    def log_error(
        self,
        error: str,
        error_type: str = "unknown",
        **extra
    ):
        """Log an error with full context."""
        self.logger.error(
            "error_occurred",
            layer=self.layer_name,
            error=error,
            error_type=error_type,
            **extra
        )

    def log_fetch_attempt(
        self,
        url: str,
        attempt: int,
        status_code: Optional[int],
        result: str,
        **extra
    ):
        """Log one page fetch or image probe attempt."""
        self.logger.info(
            "fetch_attempt",
            layer=self.layer_name,
            url=url,
            attempt=attempt,
            status_code=status_code,
            result=result,
            **extra
        )

    def log_extraction(
        self,
        method: str,
        fields_present: List[str],
        fields_missing: List[str],
        confidence: float,
        **extra
    ):
        """Log what an extraction strategy recovered."""
        self.logger.info(
            "recipe_extracted",
            layer=self.layer_name,
            method=method,
            fields_present=fields_present,
            fields_missing=fields_missing,
            confidence_score=confidence,
            **extra
        )


# Initialize logging on module import
configure_logging()
