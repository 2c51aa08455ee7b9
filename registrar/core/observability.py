"""
Observability Infrastructure

Structured logging with correlation tracking and Prometheus metrics for
seat allocation and the schedule-change workflow.
"""

import contextvars
import logging
import sys
import uuid
from typing import Any

import structlog
from prometheus_client import Counter, Gauge, Histogram

from .config import Settings, settings as default_settings

# Context variables for correlation tracking
correlation_id_var: contextvars.ContextVar[str] = contextvars.ContextVar(
    "correlation_id", default=""
)

# Prometheus metrics
SEAT_RESERVATIONS = Counter(
    "registrar_seat_reservations_total",
    "Seat reservation attempts by outcome",
    ["outcome"],
)

WAITLIST_PROMOTIONS = Counter(
    "registrar_waitlist_promotions_total",
    "Waitlisted requests promoted into a seat",
)

ENROLLMENT_DECISIONS = Counter(
    "registrar_enrollment_decisions_total",
    "Enrollment request status transitions",
    ["status"],
)

SCHEDULE_CHANGE_DECISIONS = Counter(
    "registrar_schedule_change_decisions_total",
    "Schedule change request status transitions",
    ["request_type", "status"],
)

SLA_BREACHES = Counter(
    "registrar_schedule_change_sla_breaches_total",
    "Schedule change requests flagged overdue",
)

ESCALATIONS = Counter(
    "registrar_schedule_change_escalations_total",
    "Overdue schedule change requests forwarded to an escalation target",
    ["target"],
)

ALLOCATION_DURATION = Histogram(
    "registrar_allocation_duration_seconds",
    "Wall time of one enrollment allocation batch",
)

PENDING_CHANGE_REQUESTS = Gauge(
    "registrar_pending_schedule_change_requests",
    "Schedule change requests awaiting a decision",
)


class CorrelationIdProcessor:
    """Structlog processor to add correlation ID to all log entries."""

    def __call__(
        self, logger: Any, name: str, event_dict: dict[str, Any]
    ) -> dict[str, Any]:
        correlation_id = correlation_id_var.get("")
        if correlation_id:
            event_dict["correlation_id"] = correlation_id
        return event_dict


def setup_structured_logging(config: Settings | None = None) -> None:
    """Configure structured logging with JSON or console output."""
    config = config or default_settings
    log_level = getattr(logging, config.LOG_LEVEL.upper(), logging.INFO)

    processors = [
        structlog.contextvars.merge_contextvars,
        CorrelationIdProcessor(),
        structlog.processors.TimeStamper(fmt="ISO"),
        structlog.processors.add_log_level,
        structlog.stdlib.add_logger_name,
    ]

    if config.LOG_FORMAT == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(
            structlog.dev.ConsoleRenderer(colors=config.ENVIRONMENT == "local")
        )

    # add_logger_name needs a stdlib logger underneath
    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=log_level,
    )


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)


def set_correlation_id(correlation_id: str | None = None) -> str:
    """Set correlation ID for batch or request tracking."""
    if correlation_id is None:
        correlation_id = str(uuid.uuid4())

    correlation_id_var.set(correlation_id)
    return correlation_id


def get_correlation_id() -> str:
    return correlation_id_var.get("")
