"""Structured logging configuration using structlog.

Logs go to stderr as JSON so they can be collected alongside the reports
that end up in Sentry. The ``console`` format switches to the
human-readable renderer for local runs against a kubeconfig. When a cluster
name is configured every line carries it, so logs from several kubesentry
deployments can share one sink.
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog

LOG_FORMATS = ("json", "console")


def cluster_processor(cluster: str) -> structlog.typing.Processor:
    """Return a processor that stamps *cluster* on every event dict."""

    def add_cluster(_logger: Any, _method: str, event_dict: structlog.typing.EventDict) -> structlog.typing.EventDict:
        event_dict.setdefault("cluster", cluster)
        return event_dict

    return add_cluster


def build_processors(fmt: str = "json", cluster: str = "") -> list[structlog.typing.Processor]:
    """Processor chain for *fmt*; raises ValueError for an unknown format."""
    if fmt not in LOG_FORMATS:
        raise ValueError(f"Invalid log format: {fmt}. Must be one of {LOG_FORMATS}")

    processors: list[structlog.typing.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso", utc=True, key="ts"),
    ]
    if cluster:
        processors.append(cluster_processor(cluster))
    if fmt == "console":
        processors.append(structlog.dev.ConsoleRenderer())
    else:
        processors.append(structlog.processors.JSONRenderer())
    return processors


def setup_logging(level: str = "info", fmt: str = "json", cluster: str = "") -> None:
    """Configure structlog for the given level, output format and cluster."""
    log_level = getattr(logging, level.upper(), logging.INFO)
    structlog.configure(
        processors=build_processors(fmt, cluster),
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


def get_logger(component: str) -> structlog.stdlib.BoundLogger:
    """Get a logger bound with a component name."""
    return structlog.get_logger(component=component)  # type: ignore[return-value]
