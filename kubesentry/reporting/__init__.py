"""Reporting backends for kubesentry.

Exports:
    ReportChannel         -- Abstract base for all channel implementations.
    ReportDispatcher      -- Sends a report to all channels without blocking
                             the watch callbacks.
    SentryReportChannel   -- Sentry SDK channel.
    WebhookReportChannel  -- Generic JSON POST channel.
    build_report_dispatcher -- Factory used by the application bootstrap.
"""

from __future__ import annotations

from kubesentry.models.config import SentryConfig
from kubesentry.observability.logging import get_logger
from kubesentry.reporting.manager import ReportChannel, ReportDispatcher
from kubesentry.reporting.sentry import SentryReportChannel, flush_sentry, init_sentry
from kubesentry.reporting.webhook import WebhookReportChannel

_log = get_logger("reporting")

__all__ = [
    "ReportChannel",
    "ReportDispatcher",
    "SentryReportChannel",
    "WebhookReportChannel",
    "build_report_dispatcher",
    "flush_sentry",
    "init_sentry",
]


def build_report_dispatcher(config: SentryConfig) -> ReportDispatcher:
    """Build a dispatcher with the Sentry channel and, if configured, a webhook.

    Without a DSN the Sentry client sends nothing, so the channel is left out
    and reports are dropped instead of being counted as failed deliveries.
    """
    channels: list[ReportChannel] = []
    if config.dsn:
        channels.append(SentryReportChannel())

    if config.webhook_url:
        try:
            channels.append(WebhookReportChannel(url=config.webhook_url))
            _log.info("webhook_channel_enabled")
        except ValueError as exc:
            _log.warning("webhook_channel_disabled", reason=str(exc))

    return ReportDispatcher(channels=channels)
