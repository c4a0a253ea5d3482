"""Sentry reporting channel.

The SDK owns transport, batching and retries; ``capture_event`` only
enqueues, so ``send`` never blocks the event loop.
"""

from __future__ import annotations

import sentry_sdk

from kubesentry.models.config import SentryConfig
from kubesentry.models.reports import Report
from kubesentry.observability.logging import get_logger
from kubesentry.reporting.manager import ReportChannel

_log = get_logger("reporting.sentry")


def init_sentry(config: SentryConfig) -> None:
    """Initialise the global Sentry client.

    Without a DSN the SDK is still initialised but sends nothing.
    """
    if not config.dsn:
        _log.warning("sentry_dsn_not_set", detail="reports will not be delivered")
    sentry_sdk.init(
        dsn=config.dsn or None,
        environment=config.environment or None,
        default_integrations=False,
    )


class SentryReportChannel(ReportChannel):
    """Delivers reports through the process-wide Sentry client."""

    @property
    def channel_name(self) -> str:
        return "sentry"

    async def send(self, report: Report) -> bool:
        try:
            event_id = sentry_sdk.capture_event(report.to_sentry_event())
        except Exception as exc:  # noqa: BLE001
            _log.warning("sentry_capture_failed", error=str(exc))
            return False
        return event_id is not None


def flush_sentry(timeout: float = 1.0) -> None:
    """Give queued events up to *timeout* seconds to reach Sentry."""
    sentry_sdk.flush(timeout=timeout)
