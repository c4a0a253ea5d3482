"""Report dispatcher for kubesentry.

ReportChannel    -- ABC every reporting backend must implement.
ReportDispatcher -- Fans out reports to all registered channels; failures in
                    one channel never block others or the watch callbacks.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod

from kubesentry.models.reports import Report
from kubesentry.observability.logging import get_logger
from kubesentry.observability.metrics import reports_total

_log = get_logger("reporting.manager")


class ReportChannel(ABC):
    """Abstract base class for all reporting channels.

    ``send`` should not raise; return ``False`` instead.
    """

    @property
    @abstractmethod
    def channel_name(self) -> str:
        """Identifier used in metrics and logs."""

    @abstractmethod
    async def send(self, report: Report) -> bool:
        """Deliver *report*; True if the backend accepted it."""


class ReportDispatcher:
    """Fire-and-forget fan-out of reports.

    ``dispatch`` schedules delivery as a background task and returns at
    once. Pending deliveries are tracked so ``stop`` can wait for them.
    """

    def __init__(self, channels: list[ReportChannel]) -> None:
        self._channels = channels
        self._pending: set[asyncio.Task[None]] = set()

    @property
    def pending(self) -> int:
        return len(self._pending)

    def dispatch(self, report: Report) -> None:
        if not self._channels:
            _log.debug("report_dropped_no_channels", message=report.message)
            return
        task = asyncio.ensure_future(self._fan_out(report))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _fan_out(self, report: Report) -> None:
        await asyncio.gather(*(self._send_one(channel, report) for channel in self._channels))

    async def _send_one(self, channel: ReportChannel, report: Report) -> None:
        try:
            success = await channel.send(report)
        except Exception as exc:  # noqa: BLE001
            _log.error(
                "report_channel_unexpected_error",
                channel=channel.channel_name,
                error=str(exc),
            )
            success = False

        reports_total.labels(channel=channel.channel_name, success="true" if success else "false").inc()

        if success:
            _log.info(
                "report_sent",
                channel=channel.channel_name,
                level=report.level.value,
                message=report.message,
            )
        else:
            _log.warning("report_failed", channel=channel.channel_name, message=report.message)

    async def stop(self, timeout: float = 5.0) -> None:
        """Wait up to *timeout* seconds for in-flight deliveries."""
        if not self._pending:
            return
        done, not_done = await asyncio.wait(set(self._pending), timeout=timeout)
        if not_done:
            _log.warning("reports_not_flushed", pending=len(not_done))
