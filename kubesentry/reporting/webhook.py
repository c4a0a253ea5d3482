"""Generic JSON webhook reporting channel.

Posts the same payload that is handed to Sentry, so any error-tracking
backend with an HTTP ingest endpoint can receive kubesentry reports.
"""

from __future__ import annotations

import httpx

from kubesentry.models.reports import Report
from kubesentry.observability.logging import get_logger
from kubesentry.reporting.manager import ReportChannel

_log = get_logger("reporting.webhook")


class WebhookReportChannel(ReportChannel):
    """Delivers reports by POSTing a JSON payload to a configurable URL.

    Args:
        url:     Full endpoint URL.
        headers: Optional extra headers (e.g. Authorization).
        timeout: HTTP request timeout in seconds.
    """

    def __init__(
        self,
        url: str,
        headers: dict[str, str] | None = None,
        timeout: float = 10.0,
    ) -> None:
        if not url:
            raise ValueError("Webhook url must not be empty")
        self._url = url
        self._headers = headers or {}
        self._timeout = timeout

    @property
    def channel_name(self) -> str:
        return "webhook"

    async def send(self, report: Report) -> bool:
        """POST *report*; True on a 2xx response."""
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.post(
                    self._url,
                    json=report.to_sentry_event(),
                    headers={"Content-Type": "application/json", **self._headers},
                )
        except httpx.TimeoutException:
            _log.warning("webhook_request_timeout", url=self._url)
            return False
        except httpx.HTTPError as exc:
            _log.warning("webhook_http_error", error=str(exc))
            return False
        if response.is_success:
            return True
        _log.warning(
            "webhook_non_2xx_response",
            status_code=response.status_code,
            body=response.text[:200],
        )
        return False
