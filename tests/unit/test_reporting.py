"""Tests for the report dispatcher and its channels."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from kubesentry.models.config import SentryConfig
from kubesentry.models.reports import Report, ReportLevel
from kubesentry.reporting import (
    ReportChannel,
    ReportDispatcher,
    SentryReportChannel,
    WebhookReportChannel,
    build_report_dispatcher,
)
from kubesentry.reporting import sentry as sentry_channel


def _make_report(**overrides: object) -> Report:
    fields: dict[str, object] = {
        "message": "Pod/my-app-7b4f8c6d-x2kj: OOMKilled",
        "level": ReportLevel.ERROR,
        "environment": "default",
        "timestamp": datetime(2026, 3, 1, 12, tzinfo=UTC),
        "fingerprint": ("OOMKilled", "apps/v1", "ReplicaSet", "my-app-7b4f8c6d"),
        "tags": {"reason": "OOMKilled"},
        "extra": {"exit-code": "137"},
        "server_name": "node-1",
    }
    fields.update(overrides)
    return Report(**fields)  # type: ignore[arg-type]


class _Channel(ReportChannel):
    def __init__(self, name: str, result: bool = True, error: Exception | None = None) -> None:
        self._name = name
        self._result = result
        self._error = error
        self.received: list[Report] = []

    @property
    def channel_name(self) -> str:
        return self._name

    async def send(self, report: Report) -> bool:
        self.received.append(report)
        if self._error is not None:
            raise self._error
        return self._result


# ---------------------------------------------------------------------------
# Dispatcher
# ---------------------------------------------------------------------------


class TestReportDispatcher:
    async def test_fans_out_to_all_channels(self) -> None:
        first, second = _Channel("a"), _Channel("b")
        dispatcher = ReportDispatcher([first, second])
        report = _make_report()

        dispatcher.dispatch(report)
        await dispatcher.stop()

        assert first.received == [report]
        assert second.received == [report]
        assert dispatcher.pending == 0

    async def test_failing_channel_does_not_block_others(self) -> None:
        broken = _Channel("broken", error=RuntimeError("down"))
        rejecting = _Channel("rejecting", result=False)
        healthy = _Channel("healthy")
        dispatcher = ReportDispatcher([broken, rejecting, healthy])

        dispatcher.dispatch(_make_report())
        await dispatcher.stop()

        assert len(healthy.received) == 1

    async def test_no_channels_is_a_no_op(self) -> None:
        dispatcher = ReportDispatcher([])
        dispatcher.dispatch(_make_report())
        assert dispatcher.pending == 0
        await dispatcher.stop()

    async def test_stop_times_out_on_stuck_channel(self) -> None:
        class _Stuck(_Channel):
            async def send(self, report: Report) -> bool:
                await asyncio.sleep(10)
                return True

        dispatcher = ReportDispatcher([_Stuck("stuck")])
        dispatcher.dispatch(_make_report())
        await dispatcher.stop(timeout=0.01)
        assert dispatcher.pending == 1

        for task in list(dispatcher._pending):
            task.cancel()


class TestBuildReportDispatcher:
    def test_sentry_channel_with_dsn(self) -> None:
        dispatcher = build_report_dispatcher(SentryConfig(dsn="https://key@sentry.example/1"))
        assert [c.channel_name for c in dispatcher._channels] == ["sentry"]

    def test_webhook_added_when_configured(self) -> None:
        dispatcher = build_report_dispatcher(
            SentryConfig(dsn="https://key@sentry.example/1", webhook_url="http://hooks.local/ingest")
        )
        assert [c.channel_name for c in dispatcher._channels] == ["sentry", "webhook"]

    async def test_no_dsn_drops_reports_without_failures(self, monkeypatch: pytest.MonkeyPatch) -> None:
        capture = MagicMock(return_value=None)
        monkeypatch.setattr(sentry_channel.sentry_sdk, "capture_event", capture)
        dispatcher = build_report_dispatcher(SentryConfig(dsn=""))

        dispatcher.dispatch(_make_report())
        await dispatcher.stop()

        assert dispatcher._channels == []
        assert dispatcher.pending == 0
        capture.assert_not_called()

    def test_no_dsn_still_sends_to_webhook(self) -> None:
        dispatcher = build_report_dispatcher(SentryConfig(dsn="", webhook_url="http://hooks.local/ingest"))
        assert [c.channel_name for c in dispatcher._channels] == ["webhook"]


# ---------------------------------------------------------------------------
# Sentry channel
# ---------------------------------------------------------------------------


class TestSentryReportChannel:
    async def test_captures_event_payload(self, monkeypatch: pytest.MonkeyPatch) -> None:
        capture = MagicMock(return_value="abc123")
        monkeypatch.setattr(sentry_channel.sentry_sdk, "capture_event", capture)

        assert await SentryReportChannel().send(_make_report()) is True

        [payload] = capture.call_args.args
        assert payload["level"] == "error"
        assert payload["fingerprint"] == ["OOMKilled", "apps/v1", "ReplicaSet", "my-app-7b4f8c6d"]
        assert payload["server_name"] == "node-1"

    async def test_dropped_event_is_failure(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(sentry_channel.sentry_sdk, "capture_event", MagicMock(return_value=None))
        assert await SentryReportChannel().send(_make_report()) is False

    async def test_sdk_error_is_failure(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(
            sentry_channel.sentry_sdk, "capture_event", MagicMock(side_effect=RuntimeError("transport"))
        )
        assert await SentryReportChannel().send(_make_report()) is False

    def test_init_without_dsn(self, monkeypatch: pytest.MonkeyPatch) -> None:
        init = MagicMock()
        monkeypatch.setattr(sentry_channel.sentry_sdk, "init", init)

        sentry_channel.init_sentry(SentryConfig(dsn="", environment="staging"))

        init.assert_called_once_with(dsn=None, environment="staging", default_integrations=False)


# ---------------------------------------------------------------------------
# Webhook channel
# ---------------------------------------------------------------------------


class TestWebhookReportChannel:
    def test_empty_url_rejected(self) -> None:
        with pytest.raises(ValueError):
            WebhookReportChannel(url="")

    async def test_success_on_2xx(self) -> None:
        channel = WebhookReportChannel(url="http://hooks.local/ingest", headers={"Authorization": "Bearer t"})
        response = httpx.Response(202, request=httpx.Request("POST", "http://hooks.local/ingest"))

        with patch.object(httpx.AsyncClient, "post", new_callable=AsyncMock, return_value=response) as post:
            assert await channel.send(_make_report()) is True

        assert post.call_args.kwargs["json"]["message"] == "Pod/my-app-7b4f8c6d-x2kj: OOMKilled"
        assert post.call_args.kwargs["headers"]["Authorization"] == "Bearer t"

    async def test_non_2xx_is_failure(self) -> None:
        channel = WebhookReportChannel(url="http://hooks.local/ingest")
        response = httpx.Response(500, text="oops", request=httpx.Request("POST", "http://hooks.local/ingest"))

        with patch.object(httpx.AsyncClient, "post", new_callable=AsyncMock, return_value=response):
            assert await channel.send(_make_report()) is False

    async def test_connection_error_is_failure(self) -> None:
        channel = WebhookReportChannel(url="http://hooks.local/ingest")

        with patch.object(
            httpx.AsyncClient,
            "post",
            new_callable=AsyncMock,
            side_effect=httpx.ConnectError("Connection refused"),
        ):
            assert await channel.send(_make_report()) is False

    async def test_timeout_is_failure(self) -> None:
        channel = WebhookReportChannel(url="http://hooks.local/ingest")

        with patch.object(
            httpx.AsyncClient,
            "post",
            new_callable=AsyncMock,
            side_effect=httpx.ReadTimeout("read timed out"),
        ):
            assert await channel.send(_make_report()) is False
