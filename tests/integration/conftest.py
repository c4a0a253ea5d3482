"""Shared fixtures for kubesentry integration tests.

Provides raw API object factories (the camelCase dicts the watchers
deliver) and a fully wired EventPipeline whose reporting channel records
reports instead of sending them, so pipelines can be exercised without a
cluster or a Sentry DSN.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from datetime import UTC, datetime, timedelta
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from kubesentry.classify.enrichment import build_default_registry
from kubesentry.classify.recency import RecencyCache, TerminationTracker
from kubesentry.classify.skip import SkipRuleStore, build_rule_set
from kubesentry.models.reports import Report
from kubesentry.pipeline import EventPipeline
from kubesentry.reporting.manager import ReportChannel, ReportDispatcher

# ---------------------------------------------------------------------------
# Timestamp helpers
# ---------------------------------------------------------------------------

_NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=UTC)


def ts(offset_ms: int = 0) -> str:
    """RFC 3339 timestamp *offset_ms* milliseconds after the fixed test epoch."""
    return (_NOW + timedelta(milliseconds=offset_ms)).isoformat()


# ---------------------------------------------------------------------------
# Raw object factories
# ---------------------------------------------------------------------------


def make_event(
    reason: str = "BackOff",
    message: str = "Back-off restarting failed container",
    event_type: str = "Warning",
    kind: str = "Pod",
    api_version: str = "v1",
    name: str = "my-app-7b4f8c6d-x2kj",
    namespace: str = "default",
    component: str = "kubelet",
    count: int = 1,
    labels: dict[str, str] | None = None,
    **extra: Any,
) -> dict[str, Any]:
    """Create a raw v1.Event with sensible defaults."""
    event: dict[str, Any] = {
        "apiVersion": "v1",
        "kind": "Event",
        "metadata": {
            "name": f"{name}.17a2b3c4d5e6f7",
            "namespace": namespace,
            "uid": f"evt-{reason}-{name}",
            "creationTimestamp": ts(),
            "labels": labels or {},
        },
        "involvedObject": {
            "apiVersion": api_version,
            "kind": kind,
            "name": name,
            "namespace": namespace,
            "uid": f"uid-{name}",
            "fieldPath": "spec.containers{my-app}",
            "resourceVersion": "1003",
        },
        "reason": reason,
        "message": message,
        "type": event_type,
        "count": count,
        "source": {"component": component, "host": "node-1"},
    }
    event.update(extra)
    return event


def make_container_status(
    name: str = "app",
    exit_code: int = 1,
    reason: str = "Error",
    message: str = "",
    finished_ms: int = 100,
    restart_count: int = 0,
    image: str = "registry.local/my-app:v2",
) -> dict[str, Any]:
    return {
        "name": name,
        "image": image,
        "ready": False,
        "restartCount": restart_count,
        "state": {
            "terminated": {
                "exitCode": exit_code,
                "reason": reason,
                "message": message,
                "startedAt": ts(0),
                "finishedAt": ts(finished_ms),
            }
        },
    }


def make_pod(
    name: str = "my-app-7b4f8c6d-x2kj",
    namespace: str = "default",
    uid: str = "X",
    container_statuses: list[dict[str, Any]] | None = None,
    init_container_statuses: list[dict[str, Any]] | None = None,
    owner: str | None = "my-app-7b4f8c6d",
    labels: dict[str, str] | None = None,
    node_name: str = "node-1",
) -> dict[str, Any]:
    """Create a raw v1.Pod, owned by a ReplicaSet unless *owner* is None."""
    metadata: dict[str, Any] = {
        "name": name,
        "namespace": namespace,
        "uid": uid,
        "resourceVersion": "1003",
        "labels": labels if labels is not None else {"app": "my-app"},
    }
    if owner:
        metadata["ownerReferences"] = [
            {
                "apiVersion": "apps/v1",
                "kind": "ReplicaSet",
                "name": owner,
                "uid": f"uid-{owner}",
                "controller": True,
            }
        ]
    return {
        "metadata": metadata,
        "spec": {"nodeName": node_name, "restartPolicy": "Always", "containers": [{"name": "app"}]},
        "status": {
            "phase": "Running",
            "initContainerStatuses": init_container_statuses or [],
            "containerStatuses": container_statuses if container_statuses is not None else [],
        },
    }


def make_namespace(name: str = "default", annotations: dict[str, str] | None = None) -> dict[str, Any]:
    return {
        "metadata": {
            "name": name,
            "uid": f"ns-{name}",
            "annotations": annotations or {},
        },
        "status": {"phase": "Active"},
    }


# ---------------------------------------------------------------------------
# Pipeline fixtures
# ---------------------------------------------------------------------------


class RecordingChannel(ReportChannel):
    """Channel that keeps every report it is handed."""

    def __init__(self) -> None:
        self.reports: list[Report] = []

    @property
    def channel_name(self) -> str:
        return "recording"

    async def send(self, report: Report) -> bool:
        self.reports.append(report)
        return True


@pytest.fixture
def channel() -> RecordingChannel:
    return RecordingChannel()


@pytest.fixture
def core_api() -> MagicMock:
    """CoreV1Api stand-in whose pod reads return a ReplicaSet-owned pod."""
    api = MagicMock()
    api.read_namespaced_pod = AsyncMock(return_value=make_pod())
    return api


@pytest.fixture
async def pipeline(channel: RecordingChannel, core_api: MagicMock) -> AsyncIterator[EventPipeline]:
    pipeline = EventPipeline(
        rules=SkipRuleStore(build_rule_set(None, None)),
        tracker=TerminationTracker(RecencyCache(capacity=500)),
        registry=build_default_registry(core_api, timeout=1.0),
        dispatcher=ReportDispatcher(channels=[channel]),
        environment="",
        cluster="test-cluster",
    )
    yield pipeline
    await pipeline.dispatcher.stop()
