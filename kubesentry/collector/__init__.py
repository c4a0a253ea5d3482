"""Collector package for kubesentry.

Kubernetes watch-stream informers that feed the notification pipeline.

Submodules
----------
watcher -- ResourceWatcher: list-then-watch, periodic resync, reconnect back-off.
"""

from __future__ import annotations

from typing import Any

from kubesentry.collector.watcher import ResourceWatcher
from kubesentry.pipeline import EventPipeline

__all__ = [
    "ResourceWatcher",
    "event_watcher",
    "namespace_watcher",
    "pod_watcher",
]


def _serializer(core_api: Any) -> Any:
    return core_api.api_client.sanitize_for_serialization


def namespace_watcher(core_api: Any, pipeline: EventPipeline, resync_seconds: int = 60) -> ResourceWatcher:
    return ResourceWatcher(
        "namespaces",
        core_api.list_namespace,
        _serializer(core_api),
        on_add=pipeline.handle_namespace_add,
        on_update=pipeline.handle_namespace_update,
        on_delete=pipeline.handle_namespace_delete,
        resync_seconds=resync_seconds,
    )


def event_watcher(
    core_api: Any,
    pipeline: EventPipeline,
    namespace: str = "",
    resync_seconds: int = 30,
) -> ResourceWatcher:
    """Watch Events in *namespace*, or in all namespaces when it is empty."""
    if namespace:
        list_fn, kwargs = core_api.list_namespaced_event, {"namespace": namespace}
    else:
        list_fn, kwargs = core_api.list_event_for_all_namespaces, {}
    return ResourceWatcher(
        f"events/{namespace or '*'}",
        list_fn,
        _serializer(core_api),
        on_add=pipeline.handle_event_add,
        resync_seconds=resync_seconds,
        list_kwargs=kwargs,
    )


def pod_watcher(
    core_api: Any,
    pipeline: EventPipeline,
    namespace: str = "",
    resync_seconds: int = 30,
) -> ResourceWatcher:
    """Watch Pods in *namespace*, or in all namespaces when it is empty."""
    if namespace:
        list_fn, kwargs = core_api.list_namespaced_pod, {"namespace": namespace}
    else:
        list_fn, kwargs = core_api.list_pod_for_all_namespaces, {}
    return ResourceWatcher(
        f"pods/{namespace or '*'}",
        list_fn,
        _serializer(core_api),
        on_update=pipeline.handle_pod_update,
        resync_seconds=resync_seconds,
        list_kwargs=kwargs,
    )
