"""List-then-watch informer over kubernetes-asyncio.

A ResourceWatcher keeps a local store of the objects it has seen so it can
hand ``on_update`` both the old and the new state. Every resync period the
watch is allowed to expire and a full relist reconciles the store, which
also recovers from expired resource versions (410 Gone).
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Awaitable, Callable, Mapping
from typing import Any

import sentry_sdk
from kubernetes_asyncio import watch  # type: ignore[import-untyped]

from kubesentry.observability.logging import get_logger
from kubesentry.observability.metrics import watch_reconnects_total

_log = get_logger("collector.watcher")

_INITIAL_BACKOFF = 1.0
_MAX_BACKOFF = 30.0

RawObject = Mapping[str, Any]
Callback = Callable[..., Awaitable[Any] | Any]


class WatchError(Exception):
    """The API server sent an ERROR watch event."""


def object_key(obj: RawObject) -> str:
    metadata = obj.get("metadata") or {}
    uid = metadata.get("uid")
    if uid:
        return str(uid)
    return f"{metadata.get('namespace', '')}/{metadata.get('name', '')}"


def _resource_version(obj: RawObject) -> str:
    return str((obj.get("metadata") or {}).get("resourceVersion") or "")


class ResourceWatcher:
    """Informer for one resource type in one namespace (or all namespaces).

    Args:
        name:           Label for logs and metrics, e.g. ``events/default``.
        list_fn:        kubernetes-asyncio list coroutine function.
        serialize:      Turns API models into plain camelCase dicts.
        on_add:         Called with the new object.
        on_update:      Called with ``(old, new)``.
        on_delete:      Called with the last known object.
        resync_seconds: Watch timeout; a full relist follows each expiry.
        list_kwargs:    Extra arguments for *list_fn* (e.g. ``namespace``).
    """

    def __init__(
        self,
        name: str,
        list_fn: Callable[..., Awaitable[Any]],
        serialize: Callable[[Any], RawObject],
        on_add: Callback | None = None,
        on_update: Callback | None = None,
        on_delete: Callback | None = None,
        resync_seconds: int = 30,
        list_kwargs: dict[str, Any] | None = None,
    ) -> None:
        self.name = name
        self._list_fn = list_fn
        self._serialize = serialize
        self._on_add = on_add
        self._on_update = on_update
        self._on_delete = on_delete
        self._resync_seconds = resync_seconds
        self._list_kwargs = list_kwargs or {}
        self._store: dict[str, RawObject] = {}
        self.has_synced = asyncio.Event()

    def __len__(self) -> int:
        return len(self._store)

    async def run(self, stop: asyncio.Event) -> None:
        """Relist and watch until *stop* is set, reconnecting with backoff."""
        backoff = _INITIAL_BACKOFF
        while not stop.is_set():
            try:
                resource_version = await self.relist()
                await self._watch(resource_version, stop)
                backoff = _INITIAL_BACKOFF
            except asyncio.CancelledError:
                raise
            except Exception as exc:  # noqa: BLE001
                watch_reconnects_total.labels(resource=self.name).inc()
                _log.warning("watch_failed", watcher=self.name, error=str(exc), retry_in=backoff)
                try:
                    await asyncio.wait_for(stop.wait(), timeout=backoff)
                except TimeoutError:
                    pass
                backoff = min(backoff * 2, _MAX_BACKOFF)

    async def relist(self) -> str:
        """List every object, reconcile the store and fire callbacks.

        Objects whose resourceVersion is unchanged since the last list do not
        fire ``on_update``. Returns the list's resource version to resume watching from.
        """
        response = await self._list_fn(**self._list_kwargs)
        items = [self._serialize(item) for item in response.items or []]
        previous = self._store
        current: dict[str, RawObject] = {}
        for item in items:
            key = object_key(item)
            current[key] = item
            old = previous.get(key)
            if old is None:
                await self._call(self._on_add, item)
            elif _resource_version(old) != _resource_version(item) or not _resource_version(item):
                await self._call(self._on_update, old, item)
        self._store = current
        for key, gone in previous.items():
            if key not in current:
                await self._call(self._on_delete, gone)

        if not self.has_synced.is_set():
            _log.info("watcher_synced", watcher=self.name, objects=len(current))
            self.has_synced.set()
        metadata = getattr(response, "metadata", None)
        return str(getattr(metadata, "resource_version", "") or "")

    async def _watch(self, resource_version: str, stop: asyncio.Event) -> None:
        kwargs = dict(self._list_kwargs, timeout_seconds=self._resync_seconds)
        if resource_version:
            kwargs["resource_version"] = resource_version
        async with watch.Watch().stream(self._list_fn, **kwargs) as stream:
            async for event in stream:
                if stop.is_set():
                    return
                await self.apply(event["type"], event.get("raw_object") or self._serialize(event["object"]))

    async def apply(self, event_type: str, obj: RawObject) -> None:
        """Apply one watch event to the store and fire the matching callback."""
        if event_type == "ERROR":
            raise WatchError(str(obj.get("message") or obj))
        if event_type == "BOOKMARK":
            return
        key = object_key(obj)
        if event_type == "DELETED":
            gone = self._store.pop(key, obj)
            await self._call(self._on_delete, gone)
            return
        old = self._store.get(key)
        self._store[key] = obj
        if old is None:
            await self._call(self._on_add, obj)
        else:
            await self._call(self._on_update, old, obj)

    async def _call(self, callback: Callback | None, *args: Any) -> None:
        if callback is None:
            return
        try:
            result = callback(*args)
            if inspect.isawaitable(result):
                await result
        except Exception as exc:  # noqa: BLE001
            _log.error("watch_callback_failed", watcher=self.name, error=str(exc))
            sentry_sdk.capture_exception(exc)
