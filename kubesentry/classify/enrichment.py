"""Per-kind enrichment handlers.

A handler supplies the object-specific part of an event's fingerprint and
extra tags. Handlers are looked up by the involved object's
``(apiVersion, kind)``; anything without a registered handler, or whose
handler cannot be built, gets :class:`DefaultHandler`.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Mapping
from typing import Any, Protocol

import sentry_sdk

from kubesentry.classify.fingerprint import Fingerprint, fingerprint_from_meta, involved_object_fingerprint
from kubesentry.models.notifications import Notification, PodState
from kubesentry.observability.logging import get_logger
from kubesentry.observability.metrics import enrichment_failures_total

_log = get_logger("classify.enrichment")

DEFAULT_FETCH_TIMEOUT = 5.0


class EnrichmentHandler(Protocol):
    """Capability interface every handler satisfies."""

    def fingerprint(self) -> Fingerprint: ...

    def tags(self) -> dict[str, str]: ...


HandlerFactory = Callable[[Notification], Awaitable[EnrichmentHandler | None]]


class DefaultHandler:
    """Uses only what the event itself says about the involved object."""

    def __init__(self, notification: Notification) -> None:
        self.notification = notification

    def fingerprint(self) -> Fingerprint:
        return involved_object_fingerprint(self.notification.involved_object)

    def tags(self) -> dict[str, str]:
        return dict(self.notification.labels)


class PodHandler:
    """Groups pod events by the pod's controller and tags the scheduling node."""

    def __init__(self, pod: PodState) -> None:
        self.pod = pod

    def fingerprint(self) -> Fingerprint:
        return fingerprint_from_meta(self.pod.meta)

    def tags(self) -> dict[str, str]:
        tags = dict(self.pod.meta.labels)
        tags["nodeName"] = self.pod.node_name
        return tags


class HandlerRegistry:
    """Lookup table from ``(apiVersion, kind)`` to a handler factory."""

    def __init__(self) -> None:
        self._factories: dict[tuple[str, str], HandlerFactory] = {}

    def register(self, api_version: str, kind: str, factory: HandlerFactory) -> None:
        self._factories[(api_version, kind)] = factory

    def lookup(self, api_version: str, kind: str) -> HandlerFactory | None:
        return self._factories.get((api_version, kind))

    async def resolve(self, notification: Notification) -> EnrichmentHandler:
        """Return the specialised handler for *notification*, or the default one."""
        ref = notification.involved_object
        factory = self.lookup(ref.api_version, ref.kind)
        if factory is not None:
            try:
                handler = await factory(notification)
            except Exception as exc:  # noqa: BLE001
                _log.warning(
                    "enrichment_handler_failed",
                    kind=ref.kind,
                    namespace=ref.namespace,
                    name=ref.name,
                    error=str(exc),
                )
                enrichment_failures_total.labels(kind=ref.kind).inc()
                handler = None
            if handler is not None:
                return handler
        return DefaultHandler(notification)


def _to_dict(core_api: Any, obj: Any) -> Mapping[str, Any]:
    if isinstance(obj, Mapping):
        return obj
    return core_api.api_client.sanitize_for_serialization(obj)  # type: ignore[no-any-return]


def pod_handler_factory(core_api: Any, timeout: float = DEFAULT_FETCH_TIMEOUT) -> HandlerFactory:
    """Build a factory that fetches the event's Pod once, without retrying.

    A failed fetch (deleted pod, API error, timeout) is captured to Sentry
    and yields None so the registry falls back to the default handler.
    """

    async def _factory(notification: Notification) -> EnrichmentHandler | None:
        ref = notification.involved_object
        namespace = ref.namespace or notification.namespace
        try:
            pod = await asyncio.wait_for(
                core_api.read_namespaced_pod(name=ref.name, namespace=namespace),
                timeout=timeout,
            )
        except Exception as exc:  # noqa: BLE001
            _log.info("pod_fetch_failed", namespace=namespace, name=ref.name, error=str(exc))
            enrichment_failures_total.labels(kind="Pod").inc()
            sentry_sdk.capture_exception(exc)
            return None
        return PodHandler(PodState.from_pod(_to_dict(core_api, pod)))

    return _factory


def build_default_registry(core_api: Any, timeout: float = DEFAULT_FETCH_TIMEOUT) -> HandlerRegistry:
    registry = HandlerRegistry()
    registry.register("v1", "Pod", pod_handler_factory(core_api, timeout))
    return registry
