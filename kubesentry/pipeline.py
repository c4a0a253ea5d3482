"""Notification pipeline: watch callbacks in, reports out.

Wires the classification core together. Each watch callback receives the
raw API object as a ``dict``:

    Namespace add/update/delete -> maintain per-namespace skip rules
    Event add                   -> skip rules -> enrichment -> event report
    Pod update                  -> termination dedup -> termination report

Nothing here raises into the watcher: unexpected payloads are reported to
Sentry and dropped.
"""

from __future__ import annotations

import threading
from collections.abc import Mapping
from typing import Any

import sentry_sdk

from kubesentry.classify.assembler import assemble_event_report, assemble_termination_report
from kubesentry.classify.enrichment import HandlerRegistry
from kubesentry.classify.recency import TerminationTracker
from kubesentry.classify.skip import SkipRuleStore, rule_set_from_annotations
from kubesentry.models.notifications import Notification, PodState
from kubesentry.models.reports import Report
from kubesentry.observability.logging import get_logger
from kubesentry.observability.metrics import notifications_total
from kubesentry.reporting.manager import ReportDispatcher

_log = get_logger("pipeline")

IGNORE_POD_UPDATES_ANNOTATION = "sentry/ignore-pod-updates"


def _valid_object(obj: object, source: str) -> Mapping[str, Any] | None:
    """Return *obj* if it looks like an API object, else report and drop it."""
    if isinstance(obj, Mapping) and isinstance(obj.get("metadata"), Mapping):
        return obj
    _log.warning("unexpected_payload", source=source, type=type(obj).__name__)
    sentry_sdk.capture_message(f"Unexpected {source} type")
    notifications_total.labels(source=source, outcome="invalid").inc()
    return None


class EventPipeline:
    """Classifies notifications and dispatches the resulting reports.

    Args:
        rules:       Global and per-namespace skip rules.
        tracker:     Container termination deduplication.
        registry:    Enrichment handlers for events.
        dispatcher:  Where assembled reports go.
        environment: Report environment; empty means use the namespace.
        cluster:     Value of the ``cluster`` tag, if any.
    """

    def __init__(
        self,
        rules: SkipRuleStore,
        tracker: TerminationTracker,
        registry: HandlerRegistry,
        dispatcher: ReportDispatcher,
        environment: str = "",
        cluster: str = "",
    ) -> None:
        self.rules = rules
        self.tracker = tracker
        self.registry = registry
        self.dispatcher = dispatcher
        self.environment = environment
        self.cluster = cluster
        self._ignore_pod_updates: set[str] = set()
        self._ns_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Namespaces
    # ------------------------------------------------------------------

    def handle_namespace_add(self, obj: object) -> None:
        self.handle_namespace_update(None, obj)

    def handle_namespace_update(self, _old: object, new: object) -> None:
        namespace = _valid_object(new, "namespace")
        if namespace is None:
            return
        metadata = namespace["metadata"]
        name = str(metadata.get("name") or "")
        annotations = metadata.get("annotations") or {}

        rule_set = rule_set_from_annotations(annotations)
        if rule_set is None:
            self.rules.delete(name)
        else:
            self.rules.upsert(name, rule_set)

        ignore = str(annotations.get(IGNORE_POD_UPDATES_ANNOTATION, "")).strip().lower() == "true"
        with self._ns_lock:
            if ignore:
                self._ignore_pod_updates.add(name)
            else:
                self._ignore_pod_updates.discard(name)

    def handle_namespace_delete(self, obj: object) -> None:
        namespace = _valid_object(obj, "namespace")
        if namespace is None:
            return
        name = str(namespace["metadata"].get("name") or "")
        self.rules.delete(name)
        with self._ns_lock:
            self._ignore_pod_updates.discard(name)

    def ignores_pod_updates(self, namespace: str) -> bool:
        with self._ns_lock:
            return namespace in self._ignore_pod_updates

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    async def handle_event_add(self, obj: object) -> Report | None:
        """Turn a new Event into a report unless a skip rule matches."""
        raw = _valid_object(obj, "event")
        if raw is None:
            return None
        notification = Notification.from_event(raw)

        if self.rules.should_skip(notification):
            notifications_total.labels(source="event", outcome="skipped").inc()
            _log.debug(
                "event_skipped",
                namespace=notification.namespace,
                kind=notification.involved_object.kind,
                reason=notification.reason,
                type=notification.level,
            )
            return None

        handler = await self.registry.resolve(notification)
        report = assemble_event_report(notification, handler, environment=self.environment, cluster=self.cluster)
        notifications_total.labels(source="event", outcome="reported").inc()
        _log.info("event_reported", type=notification.level, message=report.message)
        self.dispatcher.dispatch(report)
        return report

    # ------------------------------------------------------------------
    # Pods
    # ------------------------------------------------------------------

    def handle_pod_update(self, _old: object, new: object) -> list[Report]:
        """Report containers that newly terminated with a non-zero exit code.

        Only one in-flight termination per container is tracked; if several
        containers of a pod terminate together each gets its own report.
        """
        raw = _valid_object(new, "pod")
        if raw is None:
            return []
        pod = PodState.from_pod(raw)
        if self.ignores_pod_updates(pod.meta.namespace):
            notifications_total.labels(source="pod", outcome="skipped").inc()
            return []

        reports: list[Report] = []
        for termination in pod.terminations:
            is_new = self.tracker.is_new_termination(
                pod.meta.uid,
                termination.container,
                termination.finished_at,
                restart_count=termination.restart_count,
            )
            if not is_new or termination.exit_code == 0:
                continue
            report = assemble_termination_report(
                pod, termination, environment=self.environment, cluster=self.cluster
            )
            notifications_total.labels(source="pod", outcome="reported").inc()
            _log.info(
                "termination_reported",
                namespace=pod.meta.namespace,
                pod=pod.meta.name,
                container=termination.container,
                exit_code=termination.exit_code,
            )
            self.dispatcher.dispatch(report)
            reports.append(report)
        return reports
