"""Composes Reports from notifications and enrichment output."""

from __future__ import annotations

from typing import Any

from kubesentry.classify.enrichment import EnrichmentHandler
from kubesentry.classify.fingerprint import event_fingerprint, termination_fingerprint
from kubesentry.models.notifications import ContainerTermination, Notification, PodState
from kubesentry.models.reports import Report, ReportLevel
from kubesentry.observability.logging import get_logger

_log = get_logger("classify.assembler")

_LEVELS = {
    "warning": ReportLevel.WARNING,
    "error": ReportLevel.ERROR,
}


def event_level(event_type: str) -> ReportLevel:
    """Map an Event ``type`` to a report level; unknown types become info."""
    level = _LEVELS.get(event_type.lower())
    if level is None:
        if event_type.lower() != "normal":
            _log.debug("unexpected_event_type", type=event_type)
        return ReportLevel.INFO
    return level


def stringify_tag(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _stringify_tags(tags: dict[str, Any]) -> dict[str, str]:
    return {str(k): stringify_tag(v) for k, v in tags.items()}


def assemble_event_report(
    notification: Notification,
    handler: EnrichmentHandler,
    environment: str = "",
    cluster: str = "",
) -> Report:
    """Build the report for a narrative event that passed the skip rules.

    Handler tags win over the intrinsic ones on key collision.
    """
    ref = notification.involved_object
    tags: dict[str, Any] = {
        "namespace": ref.namespace,
        "component": notification.component,
        "reason": notification.reason,
        "kind": ref.kind,
        "type": notification.level,
    }
    cluster_name = cluster or notification.cluster_name
    if cluster_name:
        tags["cluster"] = cluster_name
    if notification.reporting_controller:
        tags["controller"] = notification.reporting_controller
    tags.update(handler.tags())

    extra: dict[str, Any] = {"count": notification.count}
    if notification.action:
        extra["action"] = notification.action

    return Report(
        message=f"{ref.kind}/{ref.name}: {notification.message or notification.reason}",
        level=event_level(notification.level),
        environment=environment or ref.namespace,
        timestamp=notification.created_at,
        fingerprint=event_fingerprint(notification, handler.fingerprint()),
        tags=_stringify_tags(tags),
        extra=extra,
    )


def termination_message(termination: ContainerTermination) -> str:
    if termination.message:
        return termination.message
    if termination.reason == "Error":
        return f"Error {termination.container} exited with code {termination.exit_code}"
    # OOMKilled and friends leave no message
    return termination.reason


def assemble_termination_report(
    pod: PodState,
    termination: ContainerTermination,
    environment: str = "",
    cluster: str = "",
) -> Report:
    """Build the report for a container that terminated with a non-zero exit code."""
    tags: dict[str, Any] = {
        "reason": termination.reason,
        "namespace": pod.meta.namespace,
        "kind": pod.meta.kind or "Pod",
    }
    cluster_name = cluster or pod.cluster_name
    if cluster_name:
        tags["cluster"] = cluster_name
    tags.update(pod.meta.labels)

    extra: dict[str, Any] = {
        "exit-code": stringify_tag(termination.exit_code),
        "restartCount": termination.restart_count,
        "restartPolicy": pod.restart_policy,
        "container": termination.container,
        "pod": pod.meta.name,
        "pod-phase": pod.phase,
    }
    if termination.init_container:
        extra["init-container"] = True
    if pod.status_message:
        extra["pod-status-message"] = pod.status_message
    if pod.status_reason:
        extra["pod-status-reason"] = pod.status_reason

    return Report(
        message=f"Pod/{pod.meta.name}: {termination_message(termination)}",
        level=ReportLevel.ERROR,
        environment=environment or pod.meta.namespace,
        timestamp=termination.finished_at,
        fingerprint=termination_fingerprint(termination.reason, pod.meta),
        tags=_stringify_tags(tags),
        extra=extra,
        server_name=pod.node_name,
        release=termination.image,
    )
