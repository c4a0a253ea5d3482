"""Notification data structures built from raw Kubernetes API objects.

Every watch callback receives a plain ``dict`` in API (camelCase) form.
The classes here turn those dicts into immutable views that the
classification core reads but never mutates.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any


class NotificationKind(StrEnum):
    """What kind of raw signal a notification represents."""

    EVENT = "event"


def parse_timestamp(value: object) -> datetime | None:
    """Parse an API timestamp (RFC 3339 string or datetime) into an aware datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo is not None else value.replace(tzinfo=UTC)
    try:
        parsed = datetime.fromisoformat(str(value))
    except ValueError:
        return None
    return parsed if parsed.tzinfo is not None else parsed.replace(tzinfo=UTC)


def _str(value: object) -> str:
    return "" if value is None else str(value)


def _labels(value: object) -> dict[str, str]:
    if not isinstance(value, Mapping):
        return {}
    return {str(k): _str(v) for k, v in value.items()}


@dataclass(frozen=True)
class OwnerReference:
    """Back-reference from an object to the object that manages it."""

    api_version: str
    kind: str
    name: str
    uid: str = ""
    controller: bool = False

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> OwnerReference:
        return cls(
            api_version=_str(raw.get("apiVersion")),
            kind=_str(raw.get("kind")),
            name=_str(raw.get("name")),
            uid=_str(raw.get("uid")),
            controller=bool(raw.get("controller") or False),
        )


@dataclass(frozen=True)
class ObjectRef:
    """Identity of the object a notification is about."""

    api_version: str
    kind: str
    namespace: str
    name: str
    uid: str = ""
    field_path: str = ""
    resource_version: str = ""
    generate_name: str = ""
    owner_references: tuple[OwnerReference, ...] = ()
    labels: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_involved_object(cls, raw: Mapping[str, Any]) -> ObjectRef:
        """Build from an Event's ``involvedObject`` block."""
        return cls(
            api_version=_str(raw.get("apiVersion")),
            kind=_str(raw.get("kind")),
            namespace=_str(raw.get("namespace")),
            name=_str(raw.get("name")),
            uid=_str(raw.get("uid")),
            field_path=_str(raw.get("fieldPath")),
            resource_version=_str(raw.get("resourceVersion")),
        )

    @classmethod
    def from_object(cls, raw: Mapping[str, Any], api_version: str = "", kind: str = "") -> ObjectRef:
        """Build from a full object (``apiVersion``, ``kind``, ``metadata``)."""
        metadata = raw.get("metadata") or {}
        owners = tuple(
            OwnerReference.from_dict(owner)
            for owner in metadata.get("ownerReferences") or []
            if isinstance(owner, Mapping)
        )
        return cls(
            api_version=_str(raw.get("apiVersion")) or api_version,
            kind=_str(raw.get("kind")) or kind,
            namespace=_str(metadata.get("namespace")),
            name=_str(metadata.get("name")),
            uid=_str(metadata.get("uid")),
            resource_version=_str(metadata.get("resourceVersion")),
            generate_name=_str(metadata.get("generateName")),
            owner_references=owners,
            labels=_labels(metadata.get("labels")),
        )

    def controller_owner(self) -> OwnerReference | None:
        """Return the owner reference flagged as the managing controller, if any."""
        for owner in self.owner_references:
            if owner.controller:
                return owner
        return None


@dataclass(frozen=True)
class Notification:
    """Immutable view of one raw signal delivered by the watch subsystem."""

    kind: NotificationKind
    involved_object: ObjectRef
    namespace: str
    level: str
    reason: str
    message: str
    created_at: datetime | None = None
    count: int = 1
    component: str = ""
    reporting_controller: str = ""
    action: str = ""
    cluster_name: str = ""
    labels: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_event(cls, raw: Mapping[str, Any]) -> Notification:
        """Build a narrative-event notification from a raw ``v1.Event``."""
        metadata = raw.get("metadata") or {}
        involved = ObjectRef.from_involved_object(raw.get("involvedObject") or {})
        source = raw.get("source") or {}
        try:
            count = int(raw.get("count") or 1)
        except (TypeError, ValueError):
            count = 1
        return cls(
            kind=NotificationKind.EVENT,
            involved_object=involved,
            namespace=_str(metadata.get("namespace")) or involved.namespace,
            level=_str(raw.get("type")),
            reason=_str(raw.get("reason")),
            message=_str(raw.get("message")),
            created_at=parse_timestamp(metadata.get("creationTimestamp")),
            count=count,
            component=_str(source.get("component")),
            reporting_controller=_str(raw.get("reportingController") or raw.get("reportingComponent")),
            action=_str(raw.get("action")),
            cluster_name=_str(metadata.get("clusterName")),
            labels=_labels(metadata.get("labels")),
        )


@dataclass(frozen=True)
class ContainerTermination:
    """Terminated state of a single container, as last reported by the kubelet."""

    container: str
    image: str
    restart_count: int
    exit_code: int
    reason: str
    message: str
    finished_at: datetime | None
    init_container: bool = False

    @classmethod
    def from_status(cls, raw: Mapping[str, Any], init_container: bool = False) -> ContainerTermination | None:
        """Return the termination of a ``containerStatus`` or None if it is not terminated."""
        terminated = (raw.get("state") or {}).get("terminated")
        if not terminated:
            return None
        return cls(
            container=_str(raw.get("name")),
            image=_str(raw.get("image")),
            restart_count=int(raw.get("restartCount") or 0),
            exit_code=int(terminated.get("exitCode") or 0),
            reason=_str(terminated.get("reason")),
            message=_str(terminated.get("message")),
            finished_at=parse_timestamp(terminated.get("finishedAt")),
            init_container=init_container,
        )


@dataclass(frozen=True)
class PodState:
    """Point-in-time view of a Pod: identity, scheduling and container terminations."""

    meta: ObjectRef
    node_name: str = ""
    restart_policy: str = ""
    phase: str = ""
    status_message: str = ""
    status_reason: str = ""
    cluster_name: str = ""
    terminations: tuple[ContainerTermination, ...] = ()

    @classmethod
    def from_pod(cls, raw: Mapping[str, Any]) -> PodState:
        """Build from a raw ``v1.Pod``; init containers are listed before regular ones."""
        spec = raw.get("spec") or {}
        status = raw.get("status") or {}
        terminations: list[ContainerTermination] = []
        for key, is_init in (("initContainerStatuses", True), ("containerStatuses", False)):
            for container_status in status.get(key) or []:
                termination = ContainerTermination.from_status(container_status, init_container=is_init)
                if termination is not None:
                    terminations.append(termination)
        return cls(
            meta=ObjectRef.from_object(raw, api_version="v1", kind="Pod"),
            node_name=_str(spec.get("nodeName")),
            restart_policy=_str(spec.get("restartPolicy")),
            phase=_str(status.get("phase")),
            status_message=_str(status.get("message")),
            status_reason=_str(status.get("reason")),
            cluster_name=_str((raw.get("metadata") or {}).get("clusterName")),
            terminations=tuple(terminations),
        )
