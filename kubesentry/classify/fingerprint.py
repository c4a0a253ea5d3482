"""Grouping keys for reports.

Fingerprints are lossy: successive generations of the same
logical object (rescheduled pods, new ReplicaSet hashes) collapse into one
group so Sentry shows one issue per failing workload.
"""

from __future__ import annotations

from collections.abc import Sequence

from kubesentry.models.notifications import Notification, ObjectRef

Fingerprint = tuple[str, ...]


def mangle_name(original: str) -> str:
    """Strip generated suffixes from an object name.

    ``my-app-7b4f8c6d-x2kj`` becomes ``my-app``; names with fewer than three
    hyphen-separated segments reduce to their first segment.
    """
    splits = original.split("-")
    if len(splits) < 3:
        return splits[0]
    return "-".join(splits[:-2])


def fingerprint_from_meta(meta: ObjectRef) -> Fingerprint:
    """Group by the controlling owner if there is one, else by namespace and base name."""
    owner = meta.controller_owner()
    if owner is not None:
        return (owner.api_version, owner.kind, owner.name)
    name = meta.generate_name or mangle_name(meta.name)
    return (meta.namespace, name)


def involved_object_fingerprint(ref: ObjectRef) -> Fingerprint:
    """Fingerprint of an Event's involved object when nothing better is known."""
    return (ref.api_version, ref.kind, ref.namespace, mangle_name(ref.name), ref.field_path)


def event_fingerprint(notification: Notification, handler_fingerprint: Sequence[str]) -> Fingerprint:
    """Prefix the handler fingerprint with what kind of problem the event describes."""
    return (notification.component, notification.level, notification.reason, *handler_fingerprint)


def termination_fingerprint(reason: str, meta: ObjectRef) -> Fingerprint:
    return (reason, *fingerprint_from_meta(meta))
