"""Core data structures for kubesentry."""

from kubesentry.models.config import KubeSentryConfig
from kubesentry.models.notifications import (
    ContainerTermination,
    Notification,
    NotificationKind,
    ObjectRef,
    OwnerReference,
    PodState,
    parse_timestamp,
)
from kubesentry.models.reports import Report, ReportLevel

__all__ = [
    "ContainerTermination",
    "KubeSentryConfig",
    "Notification",
    "NotificationKind",
    "ObjectRef",
    "OwnerReference",
    "PodState",
    "Report",
    "ReportLevel",
    "parse_timestamp",
]
