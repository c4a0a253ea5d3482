"""Report data structures handed to the reporting backend."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any


class ReportLevel(StrEnum):
    """Severity of an assembled report, using Sentry level names."""

    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class Report:
    """One structured error report, created once per passed notification."""

    message: str
    level: ReportLevel
    environment: str
    timestamp: datetime | None
    fingerprint: tuple[str, ...]
    tags: dict[str, str] = field(default_factory=dict)
    extra: dict[str, Any] = field(default_factory=dict)
    logger: str = "kubernetes"
    server_name: str = ""
    release: str = ""

    def to_sentry_event(self) -> dict[str, Any]:
        """Serialise to the event payload accepted by ``sentry_sdk.capture_event``."""
        event: dict[str, Any] = {
            "message": self.message,
            "level": self.level.value,
            "logger": self.logger,
            "fingerprint": list(self.fingerprint),
            "tags": dict(self.tags),
            "extra": dict(self.extra),
        }
        if self.environment:
            event["environment"] = self.environment
        if self.timestamp is not None:
            event["timestamp"] = self.timestamp.isoformat()
        if self.server_name:
            event["server_name"] = self.server_name
        if self.release:
            event["release"] = self.release
        return event
