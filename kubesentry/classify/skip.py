"""Skip-rule engine: decides whether a notification is noise.

Rules are declared as a comma-separated list of ``[kind:]value`` entries,
either globally (``SKIP_EVENT_REASONS`` / ``SKIP_EVENT_LEVELS``) or per
namespace through annotations. Some examples::

    Pod:created,Service:AllocationFailed      skip by reason, scoped to a kind
    normal,Pod:warning                        skip all Normal events, and Pod warnings

A namespace with its own rule set never falls back to the global one; the
two are not merged.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import StrEnum

from kubesentry.models.notifications import Notification
from kubesentry.observability.logging import get_logger

_log = get_logger("classify.skip")

SKIP_LEVELS_ANNOTATION = "sentry/skip-event-levels"
SKIP_REASONS_ANNOTATION = "sentry/skip-event-reasons"

DEFAULT_SKIP_LEVELS = ("normal",)


class SkipCriteria(StrEnum):
    """Which notification field a rule is compared against."""

    REASON = "reason"
    LEVEL = "level"


@dataclass(frozen=True)
class SkipRule:
    """A single skip criterion, optionally scoped to an involved-object kind."""

    criteria: SkipCriteria
    kind: str
    value: str

    @classmethod
    def of(cls, criteria: SkipCriteria, kind: str, value: str) -> SkipRule:
        return cls(criteria, kind.strip().lower(), value.strip().lower())


@dataclass(frozen=True)
class RuleSet:
    """Immutable collection of skip rules for one scope."""

    rules: frozenset[SkipRule] = field(default_factory=frozenset)

    def __or__(self, other: RuleSet) -> RuleSet:
        return RuleSet(self.rules | other.rules)

    def __len__(self) -> int:
        return len(self.rules)

    def __contains__(self, rule: object) -> bool:
        return rule in self.rules


def parse_skip_config(
    criteria: SkipCriteria,
    raw: str | None,
    fallback: Iterable[str] = (),
) -> RuleSet:
    """Parse ``[kind:]value[,...]`` into a RuleSet.

    When *raw* is None or blank, the *fallback* entries are parsed instead.
    Entries with more than one ``:`` are logged and ignored.
    """
    if raw is None or not raw.strip():
        entries = list(fallback)
    else:
        entries = raw.split(",")

    rules: set[SkipRule] = set()
    for entry in entries:
        entry = entry.strip()
        if not entry:
            continue
        parts = [part.strip() for part in entry.split(":")]
        if len(parts) > 2:
            _log.warning("illegal_skip_declaration", criteria=criteria.value, entry=entry)
            continue
        kind, value = parts if len(parts) == 2 else ("", parts[0])
        if not value:
            _log.warning("illegal_skip_declaration", criteria=criteria.value, entry=entry)
            continue
        rules.add(SkipRule.of(criteria, kind, value))
    return RuleSet(frozenset(rules))


def build_rule_set(reasons: str | None, levels: str | None) -> RuleSet:
    """Combine reason and level declarations into one RuleSet.

    If neither is configured, the result skips Normal-level events.
    """
    level_fallback = DEFAULT_SKIP_LEVELS if reasons is None and levels is None else ()
    return parse_skip_config(SkipCriteria.REASON, reasons) | parse_skip_config(
        SkipCriteria.LEVEL, levels, fallback=level_fallback
    )


def rule_set_from_annotations(annotations: Mapping[str, str]) -> RuleSet | None:
    """Build a namespace RuleSet from its annotations, or None if it declares none."""
    if SKIP_LEVELS_ANNOTATION not in annotations and SKIP_REASONS_ANNOTATION not in annotations:
        return None
    return parse_skip_config(SkipCriteria.REASON, annotations.get(SKIP_REASONS_ANNOTATION)) | parse_skip_config(
        SkipCriteria.LEVEL, annotations.get(SKIP_LEVELS_ANNOTATION)
    )


def should_skip(notification: Notification, rules: RuleSet) -> bool:
    """Return True if *notification* matches any rule in *rules*.

    Checked in order: kind-specific reason, any-kind reason, kind-specific
    level, any-kind level. All comparisons are case-insensitive.
    """
    kind = notification.involved_object.kind.lower()
    reason = notification.reason.lower()
    level = notification.level.lower()
    candidates = (
        SkipRule(SkipCriteria.REASON, kind, reason),
        SkipRule(SkipCriteria.REASON, "", reason),
        SkipRule(SkipCriteria.LEVEL, kind, level),
        SkipRule(SkipCriteria.LEVEL, "", level),
    )
    return any(candidate in rules for candidate in candidates)


class SkipRuleStore:
    """Global default rule set plus per-namespace overrides.

    Safe to share between delivery paths: every operation takes the
    internal lock for its whole read-modify-write.
    """

    def __init__(self, default: RuleSet) -> None:
        self._default = default
        self._by_namespace: dict[str, RuleSet] = {}
        self._lock = threading.Lock()

    @property
    def default(self) -> RuleSet:
        return self._default

    def upsert(self, namespace: str, rules: RuleSet) -> None:
        with self._lock:
            self._by_namespace[namespace] = rules
        _log.debug("namespace_rules_updated", namespace=namespace, rules=len(rules))

    def delete(self, namespace: str) -> None:
        with self._lock:
            removed = self._by_namespace.pop(namespace, None)
        if removed is not None:
            _log.debug("namespace_rules_removed", namespace=namespace)

    def lookup(self, namespace: str) -> RuleSet:
        """Return the namespace's own rule set, or the global default."""
        if not namespace:
            return self._default
        with self._lock:
            return self._by_namespace.get(namespace, self._default)

    def should_skip(self, notification: Notification) -> bool:
        return should_skip(notification, self.lookup(notification.namespace))
