"""Configuration loading from environment variables."""

from __future__ import annotations

import os

from kubesentry.models.config import (
    DedupConfig,
    EnrichmentConfig,
    KubernetesConfig,
    KubeSentryConfig,
    LogConfig,
    MetricsConfig,
    SentryConfig,
    SkipConfig,
)
from kubesentry.observability.logging import LOG_FORMATS

SKIP_EVENT_REASONS_ENV = "SKIP_EVENT_REASONS"
SKIP_EVENT_LEVELS_ENV = "SKIP_EVENT_LEVELS"


def _env(key: str, default: str = "") -> str:
    return os.environ.get(f"KUBESENTRY_{key}", default)


def _env_int(key: str, default: int, min_val: int | None = None, max_val: int | None = None) -> int:
    val = int(_env(key, str(default)))
    if min_val is not None:
        val = max(val, min_val)
    if max_val is not None:
        val = min(val, max_val)
    return val


def _env_float(key: str, default: float) -> float:
    return float(_env(key, str(default)))


def _env_list(key: str) -> list[str]:
    return [item.strip() for item in _env(key).split(",") if item.strip()]


def _validate_log_level(value: str) -> str:
    valid = {"debug", "info", "warning", "error"}
    if value.lower() not in valid:
        raise ValueError(f"Invalid log level: {value}. Must be one of {valid}")
    return value.lower()


def _validate_log_format(value: str) -> str:
    if value.lower() not in LOG_FORMATS:
        raise ValueError(f"Invalid log format: {value}. Must be one of {LOG_FORMATS}")
    return value.lower()


def load_config() -> KubeSentryConfig:
    """Load configuration from KUBESENTRY_* environment variables.

    ``SENTRY_DSN`` and the two skip-rule variables keep their unprefixed
    names. An unset skip variable is kept as ``None`` so the rule engine can
    tell "not configured" apart from "configured empty".
    """
    return KubeSentryConfig(
        cluster_name=_env("CLUSTER_NAME", ""),
        sentry=SentryConfig(
            dsn=os.environ.get("SENTRY_DSN", ""),
            environment=_env("ENVIRONMENT", ""),
            flush_timeout=_env_float("FLUSH_TIMEOUT", 1.0),
            webhook_url=_env("WEBHOOK_URL", ""),
        ),
        kubernetes=KubernetesConfig(
            kubeconfig=_env("KUBECONFIG", ""),
            namespaces=_env_list("NAMESPACES"),
            resync_seconds=_env_int("RESYNC_SECONDS", 30, min_val=5, max_val=3600),
            sync_timeout=_env_int("SYNC_TIMEOUT", 20, min_val=1, max_val=600),
        ),
        skip=SkipConfig(
            reasons=os.environ.get(SKIP_EVENT_REASONS_ENV),
            levels=os.environ.get(SKIP_EVENT_LEVELS_ENV),
        ),
        dedup=DedupConfig(
            cache_size=_env_int("RECENCY_CACHE_SIZE", 500, min_val=1, max_val=100_000),
            termination_max_age_ms=_env_int("TERMINATION_MAX_AGE_MS", 0, min_val=0),
        ),
        enrichment=EnrichmentConfig(
            fetch_timeout=_env_float("ENRICHMENT_TIMEOUT", 5.0),
        ),
        metrics=MetricsConfig(
            port=_env_int("METRICS_PORT", 0, min_val=0, max_val=65535),
        ),
        log=LogConfig(
            level=_validate_log_level(_env("LOG_LEVEL", "info")),
            format=_validate_log_format(_env("LOG_FORMAT", "json")),
        ),
    )
