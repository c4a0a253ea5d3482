"""Configuration data structures."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class SentryConfig:
    """Reporting backend configuration."""

    dsn: str = ""
    environment: str = ""
    flush_timeout: float = 1.0
    webhook_url: str = ""


@dataclass
class KubernetesConfig:
    """Cluster access and watch configuration."""

    kubeconfig: str = ""
    namespaces: list[str] = field(default_factory=list)
    resync_seconds: int = 30
    sync_timeout: int = 20


@dataclass
class SkipConfig:
    """Global skip rules. ``None`` means the variable was not set at all."""

    reasons: str | None = None
    levels: str | None = None


@dataclass
class DedupConfig:
    """Termination deduplication configuration."""

    cache_size: int = 500
    termination_max_age_ms: int = 0


@dataclass
class EnrichmentConfig:
    """Enrichment handler configuration."""

    fetch_timeout: float = 5.0


@dataclass
class MetricsConfig:
    """Prometheus exposition configuration."""

    port: int = 0


@dataclass
class LogConfig:
    """Logging configuration."""

    level: str = "info"
    format: str = "json"


@dataclass
class KubeSentryConfig:
    """Top-level kubesentry configuration."""

    cluster_name: str = ""
    sentry: SentryConfig = field(default_factory=SentryConfig)
    kubernetes: KubernetesConfig = field(default_factory=KubernetesConfig)
    skip: SkipConfig = field(default_factory=SkipConfig)
    dedup: DedupConfig = field(default_factory=DedupConfig)
    enrichment: EnrichmentConfig = field(default_factory=EnrichmentConfig)
    metrics: MetricsConfig = field(default_factory=MetricsConfig)
    log: LogConfig = field(default_factory=LogConfig)
