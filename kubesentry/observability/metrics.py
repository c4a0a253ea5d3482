"""Prometheus metrics for kubesentry.

All collectors are registered on the default registry at import time.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, start_http_server

notifications_total = Counter(
    "kubesentry_notifications_total",
    "Notifications processed, by source and outcome.",
    ["source", "outcome"],
)

reports_total = Counter(
    "kubesentry_reports_total",
    "Reports handed to a reporting channel.",
    ["channel", "success"],
)

enrichment_failures_total = Counter(
    "kubesentry_enrichment_failures_total",
    "Enrichment fetches that failed and fell back to the default handler.",
    ["kind"],
)

recency_cache_evictions_total = Counter(
    "kubesentry_recency_cache_evictions_total",
    "Entries evicted from the termination recency cache.",
)

recency_cache_size = Gauge(
    "kubesentry_recency_cache_size",
    "Current number of entries in the termination recency cache.",
)

watch_reconnects_total = Counter(
    "kubesentry_watch_reconnects_total",
    "Watch stream reconnects, by resource.",
    ["resource"],
)


def start_metrics_server(port: int) -> None:
    """Expose the default registry over HTTP on *port*."""
    start_http_server(port)
