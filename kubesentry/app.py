"""Application bootstrap for kubesentry.

Wires all components in dependency order and manages the asyncio lifecycle.
Startup order: config → logging → Sentry → metrics → K8s client → core
              → namespace watcher (wait for sync) → event/pod watchers

Shutdown sets the shared stop signal, cancels watchers that outlive a short
grace period, then gives in-flight reports time to reach Sentry.
"""

from __future__ import annotations

import asyncio
import signal
from datetime import timedelta
from typing import TYPE_CHECKING, Any

from kubesentry.classify.enrichment import build_default_registry
from kubesentry.classify.recency import RecencyCache, TerminationTracker
from kubesentry.classify.skip import SkipRuleStore, build_rule_set
from kubesentry.config import load_config
from kubesentry.models.config import KubeSentryConfig
from kubesentry.observability.logging import get_logger, setup_logging
from kubesentry.pipeline import EventPipeline

if TYPE_CHECKING:
    import structlog

    from kubesentry.reporting.manager import ReportDispatcher

_SHUTDOWN_GRACE_SECONDS = 5


class _ComponentError(Exception):
    """Raised when a mandatory component fails to start."""

    def __init__(self, component: str, cause: Exception) -> None:
        super().__init__(f"Component '{component}' failed to start: {cause}")
        self.component = component
        self.cause = cause


def build_pipeline(config: KubeSentryConfig, core_api: Any, dispatcher: ReportDispatcher) -> EventPipeline:
    """Assemble the classification core from configuration."""
    max_age_ms = config.dedup.termination_max_age_ms
    tracker = TerminationTracker(
        RecencyCache(capacity=config.dedup.cache_size),
        max_age=timedelta(milliseconds=max_age_ms) if max_age_ms > 0 else None,
    )
    return EventPipeline(
        rules=SkipRuleStore(build_rule_set(config.skip.reasons, config.skip.levels)),
        tracker=tracker,
        registry=build_default_registry(core_api, timeout=config.enrichment.fetch_timeout),
        dispatcher=dispatcher,
        environment=config.sentry.environment,
        cluster=config.cluster_name,
    )


class KubeSentryApp:
    """Application root. Owns every component and coordinates their lifecycle.

    Calling ``stop()`` on an app that was never started (or already stopped)
    is safe.
    """

    def __init__(self) -> None:
        self.config: KubeSentryConfig | None = None

        self._api_client: Any | None = None
        self._core_api: Any | None = None
        self._dispatcher: ReportDispatcher | None = None
        self._pipeline: EventPipeline | None = None

        self._stop = asyncio.Event()
        self._background_tasks: list[asyncio.Task[None]] = []

        self._running = False
        self._log: structlog.stdlib.BoundLogger | None = None

    @property
    def running(self) -> bool:
        return self._running

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start all components in dependency order.

        Raises _ComponentError if a mandatory component cannot start.
        """
        # --- 1. Configuration -------------------------------------------
        self.config = load_config()

        # --- 2. Logging -------------------------------------------------
        setup_logging(self.config.log.level, fmt=self.config.log.format, cluster=self.config.cluster_name)
        self._log = get_logger("app")
        self._log.info("kubesentry starting", version=_kubesentry_version())

        # --- 3. Reporting backend ----------------------------------------
        self._start_reporting()

        # --- 4. Metrics --------------------------------------------------
        self._start_metrics()

        # --- 5. Kubernetes client ----------------------------------------
        await self._start_k8s_client()

        # --- 6. Classification core --------------------------------------
        assert self._dispatcher is not None
        self._pipeline = build_pipeline(self.config, self._core_api, self._dispatcher)

        # --- 7. Namespace watcher, then per-namespace fan-out ------------
        await self._start_namespace_watcher()
        self._start_resource_watchers()

        self._running = True
        self._log.info("kubesentry started", namespaces=self.config.kubernetes.namespaces or ["*"])

    def _start_reporting(self) -> None:
        assert self._log is not None
        assert self.config is not None
        try:
            from kubesentry.reporting import build_report_dispatcher, init_sentry

            init_sentry(self.config.sentry)
            self._dispatcher = build_report_dispatcher(self.config.sentry)
            self._log.info("reporting started", environment=self.config.sentry.environment or "<namespace>")
        except Exception as exc:
            raise _ComponentError("reporting", exc) from exc

    def _start_metrics(self) -> None:
        assert self._log is not None
        assert self.config is not None
        port = self.config.metrics.port
        if not port:
            self._log.debug("metrics server disabled")
            return
        try:
            from kubesentry.observability.metrics import start_metrics_server

            start_metrics_server(port)
            self._log.info("metrics server started", port=port)
        except Exception as exc:
            # Metrics are optional; reporting works without them
            self._log.warning("metrics server failed to start", port=port, error=str(exc))

    async def _start_k8s_client(self) -> None:
        """Initialise kubernetes-asyncio from in-cluster config or kubeconfig."""
        assert self._log is not None
        assert self.config is not None
        self._log.debug("starting k8s client")
        try:
            import kubernetes_asyncio.config as k8s_config  # type: ignore[import-untyped]
            from kubernetes_asyncio import client as k8s_client  # type: ignore[import-untyped]

            kubeconfig = self.config.kubernetes.kubeconfig
            if kubeconfig:
                await k8s_config.load_kube_config(config_file=kubeconfig)
                self._log.info("k8s client configured from kubeconfig", path=kubeconfig)
            else:
                try:
                    k8s_config.load_incluster_config()
                    self._log.info("k8s client configured from in-cluster service account")
                except k8s_config.ConfigException:
                    await k8s_config.load_kube_config()
                    self._log.info("k8s client configured from kubeconfig")

            self._api_client = k8s_client.ApiClient()
            self._core_api = k8s_client.CoreV1Api(self._api_client)
        except Exception as exc:
            raise _ComponentError("k8s_client", exc) from exc

    async def _start_namespace_watcher(self) -> None:
        """Start the namespace informer and wait for its first full list."""
        assert self._log is not None
        assert self.config is not None
        assert self._pipeline is not None
        from kubesentry.collector import namespace_watcher

        watcher = namespace_watcher(self._core_api, self._pipeline)
        self._spawn(watcher.run(self._stop), name="watch-namespaces")
        timeout = self.config.kubernetes.sync_timeout
        try:
            await asyncio.wait_for(watcher.has_synced.wait(), timeout=timeout)
        except TimeoutError as exc:
            self._log.error("timeout while initializing namespaces", timeout=timeout)
            raise _ComponentError("namespace_watcher", exc) from exc
        self._log.info("namespace watcher synced", namespaces=len(watcher))

    def _start_resource_watchers(self) -> None:
        """One Event and one Pod watcher per configured namespace (or cluster-wide)."""
        assert self.config is not None
        assert self._pipeline is not None
        from kubesentry.collector import event_watcher, pod_watcher

        resync = self.config.kubernetes.resync_seconds
        for namespace in self.config.kubernetes.namespaces or [""]:
            label = namespace or "all"
            events = event_watcher(self._core_api, self._pipeline, namespace, resync_seconds=resync)
            pods = pod_watcher(self._core_api, self._pipeline, namespace, resync_seconds=resync)
            self._spawn(events.run(self._stop), name=f"watch-events-{label}")
            self._spawn(pods.run(self._stop), name=f"watch-pods-{label}")

    def _spawn(self, coro: Any, name: str) -> None:
        self._background_tasks.append(asyncio.create_task(coro, name=name))

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    async def stop(self) -> None:
        """Stop watchers, drain reports and flush Sentry.

        Watchers get up to the enrichment timeout to notice the stop signal,
        so an in-flight pod fetch can finish or fail on its own; whatever is
        still running after that is cancelled.
        """
        if not self._running and self._log is None:
            return

        log = self._log or get_logger("app")
        log.info("kubesentry shutting down")
        self._running = False
        self._stop.set()

        if self._background_tasks:
            grace = self.config.enrichment.fetch_timeout if self.config else 1.0
            await asyncio.wait(self._background_tasks, timeout=grace)
        for task in reversed(self._background_tasks):
            if not task.done():
                task.cancel()
        if self._background_tasks:
            await asyncio.gather(*self._background_tasks, return_exceptions=True)
        self._background_tasks.clear()

        if self._dispatcher is not None:
            try:
                await self._dispatcher.stop(timeout=_SHUTDOWN_GRACE_SECONDS)
            except Exception as exc:
                log.error("report dispatcher stop raised an error", error=str(exc))

        from kubesentry.reporting import flush_sentry

        flush_timeout = self.config.sentry.flush_timeout if self.config else 1.0
        await asyncio.to_thread(flush_sentry, flush_timeout)

        await self._stop_k8s_client()
        log.info("kubesentry stopped")

    async def _stop_k8s_client(self) -> None:
        if self._api_client is None:
            return
        log = self._log or get_logger("app")
        try:
            await self._api_client.close()
        except Exception as exc:
            log.debug("k8s client close raised (non-fatal)", error=str(exc))
        self._api_client = None


def _kubesentry_version() -> str:
    from kubesentry import __version__

    return __version__


# ---------------------------------------------------------------------------
# Async entrypoint
# ---------------------------------------------------------------------------


async def main() -> None:
    """Create the app, register OS signals, run until shutdown is requested."""
    app = KubeSentryApp()
    loop = asyncio.get_running_loop()
    shutdown = asyncio.Event()

    for sig in (signal.SIGTERM, signal.SIGINT, signal.SIGHUP):
        loop.add_signal_handler(sig, shutdown.set)

    try:
        await app.start()
        await shutdown.wait()
    except _ComponentError as exc:
        log = get_logger("app")
        log.critical(
            "fatal startup error",
            component=exc.component,
            error=str(exc.cause),
        )
        await app.stop()
        raise SystemExit(1) from exc
    finally:
        if app.running:
            await app.stop()


def run() -> None:
    """Console-script entry point."""
    asyncio.run(main())
