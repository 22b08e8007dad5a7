"""Application bootstrap for backendsync.

Wires all components in dependency order and manages the asyncio lifecycle.
Startup order: config → logging → K8s client → registry → watch session
              → reconciliation loop → REST

Shutdown is graceful: components are stopped in reverse startup order.  The
reconciliation loop is stopped first so no registry mutation is issued once
shutdown has begun.  Each component's stop error is caught and logged
independently so that one failure does not prevent the rest from stopping.
"""

from __future__ import annotations

import asyncio
import signal
from typing import TYPE_CHECKING, Any

from backendsync.config import load_config
from backendsync.models.config import BackendSyncConfig
from backendsync.observability.logging import get_logger, setup_logging

if TYPE_CHECKING:
    import structlog

_SHUTDOWN_GRACE_SECONDS = 15


class _ComponentError(Exception):
    """Raised when a mandatory component fails to start."""

    def __init__(self, component: str, cause: Exception) -> None:
        super().__init__(f"Component '{component}' failed to start: {cause}")
        self.component = component
        self.cause = cause


class BackendSyncApp:
    """Application root.  Owns every component and coordinates their lifecycle.

    Calling ``stop()`` on an app that was never started (or already stopped)
    is safe.
    """

    def __init__(self, config: BackendSyncConfig | None = None) -> None:
        self.config: BackendSyncConfig | None = config

        self._api_client: Any = None
        self._core_v1: Any = None
        self._registry: Any = None
        self._session: Any = None
        self._loop: Any = None
        self._rest_server: Any = None

        self._background_tasks: list[asyncio.Task[Any]] = []
        self._stop_task: asyncio.Task[None] | None = None

        self._running = False
        self._fatal_error: BaseException | None = None
        self._log: structlog.stdlib.BoundLogger | None = None

    @property
    def running(self) -> bool:
        return self._running

    @property
    def fatal_error(self) -> BaseException | None:
        return self._fatal_error

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start all components in dependency order.

        Raises _ComponentError if a mandatory component cannot start.
        """
        if self.config is None:
            self.config = load_config()

        setup_logging(self.config.log.level, namespace=self.config.cluster.namespace)
        self._log = get_logger("app")
        self._log.info(
            "backendsync starting",
            version=_backendsync_version(),
            namespace=self.config.cluster.namespace,
            selector=self.config.cluster.label_selector,
        )

        await self._start_k8s_client()
        await self._start_registry()
        await self._start_session()
        await self._start_loop()
        await self._start_rest()

        self._running = True
        self._log.info("backendsync started")

    async def _start_k8s_client(self) -> None:
        """Initialise kubernetes-asyncio from in-cluster config or kubeconfig."""
        assert self._log is not None
        self._log.debug("starting k8s client")
        try:
            from kubernetes_asyncio import client as k8s_client
            from kubernetes_asyncio import config as k8s_config

            try:
                # load_incluster_config() is synchronous in kubernetes-asyncio
                k8s_config.load_incluster_config()
                self._log.info("k8s client configured from in-cluster service account")
            except k8s_config.ConfigException:
                await k8s_config.load_kube_config()
                self._log.info("k8s client configured from kubeconfig")

            self._api_client = k8s_client.ApiClient()
            self._core_v1 = k8s_client.CoreV1Api(self._api_client)
        except Exception as exc:
            raise _ComponentError("k8s_client", exc) from exc

    async def _start_registry(self) -> None:
        assert self._log is not None
        assert self.config is not None
        try:
            from backendsync.registry import build_registry

            self._registry = build_registry(self.config.registry)
            self._log.info("registry adapter ready", adapter=self._registry.adapter_name)
        except Exception as exc:
            raise _ComponentError("registry", exc) from exc

    async def _start_session(self) -> None:
        assert self._log is not None
        assert self.config is not None
        try:
            from backendsync.collector.watcher import WatchSessionManager

            self._session = WatchSessionManager(
                self._core_v1,
                cluster=self.config.cluster,
                watch_config=self.config.watch,
            )
        except Exception as exc:
            raise _ComponentError("session", exc) from exc

    async def _start_loop(self) -> None:
        """Start the reconciliation loop as a background task."""
        assert self._log is not None
        assert self.config is not None
        try:
            from backendsync.reconciler.loop import ReconciliationLoop

            self._loop = ReconciliationLoop(
                self._session,
                self._registry,
                rules=self.config.cluster,
                on_fatal=self._on_fatal,
            )
            await self._loop.start()
            self._log.info("reconciliation loop started")
        except Exception as exc:
            raise _ComponentError("reconciler", exc) from exc

    async def _start_rest(self) -> None:
        """Start the uvicorn admin server, if enabled."""
        assert self._log is not None
        assert self.config is not None
        if not self.config.api.enabled:
            self._log.info("rest api disabled")
            return
        try:
            import uvicorn

            from backendsync.api import build_app

            fastapi_app = build_app(
                registry=self._registry,
                tracker=self._loop.tracker,
                session=self._session,
                config=self.config,
            )
            uv_config = uvicorn.Config(
                app=fastapi_app,
                host="0.0.0.0",
                port=self.config.api.port,
                log_config=None,  # structlog handles all logging
                access_log=False,
            )
            server = uvicorn.Server(uv_config)
            task = asyncio.create_task(server.serve(), name="rest-server")
            self._background_tasks.append(task)
            self._rest_server = server
            self._log.info("rest api started", port=self.config.api.port)
        except Exception as exc:
            # Discovery keeps working without the admin surface
            self._log.warning("rest api failed to start; admin endpoints unavailable", error=str(exc))
            self._rest_server = None

    def _on_fatal(self, exc: BaseException) -> None:
        """Reconciliation loop died: record it and shut the process down."""
        self._fatal_error = exc
        self.request_stop()

    def request_stop(self) -> None:
        """Schedule stop() once, from a signal handler or callback."""
        if self._stop_task is None:
            self._stop_task = asyncio.create_task(self.stop(), name="shutdown")

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    async def stop(self) -> None:
        """Gracefully stop all components in reverse startup order."""
        if not self._running and self._log is None:
            return

        log = self._log or get_logger("app")
        log.info("backendsync shutting down")
        self._running = False

        await self._stop_component("reconciler", self._loop)

        if self._rest_server is not None:
            self._rest_server.should_exit = True
        for task in reversed(self._background_tasks):
            if not task.done():
                task.cancel()
        if self._background_tasks:
            await asyncio.gather(*self._background_tasks, return_exceptions=True)
        self._background_tasks.clear()

        await self._stop_k8s_client()
        log.info("backendsync stopped")

    async def _stop_component(self, name: str, component: object | None) -> None:
        """Call stop() on a component if it has that method, catching all errors."""
        if component is None:
            return
        log = self._log or get_logger("app")
        stop_fn = getattr(component, "stop", None)
        if stop_fn is None:
            return
        try:
            result = stop_fn()
            if asyncio.iscoroutine(result):
                await asyncio.wait_for(result, timeout=_SHUTDOWN_GRACE_SECONDS)
        except TimeoutError:
            log.warning("component stop timed out", component=name, timeout=_SHUTDOWN_GRACE_SECONDS)
        except Exception as exc:
            log.error("component stop raised an error", component=name, error=str(exc))

    async def _stop_k8s_client(self) -> None:
        """Close the kubernetes-asyncio ApiClient connection pool."""
        if self._api_client is None:
            return
        log = self._log or get_logger("app")
        api_client = self._api_client
        self._api_client = None
        try:
            await api_client.close()
        except Exception as exc:
            log.debug("k8s client close raised (non-fatal)", error=str(exc))


def _backendsync_version() -> str:
    from backendsync import __version__

    return __version__


# ---------------------------------------------------------------------------
# Async entrypoint
# ---------------------------------------------------------------------------


async def main() -> None:
    """Create the app, register OS signals, run until shutdown is requested."""
    app = BackendSyncApp()
    loop = asyncio.get_running_loop()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, app.request_stop)

    try:
        await app.start()
        while app.running:
            await asyncio.sleep(1)
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

    if app._stop_task is not None:
        await app._stop_task
    if app.fatal_error is not None:
        get_logger("app").critical("exiting after fatal error", error=str(app.fatal_error))
        raise SystemExit(1)


def run() -> None:
    """Console-script entry point."""
    asyncio.run(main())
