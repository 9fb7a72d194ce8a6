from __future__ import annotations

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor

from config import Settings
from core import MetricsHandler, ProbeHandler, ProberTask, TaskOrchestrator
from infrastructure import (
    MetricsServer,
    PingServer,
    ProberMetrics,
    start_metrics_server,
    start_ping_server,
)
from services import ProbeService, RemoteTarget, ResolutionError, ResolverService


class StartupError(RuntimeError):
    """Fatal error while starting the service (unresolvable host, unbindable port)."""


class Monitor:
    """
    Main orchestrator.

    Resolves the configured remote hosts, binds the inbound listeners and
    runs one ProberTask per resolved address. The metrics handle is built
    here and passed down to every component.
    """

    def __init__(
        self,
        settings: Settings,
        resolver: ResolverService | None = None,
        metrics: ProberMetrics | None = None,
    ) -> None:
        self.settings = settings
        self.stop_event = asyncio.Event()

        # Metrics sink
        self.metrics = metrics or ProberMetrics(
            namespace=settings.METRICS_NAMESPACE,
            availability_zone=settings.AVAILABILITY_ZONE,
        )
        self.metrics_handler = MetricsHandler(self.metrics)

        # Services
        self.resolver = resolver or ResolverService()
        self.targets: list[RemoteTarget] = []
        self.probe_services: list[ProbeService] = []
        self.executor: ThreadPoolExecutor | None = None

        # Infrastructure
        self.ping_server: PingServer | None = None
        self.metrics_server: MetricsServer | None = None

        self._orchestrator = TaskOrchestrator()

    @property
    def endpoints(self) -> list[str]:
        """Probe URLs for every resolved address of every target."""
        return [endpoint for target in self.targets for endpoint in target.endpoints]

    @property
    def probers(self) -> list[ProberTask]:
        return [task for task in self._orchestrator.tasks if isinstance(task, ProberTask)]

    def start(self) -> None:
        """Resolve targets, bind listeners and build one prober per endpoint.

        Raises:
            StartupError: a remote host did not resolve or a port could not be bound.
        """
        settings = self.settings

        try:
            self.targets = self.resolver.resolve_targets(
                settings.remote_hosts,
                port=settings.REMOTE_PORT,
                path=settings.REMOTE_PATH,
            )
        except ResolutionError as exc:
            raise StartupError(str(exc)) from exc

        try:
            self.ping_server = start_ping_server(
                self.metrics_handler,
                addr=settings.LISTEN_ADDR,
                port=settings.PORT,
                proxy_protocol=settings.ENABLE_PROXY_PROTOCOL,
                request_timeout=settings.REQUEST_TIMEOUT,
            )
        except OSError as exc:
            raise StartupError(f"could not listen to {settings.LISTEN_ADDR}:{settings.PORT}: {exc}") from exc

        if settings.ENABLE_METRICS:
            try:
                self.metrics_server = start_metrics_server(
                    self.metrics,
                    addr=settings.METRICS_ADDR,
                    port=settings.METRICS_PORT,
                    request_timeout=settings.REQUEST_TIMEOUT,
                )
            except OSError as exc:
                self.ping_server.stop(grace=0)
                self.ping_server = None
                raise StartupError(
                    f"could not listen to {settings.METRICS_ADDR}:{settings.METRICS_PORT}: {exc}"
                ) from exc

        endpoints = self.endpoints
        # One worker per prober so a slow endpoint never delays another
        self.executor = ThreadPoolExecutor(
            max_workers=max(settings.MAX_WORKER_THREADS, len(endpoints)),
            thread_name_prefix="prober_",
        )

        tasks = []
        for endpoint in endpoints:
            service = ProbeService(
                endpoint,
                timeout=settings.PROBE_TIMEOUT,
                keep_alive=settings.PROBE_KEEP_ALIVE,
                idle_timeout=settings.PROBE_IDLE_CONN_TIMEOUT,
            )
            self.probe_services.append(service)
            tasks.append(ProberTask(
                probe_handler=ProbeHandler(service),
                metrics_handler=self.metrics_handler,
                interval=settings.PROBE_INTERVAL,
                stop_event=self.stop_event,
                executor=self.executor,
            ))
        self._orchestrator.register_all(tasks)
        self.metrics_handler.set_probe_targets(len(tasks))

    def start_tasks(self) -> list[asyncio.Task]:
        """Start every registered prober as an asyncio task."""
        return self._orchestrator.start_all()

    async def shutdown(self) -> None:
        """Stop probers, drain the listener, release resources."""
        self.stop_event.set()
        await self._orchestrator.stop_all(timeout=self.settings.PROBE_INTERVAL)

        loop = asyncio.get_running_loop()
        if self.ping_server is not None:
            await loop.run_in_executor(None, self.ping_server.stop, self.settings.SHUTDOWN_TIMEOUT_SECONDS)
            self.ping_server = None
        if self.metrics_server is not None:
            await loop.run_in_executor(None, self.metrics_server.stop)
            self.metrics_server = None

        for service in self.probe_services:
            service.close()
        if self.executor is not None:
            self.executor.shutdown(wait=False, cancel_futures=True)
            self.executor = None
        self.metrics_handler.set_probe_targets(0)
        logging.info("Shutdown complete")
