"""Per-endpoint prober background task."""

from __future__ import annotations

import logging

from core.background_task import BackgroundTask
from core.metrics_handler import MetricsHandler
from core.probe_handler import ProbeHandler


class ProberTask(BackgroundTask):
    """Ping one remote endpoint every tick and record the outcome."""

    def __init__(
        self,
        *,
        probe_handler: ProbeHandler,
        metrics_handler: MetricsHandler,
        interval: float = 1.0,
        **kw,
    ) -> None:
        super().__init__(
            name=f"Prober[{probe_handler.endpoint}]",
            interval=interval,
            **kw,
        )
        self.probe_handler = probe_handler
        self.metrics_handler = metrics_handler

    @property
    def endpoint(self) -> str:
        return self.probe_handler.endpoint

    async def setup(self) -> None:
        logging.info(f"Starting client for endpoint: {self.endpoint}")

    async def execute(self) -> None:
        result = await self.run_blocking(self.probe_handler.execute)
        self.metrics_handler.record_probe(result)
        if not result.success:
            logging.warning(
                f"Received err: {result.error}, after: {result.latency_ms:.1f}ms ({self.endpoint})"
            )
