from __future__ import annotations

import asyncio
import logging
import signal

from rich.console import Console

from config import VERSION, Settings
from monitor import Monitor


class ProberApp:
    def __init__(self, settings: Settings, console: Console | None = None) -> None:
        self.settings = settings
        self.console = console or Console(stderr=True)
        self.monitor: Monitor = Monitor(settings)

    def _request_stop(self, sig: signal.Signals) -> None:
        if self.monitor.stop_event.is_set():
            return
        self.console.print("[bold red]Stopping[/bold red]")
        logging.info(f"Received {sig.name}, shutting down")
        self.monitor.stop_event.set()

    def _install_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self._request_stop, sig)
            except (NotImplementedError, RuntimeError):
                # Windows event loops have no add_signal_handler
                signal.signal(sig, lambda signum, frame: loop.call_soon_threadsafe(
                    self._request_stop, signal.Signals(signum)
                ))

    async def run(self) -> None:
        """Start the service and block until a stop signal arrives.

        Raises:
            StartupError: fatal startup failure, nothing is left running.
        """
        self._install_signal_handlers()

        zone = self.settings.AVAILABILITY_ZONE or "-"
        self.console.print(
            f"[bold green]>>> spike-echo {VERSION} on port {self.settings.PORT} (zone {zone}) <<<[/bold green]"
        )

        self.monitor.start()
        self.monitor.start_tasks()
        self.console.print(
            f"[dim]Probing {len(self.monitor.endpoints)} endpoints every {self.settings.PROBE_INTERVAL}s[/dim]"
        )

        try:
            await self.monitor.stop_event.wait()
        finally:
            await self.monitor.shutdown()
            self.console.print("[dim]All probers stopped.[/dim]")


async def run_async_main(settings: Settings) -> None:
    app = ProberApp(settings)
    await app.run()


__all__ = ["ProberApp", "run_async_main"]
