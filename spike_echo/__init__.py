"""
Command line entry point for the spike-echo service.
"""

import sys
import os


def configure_logging(level: str, log_file: str | None = None) -> None:
    """Configure root logging once for the whole process."""
    import logging

    kwargs = {}
    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        kwargs = {"filename": log_file, "encoding": "utf-8"}

    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format="%(asctime)s %(levelname)s %(message)s",
        **kwargs,
    )


def main(argv: list[str] | None = None) -> None:
    """CLI entry point for the spike-echo service."""
    import argparse
    import asyncio
    import logging

    # Parse CLI args BEFORE settings are loaded so env var overrides take effect
    parser = argparse.ArgumentParser(
        description="spike-echo - answers pings and probes remote peers",
        prog="spike-echo"
    )
    parser.add_argument(
        "--port",
        "-p",
        type=int,
        help="Inbound listener port (default: $PORT or 8000)",
    )
    parser.add_argument(
        "--remote",
        "-r",
        type=str,
        help="Comma-separated remote hosts to probe (default: $REMOTE_ADDR)",
    )
    parser.add_argument(
        "--zone",
        "-z",
        type=str,
        help="Availability zone label (default: $AVAILABILITY_ZONE)",
    )
    parser.add_argument(
        "--interval",
        "-i",
        type=float,
        help="Probe interval in seconds (default: 1)",
    )
    args = parser.parse_args(argv)

    if args.port is not None:
        os.environ["PORT"] = str(args.port)
    if args.remote is not None:
        os.environ["REMOTE_ADDR"] = args.remote
    if args.zone is not None:
        os.environ["AVAILABILITY_ZONE"] = args.zone
    if args.interval is not None:
        os.environ["PROBE_INTERVAL"] = str(args.interval)

    from pydantic import ValidationError
    from rich.console import Console

    from config import get_settings
    from main import run_async_main
    from monitor import StartupError

    console = Console(stderr=True)

    try:
        settings = get_settings()
    except ValidationError as exc:
        console.print(f"[bold red]Invalid configuration:[/bold red]\n{exc}")
        sys.exit(1)

    configure_logging(settings.LOG_LEVEL, settings.LOG_FILE)

    try:
        asyncio.run(run_async_main(settings))
    except StartupError as exc:
        logging.critical(f"Fatal: {exc}")
        console.print(f"[bold red]Fatal:[/bold red] {exc}")
        sys.exit(1)
