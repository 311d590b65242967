"""
Uptime Core - CLI Entry Point.

Provides:
- uptime-core run: start the engine from a config file, optionally serving the status API
- uptime-core check: probe every configured check once and print the outcome
- uptime-core validate: load and validate a config file
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import signal
import sys
from pathlib import Path
from typing import List, Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from uptime_core.config import UptimeSettings, load_config
from uptime_core.core.error_handling import ConfigurationError

console = Console()

_STATUS_STYLES = {
    "operational": "green",
    "maintenance": "blue",
    "degraded": "yellow",
    "partial_outage": "dark_orange",
    "major_outage": "red",
}


def setup_logging(verbose: bool = False, level: str = "INFO") -> None:
    """Configure rich logging; ``--verbose`` lowers uptime_core to DEBUG."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True, show_path=False)],
    )
    logging.getLogger("uptime_core").setLevel(logging.DEBUG if verbose else level.upper())


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="uptime-core",
        description="Uptime Core - Service Health & Incident-Management Engine",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    parser.add_argument(
        "--version",
        action="store_true",
        help="Show version and exit",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    run_parser = subparsers.add_parser("run", help="Run the monitoring engine")
    run_parser.add_argument("-c", "--config", type=Path, help="YAML config file")
    run_parser.add_argument(
        "--serve",
        action="store_true",
        help="Serve the status API with uvicorn",
    )
    run_parser.add_argument("--host", default="127.0.0.1", help="API bind host")
    run_parser.add_argument("--port", type=int, default=8088, help="API bind port")
    run_parser.add_argument(
        "--duration",
        type=float,
        help="Stop after this many seconds (default: run until interrupted)",
    )

    check_parser = subparsers.add_parser("check", help="Probe every configured check once")
    check_parser.add_argument("-c", "--config", type=Path, help="YAML config file")
    check_parser.add_argument("--json", action="store_true", help="Print results as JSON")

    validate_parser = subparsers.add_parser("validate", help="Validate a config file")
    validate_parser.add_argument("config", type=Path, help="YAML config file")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the uptime-core CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.version:
        from uptime_core import __version__
        print(f"Uptime Core v{__version__}")
        return 0

    if args.command is None:
        parser.print_help()
        return 0

    try:
        settings = load_config(args.config)
    except (ConfigurationError, FileNotFoundError) as e:
        console.print(f"[bold red]Invalid configuration:[/bold red] {e}")
        return 2

    setup_logging(args.verbose, settings.monitor.log_level)

    if args.command == "validate":
        return _show_settings(settings)
    elif args.command == "check":
        return asyncio.run(_run_check(settings, as_json=args.json))
    elif args.command == "run":
        try:
            return asyncio.run(_run_engine(settings, args))
        except KeyboardInterrupt:
            return 0

    return 0


def _show_settings(settings: UptimeSettings) -> int:
    """Print what a valid config file contains."""
    monitor = settings.monitor
    console.print(f"[bold green]Configuration OK[/bold green] (base URL {monitor.base_url})")

    table = Table(title="Checks")
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Target")
    table.add_column("Interval", justify="right")
    table.add_column("Timeout", justify="right")
    table.add_column("Retries", justify="right")
    table.add_column("Critical")

    for check in settings.checks:
        table.add_row(
            check.id,
            check.name,
            f"{check.method} {check.url}",
            f"{check.interval:g}s",
            f"{check.timeout:g}s",
            str(check.retries),
            "yes" if check.critical else "",
        )
    console.print(table)

    if settings.maintenance:
        for window in settings.maintenance:
            console.print(
                f"  Maintenance [cyan]{window.name}[/cyan]: "
                f"{', '.join(window.affected_services) or 'no services'}"
            )
    return 0


async def _run_check(settings: UptimeSettings, as_json: bool = False) -> int:
    """Probe each check once, outside the scheduler."""
    from uptime_core.monitoring.prober import HttpProber

    if not settings.checks:
        console.print("[yellow]No checks configured[/yellow]")
        return 0

    prober = HttpProber(
        base_url=settings.monitor.base_url,
        backoff_base=settings.monitor.backoff_base_seconds,
    )
    try:
        results = await asyncio.gather(
            *(prober.probe(check) for check in settings.checks if check.enabled)
        )
    finally:
        await prober.close()

    if as_json:
        print(json.dumps([r.to_dict() for r in results], indent=2))
        return 0 if all(r.success for r in results) else 1

    table = Table(title="Uptime Check")
    table.add_column("Check", style="cyan")
    table.add_column("Result")
    table.add_column("Status", justify="right")
    table.add_column("Latency", justify="right")
    table.add_column("Error")

    names = {check.id: check.name for check in settings.checks}
    for result in results:
        table.add_row(
            names.get(result.check_id, result.check_id),
            "[green]UP[/green]" if result.success else "[red]DOWN[/red]",
            str(result.status_code or "-"),
            f"{result.response_time:.0f} ms",
            result.error or "",
        )
    console.print(table)
    return 0 if all(r.success for r in results) else 1


async def _run_engine(settings: UptimeSettings, args: argparse.Namespace) -> int:
    """Run the engine until interrupted or ``--duration`` elapses."""
    from uptime_core.monitoring.engine import UptimeEngine

    engine = UptimeEngine.from_settings(settings)

    def on_created(incident) -> None:
        console.print(f"[bold red]Incident opened:[/bold red] {incident.title} ({incident.severity.value})")

    def on_resolved(incident) -> None:
        console.print(f"[bold green]Incident resolved:[/bold green] {incident.title}")

    engine.subscribe("incident-created", on_created)
    engine.subscribe("incident-resolved", on_resolved)

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Windows event loops
            pass

    console.print(
        f"[bold blue]Uptime Core[/bold blue] monitoring {len(engine.get_all_checks())} checks "
        f"against {settings.monitor.base_url}"
    )
    await engine.start()

    server_task = None
    if args.serve:
        import uvicorn

        from uptime_core.api.status_routes import create_app

        server = uvicorn.Server(uvicorn.Config(
            create_app(engine),
            host=args.host,
            port=args.port,
            log_level="warning",
        ))
        server_task = asyncio.create_task(server.serve(), name="uptime_api")
        console.print(f"Status API on http://{args.host}:{args.port}/api/monitoring/status")

    stop_waiter = asyncio.create_task(stop_event.wait(), name="uptime_stop")
    waiters = {stop_waiter} | ({server_task} if server_task else set())
    try:
        # Either a signal, the API server exiting on its own, or the duration
        await asyncio.wait(waiters, timeout=args.duration, return_when=asyncio.FIRST_COMPLETED)
    finally:
        stop_waiter.cancel()
        if server_task is not None:
            server.should_exit = True
            await asyncio.gather(server_task, return_exceptions=True)
        await engine.stop()

    snapshot = engine.status_page()
    style = _STATUS_STYLES.get(snapshot.overall_status.value, "white")
    console.print(f"Final status: [{style}]{snapshot.overall_status.value}[/{style}]")
    return 0


if __name__ == "__main__":
    sys.exit(main())
