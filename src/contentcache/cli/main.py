"""
CLI for the content cache.

Commands:
    contentcache stats - Show entry counts, size and hit rates
    contentcache health - Run a health check
    contentcache optimize - Run a maintenance sweep and show performance metrics
    contentcache invalidate [PATTERN] - Delete matching entries or apply invalidation rules
    contentcache maintain - Check health, maintain if needed, write a JSON report
    contentcache get KEY - Print a cached value
    contentcache config - Show current configuration
    contentcache version - Print version
"""

from __future__ import annotations

import asyncio
import dataclasses
import re
import time
from pathlib import Path
from typing import Annotated, Any, Optional

import orjson
import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from contentcache import __version__
from contentcache.cache.integration import CacheMonitor
from contentcache.cache.manager import CacheManager
from contentcache.config import Settings, clear_settings_cache, get_settings
from contentcache.exceptions import CacheError
from contentcache.logging import setup_logging
from contentcache.types import CacheHealthCheck, HealthStatus, IssueSeverity, utc_now

app = typer.Typer(
    name="contentcache",
    help="Content Cache - persistent JSON cache for fetched site content",
    no_args_is_help=True,
)

console = Console()
error_console = Console(stderr=True)

MAINTENANCE_REPORT_NAME = ".cache-maintenance-report.json"

CacheDirOption = Annotated[
    Optional[Path],
    typer.Option("--cache-dir", "-d", help="Cache directory (defaults to CACHE_DIR)"),
]

STATUS_STYLES = {
    HealthStatus.HEALTHY: "green",
    HealthStatus.WARNING: "yellow",
    HealthStatus.CRITICAL: "red",
}


def _get_settings_safe() -> Settings | None:
    """Get settings, returning None if configuration is invalid."""
    try:
        clear_settings_cache()
        return get_settings()
    except ValueError:
        return None


def _require_settings() -> Settings:
    settings = _get_settings_safe()
    if settings is None:
        error_console.print(
            "[red]Error:[/red] Configuration is invalid. "
            "Run 'contentcache config' to see what's wrong."
        )
        raise typer.Exit(1)
    setup_logging(settings.LOG_LEVEL, settings.LOG_FILE)
    return settings


def _open_manager(settings: Settings, cache_dir: Path | None) -> CacheManager:
    """Build a manager for a one-shot command; the timer is never started."""
    return CacheManager(
        cache_dir=cache_dir or settings.CACHE_DIR,
        config=dataclasses.replace(settings.cache_config(), auto_cleanup=False),
        incremental_config=settings.incremental_config(),
    )


def _format_bytes(size: int) -> str:
    value = float(size)
    for unit in ("B", "KB", "MB", "GB"):
        if value < 1024 or unit == "GB":
            return f"{value:.0f} {unit}" if unit == "B" else f"{value:.1f} {unit}"
        value /= 1024
    return f"{size} B"


def _print_health(health: CacheHealthCheck) -> None:
    style = STATUS_STYLES[health.status]
    console.print(f"[bold]Status:[/bold] [{style}]{health.status.value}[/{style}]")

    if health.issues:
        table = Table(title="Issues", show_header=True)
        table.add_column("Type", style="cyan")
        table.add_column("Severity")
        table.add_column("Description")
        table.add_column("Keys", style="dim")
        for issue in health.issues:
            severity_style = (
                "red"
                if issue.severity in (IssueSeverity.HIGH, IssueSeverity.CRITICAL)
                else "yellow"
            )
            table.add_row(
                issue.type.value,
                f"[{severity_style}]{issue.severity.value}[/{severity_style}]",
                issue.description,
                ", ".join(issue.affected_keys[:5])
                + (" ..." if len(issue.affected_keys) > 5 else ""),
            )
        console.print(table)

    for recommendation in health.recommendations:
        console.print(f"[yellow]Recommendation:[/yellow] {recommendation}")


@app.command()
def stats(cache_dir: CacheDirOption = None) -> None:
    """Show cache statistics.

    Hit and miss rates are the values persisted by the last process that
    closed the cache.
    """
    settings = _require_settings()

    async def _run() -> tuple[dict[str, Any], int, int]:
        async with _open_manager(settings, cache_dir) as cache:
            keys = await cache.store.keys()
            size = await cache.store.total_size()
            return cache.get_stats().to_dict(), len(keys), size

    try:
        snapshot, entries, size = asyncio.run(_run())
    except CacheError as e:
        error_console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    table = Table(title="Cache Statistics", show_header=True)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Entries", str(entries))
    table.add_row("Total size", _format_bytes(size))
    table.add_row("Hit rate", f"{snapshot['hitRate']:.1%}")
    table.add_row("Miss rate", f"{snapshot['missRate']:.1%}")
    table.add_row("Expired entries", str(snapshot["expiredEntries"]))
    table.add_row("Last cleanup", snapshot["lastCleanup"])
    console.print(table)


@app.command()
def health(
    cache_dir: CacheDirOption = None,
    as_json: Annotated[
        bool,
        typer.Option("--json", help="Print the health check as JSON"),
    ] = False,
) -> None:
    """Check cache health. Exits with status 1 when the cache is critical."""
    settings = _require_settings()

    async def _run() -> CacheHealthCheck:
        async with _open_manager(settings, cache_dir) as cache:
            return await cache.get_health_status()

    try:
        result = asyncio.run(_run())
    except CacheError as e:
        error_console.print(f"[red]Health check failed:[/red] {e}")
        raise typer.Exit(1)

    if as_json:
        console.print_json(orjson.dumps(result.to_dict()).decode())
    else:
        _print_health(result)

    if result.status == HealthStatus.CRITICAL:
        raise typer.Exit(1)


@app.command()
def optimize(cache_dir: CacheDirOption = None) -> None:
    """Run one maintenance sweep: compress, expire and defragment entries."""
    settings = _require_settings()

    async def _run() -> dict[str, Any]:
        async with _open_manager(settings, cache_dir) as cache:
            metrics = await cache.optimize_cache()
            return metrics.to_dict()

    try:
        metrics = asyncio.run(_run())
    except CacheError as e:
        error_console.print(f"[red]Optimization failed:[/red] {e}")
        raise typer.Exit(1)

    table = Table(title="Performance Metrics", show_header=True)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Average read time", f"{metrics['averageReadTimeMs']:.2f} ms")
    table.add_row("Average write time", f"{metrics['averageWriteTimeMs']:.2f} ms")
    table.add_row("Compression ratio", f"{metrics['compressionRatio']:.1%}")
    table.add_row("Memory usage", _format_bytes(metrics["memoryUsage"]))
    table.add_row("Disk usage", _format_bytes(metrics["diskUsage"]))
    table.add_row("Network savings", _format_bytes(metrics["networkSavings"]))
    console.print(table)


@app.command()
def invalidate(
    pattern: Annotated[
        Optional[str],
        typer.Argument(help="Substring (or regex with --regex) of keys to delete"),
    ] = None,
    regex: Annotated[
        bool,
        typer.Option("--regex", "-r", help="Treat PATTERN as a regular expression"),
    ] = False,
    cache_dir: CacheDirOption = None,
) -> None:
    """Invalidate cache entries.

    With PATTERN, every matching key is deleted. Without it, the default
    invalidation rules are applied.
    """
    settings = _require_settings()

    matcher: str | re.Pattern[str] | None = pattern
    if pattern is not None and regex:
        try:
            matcher = re.compile(pattern)
        except re.error as e:
            raise typer.BadParameter(f"Invalid regular expression: {e}") from e

    async def _run() -> tuple[int, list[str]]:
        async with _open_manager(settings, cache_dir) as cache:
            deleted = await cache.invalidate_cache(matcher)
            return deleted, cache.get_refresh_requests()

    try:
        deleted, refresh = asyncio.run(_run())
    except CacheError as e:
        error_console.print(f"[red]Invalidation failed:[/red] {e}")
        raise typer.Exit(1)

    console.print(f"[bold]Deleted:[/bold] {deleted} entries")
    if refresh:
        console.print(f"[bold]Flagged for refresh:[/bold] {', '.join(refresh)}")


@app.command()
def maintain(
    cache_dir: CacheDirOption = None,
    report: Annotated[
        Optional[Path],
        typer.Option("--report", help="Report path (defaults to a hidden file in the cache directory)"),
    ] = None,
    force: Annotated[
        bool,
        typer.Option("--force", "-f", help="Maintain even if the cache looks healthy"),
    ] = False,
) -> None:
    """Check health, run maintenance when needed and write a JSON report."""
    settings = _require_settings()
    root = cache_dir or settings.CACHE_DIR
    report_path = report or root / MAINTENANCE_REPORT_NAME

    started = time.perf_counter()
    operations: list[str] = []
    warnings: list[str] = []
    errors: list[str] = []
    details: dict[str, Any] = {}

    async def _run() -> None:
        async with _open_manager(settings, root) as cache:
            monitor = CacheMonitor(cache)

            operations.append("Health check")
            initial = await monitor.get_status()
            details["initialHealth"] = initial.health.to_dict()
            details["initialStats"] = initial.stats.to_dict()
            for issue in initial.health.issues:
                if issue.severity in (IssueSeverity.HIGH, IssueSeverity.CRITICAL):
                    warnings.append(f"{issue.type.value}: {issue.description}")

            needed = force or await monitor.needs_maintenance()
            details["needsMaintenance"] = needed
            if needed:
                operations.append("Cache maintenance")
                result = await monitor.perform_maintenance()
                details["performance"] = result.metrics.to_dict()
            else:
                operations.append("Health check only")

            final = await monitor.get_status()
            details["finalHealth"] = final.health.to_dict()
            details["finalStats"] = final.stats.to_dict()

    try:
        asyncio.run(_run())
    except CacheError as e:
        errors.append(str(e))

    payload = {
        "success": not errors,
        "durationMs": round((time.perf_counter() - started) * 1000, 3),
        "operations": operations,
        "errors": errors,
        "warnings": warnings,
        "metrics": details,
        "timestamp": utc_now().isoformat(),
    }
    report_path.parent.mkdir(parents=True, exist_ok=True)
    report_path.write_bytes(orjson.dumps(payload, option=orjson.OPT_INDENT_2))

    border = "red" if errors else "green"
    console.print(
        Panel(
            f"[bold]Operations:[/bold] {', '.join(operations)}\n"
            f"[bold]Warnings:[/bold] {len(warnings)}\n"
            f"[bold]Errors:[/bold] {len(errors)}\n"
            f"[bold]Report:[/bold] {report_path}",
            title="[bold cyan]Cache Maintenance[/bold cyan]",
            border_style=border,
        )
    )
    for warning in warnings:
        console.print(f"[yellow]Warning:[/yellow] {warning}")
    for error in errors:
        error_console.print(f"[red]Error:[/red] {error}")

    if errors:
        raise typer.Exit(1)


@app.command()
def get(
    key: Annotated[str, typer.Argument(help="Cache key (e.g., github-repositories)")],
    cache_dir: CacheDirOption = None,
) -> None:
    """Print a cached value as JSON. Exits with status 1 on a miss."""
    settings = _require_settings()

    async def _run() -> Any:
        async with _open_manager(settings, cache_dir) as cache:
            value = await cache.get(key)
            reason = cache.get_recent_operations(1)[0].error
            return value, reason

    value, reason = asyncio.run(_run())
    if value is None:
        error_console.print(f"[yellow]Miss:[/yellow] {key} ({reason or 'no value'})")
        raise typer.Exit(1)
    console.print_json(orjson.dumps(value).decode())


@app.command()
def config() -> None:
    """Show current configuration."""
    console.print()
    console.print("[bold]Content Cache Configuration[/bold]")
    console.print()

    settings = _get_settings_safe()

    if settings is None:
        error_console.print("[red]Configuration is invalid.[/red]")
        error_console.print()
        error_console.print("Check these environment variables:")
        error_console.print("  - CACHE_COMPRESSION_THRESHOLD_BYTES (must be below CACHE_MAX_SIZE_BYTES)")
        error_console.print("  - CACHE_CLEANUP_INTERVAL_SECONDS (at least 1)")
        error_console.print("  - CACHE_CHECKSUM_ALGORITHM (md5 or sha256)")
        raise typer.Exit(1)

    table = Table(title="Settings", show_header=True)
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    for name, value in settings.display().items():
        display_value = str(value) if value is not None else "[dim]not set[/dim]"
        table.add_row(name, display_value)

    console.print(table)
    console.print()


@app.command()
def version() -> None:
    """Print the version number."""
    console.print(f"content-cache version {__version__}")


def main() -> None:
    """Entry point for the CLI."""
    app()
