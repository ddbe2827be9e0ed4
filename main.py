#!/usr/bin/env python3
"""
Rainy Day Client - Command Line Entry Point

Inspect and exercise the client resilience layer from a terminal.

Usage:
    python main.py config                       # Show active configuration
    python main.py cache-stats                  # Entry counts (fresh / stale)
    python main.py cache-list                   # Every cached key with its age
    python main.py cache-clear --prefix PREFIX  # Drop cached keys
    python main.py plan [--force]               # Today's plan through the cache
    python main.py notifications                # Unread notifications
    python main.py --verbose ...                # Show debug logging

Version: 1.0
"""

import argparse
import asyncio
import sys
from typing import List, Optional

from rich import box
from rich.console import Console
from rich.table import Table

from config import Config
from connectors.backend_client import BackendClient
from core.cache import CACHE_PREFIX, Cache, CacheEntry, now_ms
from core.kv_store import JsonFileKeyValueStore
from core.types import BackendError
from error_handler import ErrorClassifier
from features.notifications import NotificationWatcher
from features.plan import PlanService
from logger import Logger

console = Console()


def _open_cache(path: Optional[str] = None) -> Cache:
    store = JsonFileKeyValueStore(path or Config.CACHE_FILE)
    return Cache(store)


def _table(*columns: str) -> Table:
    table = Table(
        show_header=True,
        header_style="bold cyan",
        border_style="dim",
        box=box.ROUNDED
    )
    for column in columns:
        table.add_column(column)
    return table


def _format_age(age_ms: float) -> str:
    seconds = int(age_ms / 1000)
    if seconds < 60:
        return f"{seconds}s"
    if seconds < 3600:
        return f"{seconds // 60}m"
    return f"{seconds // 3600}h {(seconds % 3600) // 60}m"


def show_config(args) -> int:
    table = _table("Setting", "Value")
    for key, value in Config.get_config().items():
        table.add_row(key, str(value))
    console.print(table)
    return 0


def cache_stats(args) -> int:
    cache = _open_cache(args.cache_file)
    stats = cache.stats(args.prefix)
    table = _table("Entries", "Fresh", "Stale")
    table.add_row(str(stats['entries']), str(stats['fresh']), str(stats['stale']))
    console.print(table)
    return 0


def cache_list(args) -> int:
    cache = _open_cache(args.cache_file)
    now = now_ms()
    table = _table("Key", "Age", "TTL", "State")
    for key in sorted(cache.store.list_keys(args.prefix)):
        raw = cache.store.get_item(key)
        if raw is None:
            continue
        try:
            entry = CacheEntry.from_json(raw)
        except (ValueError, KeyError, TypeError):
            table.add_row(key, "-", "-", "[red]corrupt[/red]")
            continue
        state = "[green]fresh[/green]" if entry.is_fresh(now) else "[yellow]stale[/yellow]"
        table.add_row(key, _format_age(now - entry.stored_at), _format_age(entry.ttl_ms), state)
    console.print(table)
    return 0


def cache_clear(args) -> int:
    cache = _open_cache(args.cache_file)
    removed = cache.clear_by_prefix(args.prefix)
    console.print(f"[bold green]✓[/bold green] Removed {removed} cached entr{'y' if removed == 1 else 'ies'}")
    return 0


async def _show_plan(args) -> int:
    cache = _open_cache(args.cache_file)
    async with BackendClient(token=args.token) as backend:
        service = PlanService(backend, cache)
        try:
            read = await service.get_today_plan(force=args.force)
        except BackendError as e:
            classification = ErrorClassifier.classify_status(e.status or 0, e.message)
            console.print(f"[red]✗ {classification.friendly_message('fetch_plan')}[/red]")
            return 1

    if read.data is None:
        console.print("[dim]No plan generated for today yet.[/dim]")
        return 0

    plan = read.data
    if read.is_stale:
        console.print("[yellow]Offline: showing a cached plan[/yellow]")
    elif read.from_cache:
        console.print("[dim](from cache)[/dim]")
    if plan.get('greeting'):
        console.print(f"[bold]{plan['greeting']}[/bold]")
    if plan.get('summary'):
        console.print(plan['summary'])

    table = _table("Priority", "Type", "Title")
    for suggestion in sorted(plan.get('suggestions', []), key=lambda s: s.get('priority', 0)):
        table.add_row(str(suggestion.get('priority', '')), suggestion.get('type', ''), suggestion.get('title', ''))
    console.print(table)
    return 0


async def _show_notifications(args) -> int:
    cache = _open_cache(args.cache_file)
    async with BackendClient(token=args.token) as backend:
        watcher = NotificationWatcher(backend, cache)
        await watcher.refresh()

    if watcher.error:
        console.print(f"[red]✗ {watcher.error}[/red]")
        return 1

    console.print(f"[bold cyan]{watcher.unread_count}[/bold cyan] unread")
    table = _table("Priority", "Type", "Title")
    for notification in watcher.notifications:
        table.add_row(notification.priority, notification.type, notification.title)
    console.print(table)
    return 0


def show_plan(args) -> int:
    return asyncio.run(_show_plan(args))


def show_notifications(args) -> int:
    return asyncio.run(_show_notifications(args))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="rainyday", description="Rainy Day client tools")
    parser.add_argument("-v", "--verbose", action="store_true", help="Show debug information")
    parser.add_argument("--cache-file", default=None, help=f"Cache file (default: {Config.CACHE_FILE})")
    subparsers = parser.add_subparsers(dest="command", required=True)

    sub = subparsers.add_parser("config", help="Show active configuration")
    sub.set_defaults(func=show_config)

    sub = subparsers.add_parser("cache-stats", help="Count cached entries")
    sub.add_argument("--prefix", default=CACHE_PREFIX)
    sub.set_defaults(func=cache_stats)

    sub = subparsers.add_parser("cache-list", help="List cached keys")
    sub.add_argument("--prefix", default=CACHE_PREFIX)
    sub.set_defaults(func=cache_list)

    sub = subparsers.add_parser("cache-clear", help="Remove cached keys by prefix")
    sub.add_argument("--prefix", default=CACHE_PREFIX)
    sub.set_defaults(func=cache_clear)

    token = Config.BACKEND_TOKEN

    sub = subparsers.add_parser("plan", help="Show today's plan")
    sub.add_argument("--force", action="store_true", help="Skip the fresh cache")
    sub.add_argument("--token", default=token)
    sub.set_defaults(func=show_plan)

    sub = subparsers.add_parser("notifications", help="Show unread notifications")
    sub.add_argument("--token", default=token)
    sub.set_defaults(func=show_notifications)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    Logger.use_rich()
    if args.verbose or Config.VERBOSE:
        Logger.set_level("DEBUG")
    try:
        return args.func(args)
    except KeyboardInterrupt:
        console.print("\n[dim]Interrupted[/dim]")
        return 130


if __name__ == "__main__":
    sys.exit(main())
