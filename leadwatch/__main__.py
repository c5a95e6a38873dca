"""CLI entry point for the lead-trader watcher.

Usage::

    # One collection cycle, result printed as JSON
    python -m leadwatch collect

    # Scheduler loop (one cycle every 5 minutes)
    python -m leadwatch run

    # Browse and manage the watch list
    python -m leadwatch top --limit 30
    python -m leadwatch watch 0123ABCD
    python -m leadwatch unwatch 0123ABCD

    # Downsampled history
    python -m leadwatch series 0123ABCD --resolution 1h

Environment variables (see ``leadwatch.config.Settings``):
    LEADWATCH_DB_PATH         - SQLite database path
    LEADWATCH_PUSHPLUS_TOKEN  - PushPlus token; alerts are only logged without it
    LEADWATCH_ENABLE_ALERTING - "true" (default) or "false"
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from rich.console import Console
from rich.table import Table

from leadwatch.config import DEFAULT_RESOLUTION, settings
from leadwatch.datastore import DataStore
from leadwatch.errors import LeadWatchError
from leadwatch.main import build_client, build_collector, configure_logging
from leadwatch.scheduler import run_scheduler
from leadwatch.series import RESOLUTIONS, SeriesResolver
from leadwatch.watchlist import top_traders_with_watched, unwatch_trader, watch_trader

logger = logging.getLogger(__name__)
console = Console()


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="leadwatch",
        description="Watch OKX lead traders and alert on asset swings.",
    )
    parser.add_argument(
        "--db-path",
        default=settings.DB_PATH,
        help=f"SQLite database path (default: {settings.DB_PATH})",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("collect", help="Run one collection cycle")
    sub.add_parser("run", help="Run the collection scheduler loop")

    top = sub.add_parser("top", help="List top-ranked lead traders")
    top.add_argument("--limit", type=int, default=settings.TOP_TRADERS_LIMIT)

    watch = sub.add_parser("watch", help="Add a trader to the watch list")
    watch.add_argument("inst_id")

    unwatch = sub.add_parser("unwatch", help="Remove a trader from the watch list")
    unwatch.add_argument("inst_id")

    series = sub.add_parser("series", help="Show a trader's downsampled history")
    series.add_argument("inst_id")
    series.add_argument(
        "--resolution",
        default=DEFAULT_RESOLUTION,
        choices=list(RESOLUTIONS),
    )
    return parser.parse_args(argv)


def _print_top(rows) -> None:
    table = Table(title="OKX lead traders")
    table.add_column("#", justify="right")
    table.add_column("instId")
    table.add_column("Nickname")
    table.add_column("AUM", justify="right")
    table.add_column("Copiers", justify="right")
    table.add_column("Watched")
    for row, watched in rows:
        table.add_row(
            str(row.position),
            row.inst_id,
            row.nick_name,
            f"{row.aum:,.0f}",
            f"{row.copy_trader_num}/{row.max_copy_trader_num}",
            "yes" if watched else "",
        )
    console.print(table)


def _print_series(result) -> None:
    table = Table(title=f"{result.info.nick_name} ({result.inst_id})")
    table.add_column("Timestamp", justify="right")
    table.add_column("AUM", justify="right")
    table.add_column("Trader asset", justify="right")
    table.add_column("Copier PnL", justify="right")
    table.add_column("Win ratio", justify="right")
    for p in result.series:
        table.add_row(
            str(p.timestamp),
            f"{p.aum:,.0f}",
            f"{p.invest_amt:,.0f}",
            f"{p.cur_copy_trader_pnl:,.2f}",
            f"{p.win_ratio:.2%}",
        )
    console.print(table)


async def run(args: argparse.Namespace) -> None:
    datastore = DataStore(args.db_path)
    client = build_client()
    try:
        if args.command == "collect":
            result = await build_collector(client, datastore).collect_once()
            console.print_json(result.model_dump_json(by_alias=True))
        elif args.command == "run":
            await run_scheduler(
                build_collector(client, datastore), settings.COLLECT_INTERVAL_SECONDS
            )
        elif args.command == "top":
            _print_top(await top_traders_with_watched(client, datastore, args.limit))
        elif args.command == "watch":
            await watch_trader(client, datastore, args.inst_id)
            console.print(f"Watching {args.inst_id}")
        elif args.command == "unwatch":
            removed = unwatch_trader(datastore, args.inst_id)
            console.print(f"Unwatched {args.inst_id}" if removed else f"{args.inst_id} was not watched")
        elif args.command == "series":
            _print_series(SeriesResolver(datastore).resolve(args.inst_id, args.resolution))
    finally:
        await client.close()
        datastore.close()


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    configure_logging()
    try:
        asyncio.run(run(args))
    except KeyboardInterrupt:
        logger.info("Interrupted")
    except LeadWatchError as e:
        console.print(f"[red]Error:[/] {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
