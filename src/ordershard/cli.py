#!/usr/bin/env python3
"""ordershard CLI for running the walkthrough and managing its schema."""

import argparse
import logging

import questionary
from rich.console import Console
from rich.table import Table

from ordershard.config import config
from ordershard.db import create_datasource
from ordershard.errors import OrderShardError
from ordershard.logs import setup_logging
from ordershard.order import DemoService, OrderRepository
from ordershard.order.sampling import OffsetSampler, ReservoirSampler

console = Console()
logger = logging.getLogger(__name__)


def print_rows(label: str, rows) -> None:
    """Render order items as a table."""
    table = Table(title=label)
    table.add_column("order_item_id", justify="right")
    table.add_column("order_id", justify="right")
    table.add_column("user_id", justify="right")
    for row in rows:
        table.add_row(str(row.order_item_id), str(row.order_id), str(row.user_id))
    console.print(table)
    console.print(f"[dim]{len(rows)} rows[/]")


def build_repository(datasource, args) -> OrderRepository:
    sampler_cls = OffsetSampler if args.sampler == "offset" else ReservoirSampler
    return OrderRepository(
        datasource,
        transaction=args.transaction,
        sampler=sampler_cls(seed=args.seed),
    )


def run_demo(datasource, args) -> int:
    repo = build_repository(datasource, args)
    service = DemoService(
        repo,
        count=args.count,
        user_ids=args.user_ids,
        update_iterations=args.iterations,
    )
    console.print(
        f"[yellow]Running walkthrough with [bold]{repo.transaction.name}[/] transactions "
        f"for users {', '.join(map(str, service.user_ids))}.[/]"
    )
    report = service.run_demo(keep_schema=args.keep_schema, on_rows=print_rows)

    summary = Table(title="Writes")
    for column in ("operation", "committed", "rows_written", "skipped", "error"):
        summary.add_column(column)
    for result in report.writes:
        row = result.to_dict()
        summary.add_row(*(str(row[c]) if row[c] is not None else "" for c in row))
    console.print(summary)
    return 0


def create_schema(datasource, args) -> int:
    OrderRepository(datasource).create_schema()
    console.print("[green]Created t_order and t_order_item.[/]")
    return 0


def drop_schema(datasource, args) -> int:
    if not args.yes and not questionary.confirm(
        "Drop t_order_item and t_order with all their rows?"
    ).ask():
        console.print("[dim]Cancelled.[/]")
        return 1
    OrderRepository(datasource).drop_schema()
    console.print("[green]Dropped t_order_item and t_order.[/]")
    return 0


def query(datasource, args) -> int:
    repo = OrderRepository(datasource)
    if len(args.user_ids) == 1:
        rows = list(repo.query_by_equal(args.user_ids[0]))
        label = f"user_id = {args.user_ids[0]}"
    else:
        rows = list(repo.query_by_in(*args.user_ids))
        label = f"user_id IN {tuple(args.user_ids)}"
    print_rows(label, rows)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="ordershard CLI")
    parser.add_argument("--log-level", default=config.log_level, help="Logging level")
    subparsers = parser.add_subparsers(dest="command", required=True)

    demo = subparsers.add_parser("demo", help="Run the insert/rollback/update/query walkthrough")
    demo.add_argument(
        "--transaction",
        choices=["local", "xa", "2pc"],
        default=config.transaction_mode,
        help="Transaction strategy for writes",
    )
    demo.add_argument("--count", type=int, default=config.batch_count, help="Insert rounds")
    demo.add_argument(
        "--user-id",
        dest="user_ids",
        type=int,
        action="append",
        help="User id to insert for (repeatable)",
    )
    demo.add_argument(
        "--iterations", type=int, default=config.update_iterations, help="Random updates"
    )
    demo.add_argument(
        "--sampler",
        choices=["reservoir", "offset"],
        default="reservoir",
        help="How update targets are picked",
    )
    demo.add_argument("--seed", type=int, default=config.sample_seed, help="Sampler seed")
    demo.add_argument("--keep-schema", action="store_true", help="Do not drop tables at the end")
    demo.set_defaults(handler=run_demo)

    subparsers.add_parser("create-schema", help="Create t_order and t_order_item").set_defaults(
        handler=create_schema
    )

    drop = subparsers.add_parser("drop-schema", help="Drop t_order_item and t_order")
    drop.add_argument("--yes", action="store_true", help="Do not ask for confirmation")
    drop.set_defaults(handler=drop_schema)

    query_parser = subparsers.add_parser("query", help="List order items for users")
    query_parser.add_argument("user_ids", type=int, nargs="+", metavar="USER_ID")
    query_parser.set_defaults(handler=query)

    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command == "demo" and not args.user_ids:
        args.user_ids = list(config.user_ids)

    setup_logging(args.log_level.upper(), console=console)

    datasource = create_datasource(config)
    try:
        return args.handler(datasource, args)
    except OrderShardError as exc:
        console.print(f"[red]{exc}[/]")
        return 2
    finally:
        datasource.close()


if __name__ == "__main__":
    raise SystemExit(main())
