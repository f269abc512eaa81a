"""Command-line interface for click-tally."""

import asyncio
import json
import sys
from collections.abc import Awaitable, Callable
from dataclasses import asdict
from typing import Any, TypeVar

import click

from .config import ENDPOINT_ENV_VAR, REGION_ENV_VAR, TABLE_ENV_VAR, Settings
from .exceptions import ClickTallyError
from .store import DynamoStore
from .tracker import ClickTracker

T = TypeVar("T")


def _store_options(func: Callable[..., Any]) -> Callable[..., Any]:
    """Attach the table connection options shared by every command."""
    func = click.option(
        "--endpoint-url",
        envvar=ENDPOINT_ENV_VAR,
        help="DynamoDB endpoint URL (e.g., http://localhost:8100 for DynamoDB Local)",
    )(func)
    func = click.option(
        "--region",
        envvar=REGION_ENV_VAR,
        help="AWS region (default: use boto3 defaults)",
    )(func)
    func = click.option(
        "--table-name",
        envvar=TABLE_ENV_VAR,
        help="DynamoDB table name (default: qit-db-local)",
    )(func)
    return func


def _store(table_name: str | None, region: str | None, endpoint_url: str | None) -> DynamoStore:
    try:
        settings = Settings.from_env(
            table_name=table_name,
            region=region,
            endpoint_url=endpoint_url,
        )
    except ClickTallyError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    return settings.create_store()


def _run(store: DynamoStore, operation: Callable[[ClickTracker], Awaitable[T]]) -> T:
    """Run one tracker operation, reporting library errors on stderr."""

    async def _main() -> T:
        async with ClickTracker(store) as tracker:
            return await operation(tracker)

    try:
        return asyncio.run(_main())
    except ClickTallyError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


def _echo_json(data: Any) -> None:
    click.echo(json.dumps(data, indent=2))


@click.group()
@click.version_option(package_name="click-tally")
def cli() -> None:
    """click-tally click counter CLI."""
    pass


@cli.command("create-table")
@_store_options
def create_table(table_name: str | None, region: str | None, endpoint_url: str | None) -> None:
    """Create the DynamoDB table with its DateIndex."""
    store = _store(table_name, region, endpoint_url)

    async def _create() -> None:
        async with store:
            await store.create_table()

    try:
        asyncio.run(_create())
    except ClickTallyError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    click.echo(f"Table ready: {store.table_name}")


@cli.command("delete-table")
@_store_options
@click.option("--yes", is_flag=True, help="Skip confirmation prompt")
def delete_table(
    table_name: str | None, region: str | None, endpoint_url: str | None, yes: bool
) -> None:
    """Delete the DynamoDB table and every click in it."""
    store = _store(table_name, region, endpoint_url)
    if not yes:
        click.confirm(f"Delete table '{store.table_name}'?", abort=True)

    async def _delete() -> None:
        async with store:
            await store.delete_table()

    try:
        asyncio.run(_delete())
    except ClickTallyError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    click.echo(f"Table deleted: {store.table_name}")


@cli.command()
@_store_options
@click.argument("user_id")
@click.option(
    "--rollups/--no-rollups",
    default=False,
    help="Also increment the daily and monthly counters",
)
def record(
    table_name: str | None,
    region: str | None,
    endpoint_url: str | None,
    user_id: str,
    rollups: bool,
) -> None:
    """Record one click for USER_ID."""
    result = _run(
        _store(table_name, region, endpoint_url),
        lambda tracker: tracker.record_click(user_id, rollups=rollups),
    )
    _echo_json(result.as_dict())


@cli.command()
@_store_options
def total(table_name: str | None, region: str | None, endpoint_url: str | None) -> None:
    """Show the all-time click total."""
    count = _run(
        _store(table_name, region, endpoint_url),
        lambda tracker: tracker.get_total_clicks(),
    )
    _echo_json({"totalClicks": count})


@cli.command()
@_store_options
@click.argument("user_id")
@click.option("--start", help="Range start (timestamp or YYYY-MM-DD)")
@click.option("--end", help="Range end (timestamp or YYYY-MM-DD)")
@click.option("--limit", type=click.IntRange(min=1), help="Maximum number of clicks")
def history(
    table_name: str | None,
    region: str | None,
    endpoint_url: str | None,
    user_id: str,
    start: str | None,
    end: str | None,
    limit: int | None,
) -> None:
    """List clicks for USER_ID, newest first."""
    if (start is None) != (end is None):
        raise click.UsageError("--start and --end must be given together")

    store = _store(table_name, region, endpoint_url)
    if start is not None and end is not None:
        clicks = _run(
            store,
            lambda tracker: tracker.list_clicks_in_range(user_id, start, end, limit=limit),
        )
    else:
        clicks = _run(
            store,
            lambda tracker: tracker.list_clicks_for_subject(user_id, limit=limit),
        )
    _echo_json([asdict(c) for c in clicks])


@cli.command("by-date")
@_store_options
@click.argument("date")
def by_date(
    table_name: str | None, region: str | None, endpoint_url: str | None, date: str
) -> None:
    """List every click recorded on DATE (YYYY-MM-DD)."""
    clicks = _run(
        _store(table_name, region, endpoint_url),
        lambda tracker: tracker.list_clicks_by_date(date),
    )
    _echo_json([asdict(c) for c in clicks])


@cli.command()
@_store_options
@click.argument("date")
@click.option("--add", "increment", type=click.IntRange(min=1), help="Add N to the counter")
def daily(
    table_name: str | None,
    region: str | None,
    endpoint_url: str | None,
    date: str,
    increment: int | None,
) -> None:
    """Show (or increment with --add) the counter for DATE (YYYY-MM-DD)."""
    store = _store(table_name, region, endpoint_url)
    if increment is not None:
        stat = _run(store, lambda tracker: tracker.upsert_daily_stat(date, increment))
    else:
        stat = _run(store, lambda tracker: tracker.get_daily_stat(date))
    _echo_json(asdict(stat) if stat else None)


@cli.command()
@_store_options
@click.argument("month")
@click.option("--add", "increment", type=click.IntRange(min=1), help="Add N to the counter")
def monthly(
    table_name: str | None,
    region: str | None,
    endpoint_url: str | None,
    month: str,
    increment: int | None,
) -> None:
    """Show (or increment with --add) the counter for MONTH (YYYY-MM)."""
    store = _store(table_name, region, endpoint_url)
    if increment is not None:
        stat = _run(store, lambda tracker: tracker.upsert_monthly_stat(month, increment))
    else:
        stat = _run(store, lambda tracker: tracker.get_monthly_stat(month))
    _echo_json(asdict(stat) if stat else None)


if __name__ == "__main__":
    cli()
