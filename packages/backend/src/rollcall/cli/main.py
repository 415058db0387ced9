"""Rollcall CLI — inspect and exercise the realtime layer.

Usage:
    rollcall check-config                     # Validate dependency map + templates
    rollcall tables                           # Tracked tables and what they invalidate
    rollcall listen -t workers -t attendance_events
                                              # Print live change events
    rollcall serve                            # Run the API with uvicorn
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import signal
import sys
from datetime import datetime
from typing import Optional

import click

from rollcall import __version__
from rollcall.config import settings
from rollcall.realtime.query_keys import ALL_QUERY_KEYS
from rollcall.realtime.routing import DEPENDENCY_MAP, resolve
from rollcall.realtime.tables import TableName, UnknownTableError, parse_tables
from rollcall.realtime.templates import NOTIFICATION_TEMPLATES
from rollcall.realtime.validation import find_config_problems

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run(coro):
    """Run an async coroutine from a synchronous Click handler.

    Offloads to a thread when a loop is already running (CliRunner inside
    an async test).
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)
    else:
        with concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
            return pool.submit(asyncio.run, coro).result()


def _print_table(rows: list[dict], columns: list[tuple[str, str, int]]):
    """Print a simple ASCII table.

    columns: list of (header, dict_key, width)
    """
    header = "  ".join(h.ljust(w) for h, _, w in columns)
    click.secho(header, bold=True)
    click.echo("-" * len(header))
    for row in rows:
        click.echo("  ".join(str(row.get(k, "-"))[:w].ljust(w) for _, k, w in columns))


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(version=__version__, prog_name="rollcall")
def main():
    """Rollcall — attendance dashboards with realtime cache coherence."""


@main.command("check-config")
def check_config():
    """Validate the table → query-key map and toast templates."""
    problems = find_config_problems(DEPENDENCY_MAP, NOTIFICATION_TEMPLATES, ALL_QUERY_KEYS)
    if problems:
        click.secho(f"{len(problems)} realtime config problem(s):", fg="red", err=True)
        for problem in problems:
            click.echo(f"  - {problem}", err=True)
        sys.exit(1)
    click.secho(
        f"OK: {len(TableName)} tables, {len(ALL_QUERY_KEYS)} query keys",
        fg="green",
    )


@main.command()
@click.option("--verbose", "-v", is_flag=True, help="List every invalidated prefix")
def tables(verbose: bool):
    """Show tracked tables, invalidated query families and toast text."""
    rows = [
        {
            "table": table.value,
            "prefixes": len(resolve(table)),
            "toast": NOTIFICATION_TEMPLATES[table].description,
        }
        for table in TableName
    ]
    _print_table(rows, [("TABLE", "table", 26), ("KEYS", "prefixes", 5), ("TOAST", "toast", 36)])

    if verbose:
        for table in TableName:
            click.echo()
            click.secho(table.value, bold=True)
            for prefix in resolve(table):
                click.echo(f"  {prefix}")


@main.command()
@click.option("--table", "-t", "table_names", multiple=True,
              help="Table to listen on (repeatable; default: all)")
@click.option("--dsn", help="asyncpg DSN (default: from ROLLCALL_DATABASE_URL)")
def listen(table_names: tuple[str, ...], dsn: Optional[str]):
    """Print change events as they arrive, with the prefixes they invalidate."""
    try:
        selected = parse_tables(table_names) if table_names else tuple(TableName)
    except UnknownTableError as e:
        raise click.BadParameter(str(e), param_hint="--table")
    _run(_listen_impl(selected, dsn))


async def _listen_impl(selected: tuple[TableName, ...], dsn: Optional[str]):
    import asyncpg

    from rollcall.main import asyncpg_dsn
    from rollcall.realtime.stream import ChangeStreamError, PostgresChangeStream

    stream = PostgresChangeStream(
        dsn or asyncpg_dsn(settings.database_url),
        channel_prefix=settings.realtime_channel_prefix,
    )
    try:
        await stream.start()
    except (OSError, asyncpg.PostgresError) as e:
        click.secho(f"Could not connect: {e}", fg="red", err=True)
        sys.exit(1)

    def _printer(table: TableName):
        def on_change():
            stamp = datetime.now().strftime("%H:%M:%S")
            click.echo(f"{stamp}  {table.value:<26} → {', '.join(resolve(table))}")
        return on_change

    stopped = asyncio.Event()
    loop = asyncio.get_running_loop()
    try:
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, stopped.set)
    except (NotImplementedError, RuntimeError):
        pass

    try:
        for table in selected:
            await stream.subscribe(table, _printer(table))
        click.secho(
            f"Listening on {len(selected)} table(s). Ctrl-C to stop.", fg="green"
        )
        await stopped.wait()
    except ChangeStreamError as e:
        click.secho(str(e), fg="red", err=True)
    finally:
        await stream.stop()


@main.command()
@click.option("--host", default=None, help="Bind host (default: ROLLCALL_HOST)")
@click.option("--port", default=None, type=int, help="Bind port (default: ROLLCALL_PORT)")
@click.option("--reload", is_flag=True, help="Auto-reload on code changes")
def serve(host: Optional[str], port: Optional[int], reload: bool):
    """Run the API server."""
    import uvicorn

    uvicorn.run(
        "rollcall.main:app",
        host=host or settings.host,
        port=port or settings.port,
        reload=reload,
    )


if __name__ == "__main__":
    main()
