"""Main CLI entry point for tablemirror.

Provides command-line inspection and maintenance of the local mirror:
status, querying cached tables, invalidation and purging.
"""

import os
import sys
from pathlib import Path
from typing import Any, Optional, Tuple

import click
from rich.console import Console
from rich.table import Table

from tablemirror.cache import CacheConfig, CacheCoordinator
from tablemirror.display import StatusFormatter, format_value, result_columns
from tablemirror.utils import dumps_json, format_duration, loads_json

# Global console for Rich output
console = Console()


def load_config(ctx_cache_dir: Optional[str] = None) -> CacheConfig:
    """Build the cache configuration from multiple sources.

    Priority:
    1. Explicit --cache-dir/-C flag
    2. TABLEMIRROR_* environment variables
    3. Defaults

    Args:
        ctx_cache_dir: Cache directory from CLI context

    Returns:
        CacheConfig instance
    """
    config = CacheConfig.from_env()
    if ctx_cache_dir:
        config.cache_dir = Path(ctx_cache_dir).expanduser()
    return config


def open_coordinator(ctx) -> CacheCoordinator:
    """Open a coordinator over the local mirror (no remote source)."""
    return CacheCoordinator(config=load_config(ctx.obj.get("cache_dir")))


def parse_sort(spec: str) -> Tuple[str, str]:
    """Split ``field[:direction]`` into its parts.

    Examples:
        >>> parse_sort("due_date:desc")
        ('due_date', 'desc')
        >>> parse_sort("title")
        ('title', 'asc')
    """
    field, _, direction = spec.partition(":")
    return field, direction or "asc"


def parse_where(spec: str) -> Tuple[str, Any]:
    """Split ``field=value``; the value is read as JSON when it parses."""
    field, sep, raw = spec.partition("=")
    if not sep or not field:
        raise click.BadParameter(f"Expected field=value, got '{spec}'")
    try:
        value = loads_json(raw)
    except ValueError:
        value = raw
    return field, value


@click.group()
@click.option(
    "--cache-dir",
    "-C",
    type=click.Path(),
    help="Cache directory (default: TABLEMIRROR_CACHE_DIR env var or ~/.tablemirror_cache)",
)
@click.pass_context
def cli(ctx, cache_dir):
    """tablemirror CLI - Inspect and maintain the local table mirror.

    Use --cache-dir/-C to pick the cache directory, or set TABLEMIRROR_CACHE_DIR.
    """
    ctx.ensure_object(dict)
    ctx.obj["cache_dir"] = cache_dir


# ==================== Status Commands ====================


@cli.command("status")
@click.option("--json", "as_json", is_flag=True, help="Print the raw status as JSON")
@click.option("--all", "show_empty", is_flag=True, help="Include empty categories")
@click.pass_context
def status(ctx, as_json, show_empty):
    """Show what is cached and when it expires.

    Example:
        tablemirror status
        tablemirror status --json
    """
    try:
        with open_coordinator(ctx) as coordinator:
            summary = coordinator.status()

        if as_json:
            console.print_json(dumps_json(summary))
            return

        formatter = StatusFormatter(summary)
        console.print(f"[bold]Cache:[/bold] {summary['db_path']}")
        console.print(
            f"  TTL: records {format_duration(summary['records_ttl'])}, "
            f"metadata {format_duration(summary['metadata_ttl'])}"
        )

        categories = [c for c in summary["categories"] if show_empty or c["rows"]]
        if not categories:
            console.print("[yellow]Cache is empty[/yellow]")
            return

        table = Table(title=f"Categories ({len(categories)})")
        table.add_column("Category", style="cyan", no_wrap=True)
        table.add_column("Rows", justify="right", style="green")
        table.add_column("Live", justify="right", style="green")
        table.add_column("Scopes", justify="right", style="blue")
        table.add_column("Next expiry", style="magenta")

        now = formatter.checked_at()
        for entry in categories:
            expiry = entry["next_expiry"]
            table.add_row(
                entry["category"],
                str(entry["rows"]),
                str(entry["valid_rows"]),
                str(entry["scopes"]),
                format_duration(expiry - now) if expiry is not None and now else "-",
            )

        console.print(table)

    except Exception as e:
        console.print(f"[red]✗[/red] Error: {e}", style="red")
        sys.exit(1)


@cli.command("describe")
@click.option("--all", "show_empty", is_flag=True, help="Include empty categories")
@click.pass_context
def describe(ctx, show_empty):
    """Print a plain-text description of the mirror.

    Example:
        tablemirror describe
    """
    try:
        with open_coordinator(ctx) as coordinator:
            summary = coordinator.status()
        click.echo(StatusFormatter(summary).describe(show_empty=show_empty))

    except Exception as e:
        console.print(f"[red]✗[/red] Error: {e}", style="red")
        sys.exit(1)


# ==================== Query Commands ====================


@cli.command("query")
@click.argument("table_id")
@click.option("--filter", "-f", "filter_json", help="Filter expression as JSON")
@click.option(
    "--where",
    "-w",
    multiple=True,
    help="Equality condition field=value (can be used multiple times)",
)
@click.option(
    "--sort",
    "-s",
    multiple=True,
    help="Sort key field[:asc|desc] (can be used multiple times)",
)
@click.option("--limit", "-n", type=int, help="Maximum rows to return")
@click.option("--offset", type=int, default=0, help="Rows to skip")
@click.option("--fields", help="Comma-separated fields to show")
@click.option("--json", "as_json", is_flag=True, help="Print results as JSON")
@click.option("--count", "count_only", is_flag=True, help="Only print the number of matches")
@click.pass_context
def query(ctx, table_id, filter_json, where, sort, limit, offset, fields, as_json, count_only):
    """Query a cached table.

    Reads only what is already cached; a table whose records have expired
    must be refreshed by the application first.

    Example:
        tablemirror query tbl_123 -w status=Active -s due_date:desc -n 10
        tablemirror query tbl_123 -f '{"field": "tags", "comparison": "has_any_of", "value": ["urgent"]}'
    """
    try:
        field_list = [f.strip() for f in fields.split(",") if f.strip()] if fields else None

        with open_coordinator(ctx) as coordinator:
            builder = coordinator.query(table_id)
            if filter_json:
                builder.filter(loads_json(filter_json))
            for spec in where:
                field, value = parse_where(spec)
                builder.where(**{field: value})
            for spec in sort:
                builder.sort(*parse_sort(spec))

            if count_only:
                console.print(str(builder.count()))
                return

            results = builder.limit(limit).offset(offset).project(field_list).execute()

        for warning in builder.warnings:
            console.print(f"[yellow]⚠ Warning:[/yellow] {warning}")

        if as_json:
            console.print_json(dumps_json(results))
            return

        if not results:
            console.print("[yellow]No matching records[/yellow]")
            return

        columns = result_columns(results, field_list)
        table = Table(title=f"{table_id} ({len(results)})")
        for column in columns:
            table.add_column(column, style="cyan" if column == "id" else "white")
        for record in results:
            table.add_row(*[format_value(record.get(column)) for column in columns])

        console.print(table)

    except Exception as e:
        console.print(f"[red]✗[/red] Error: {e}", style="red")
        sys.exit(1)


# ==================== Maintenance Commands ====================


@cli.command("invalidate")
@click.argument("resource")
@click.option("--table-id", "-t", help="Table id (required for records)")
@click.option("--solution-id", "-s", help="Limit tables to one solution")
@click.pass_context
def invalidate(ctx, resource, table_id, solution_id):
    """Invalidate a cached resource so the next read refetches it.

    RESOURCE is one of: solutions, tables, records, members, teams.

    Example:
        tablemirror invalidate records -t tbl_123
        tablemirror invalidate tables -s sol_1
    """
    try:
        with open_coordinator(ctx) as coordinator:
            result = coordinator.refresh(resource, table_id=table_id, solution_id=solution_id)

        console.print(f"[green]✓[/green] {result['message']}")
        console.print(f"  Rows removed: {result['deleted']}")

    except ValueError as e:
        console.print(f"[yellow]{e}[/yellow]")
        sys.exit(1)
    except Exception as e:
        console.print(f"[red]✗[/red] Error: {e}", style="red")
        sys.exit(1)


@cli.command("invalidate-schema")
@click.argument("table_id")
@click.pass_context
def invalidate_schema(ctx, table_id):
    """Drop a table's cached schema and records after a structure change.

    Example:
        tablemirror invalidate-schema tbl_123
    """
    try:
        with open_coordinator(ctx) as coordinator:
            deleted = coordinator.invalidate_schema(table_id)

        console.print(f"[green]✓[/green] Schema invalidated for table {table_id}")
        console.print(f"  Rows removed: {deleted}")

    except Exception as e:
        console.print(f"[red]✗[/red] Error: {e}", style="red")
        sys.exit(1)


@cli.command("purge")
@click.option("--yes", "-y", is_flag=True, help="Don't ask for confirmation")
@click.pass_context
def purge(ctx, yes):
    """Delete expired rows from the mirror.

    Example:
        tablemirror purge -y
    """
    try:
        if not yes and not click.confirm("Delete all expired rows?"):
            console.print("[yellow]Cancelled[/yellow]")
            return

        with open_coordinator(ctx) as coordinator:
            deleted = coordinator.purge_expired()

        console.print(f"[green]✓[/green] Purged {deleted} expired rows")

    except Exception as e:
        console.print(f"[red]✗[/red] Error: {e}", style="red")
        sys.exit(1)


@cli.command("config")
@click.option("--save", is_flag=True, help="Write the effective config to the cache directory")
@click.pass_context
def config(ctx, save):
    """Show the effective cache configuration.

    Example:
        tablemirror config
        TABLEMIRROR_RECORDS_TTL=600 tablemirror config --save
    """
    try:
        effective = load_config(ctx.obj.get("cache_dir"))

        table = Table(title="Configuration")
        table.add_column("Setting", style="cyan", no_wrap=True)
        table.add_column("Value", style="white")
        table.add_row("cache_dir", str(effective.cache_dir))
        table.add_row("db_path", str(effective.db_path))
        table.add_row("records_ttl", f"{effective.records_ttl} ({format_duration(effective.records_ttl)})")
        table.add_row("metadata_ttl", f"{effective.metadata_ttl} ({format_duration(effective.metadata_ttl)})")
        table.add_row("lock_timeout", str(effective.lock_timeout))
        table.add_row("page_size", str(effective.page_size))
        table.add_row("strict_operators", str(effective.strict_operators))
        console.print(table)

        if save:
            effective.save()
            console.print(
                f"[green]✓[/green] Saved to {os.path.join(effective.cache_dir, 'config.json')}"
            )

    except Exception as e:
        console.print(f"[red]✗[/red] Error: {e}", style="red")
        sys.exit(1)


if __name__ == "__main__":
    cli()
