"""CLI module for database dependency discovery and ordering.

Provides commands for database profile management, dependency listing,
and ordered creation scripts.

Usage:
    DB_PROFILE=local db-depends connect
    db-depends status
    db-depends profiles
    db-depends deps public.orders
    db-depends deps --parents --kind view public.order_totals
    db-depends script public.orders --include-self --output orders.sql

Commands:
    connect   - Connect to database and lock the profile
    status    - Show current connection status
    profiles  - List available profiles
    deps      - List the objects depending on (or required by) an object
    script    - Write the ordered creation script of those objects
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

import psycopg
from rich.console import Console
from rich.logging import RichHandler
from rich.syntax import Syntax
from rich.table import Table

from db_depends.config.loader import load_db_config
from db_depends.config.models import DependencySettings
from db_depends.dependency.engine import get_dependencies_batch, render_script
from db_depends.dependency.models import DependencyDirection, DependencyRecord, DependencyResult
from db_depends.dependency.precedence import resolve_precedence
from db_depends.exceptions import CatalogError
from db_depends.factory import (
    ProfileNotFoundError,
    connect_and_verify,
    get_active_profile_name,
    get_catalog,
    read_profile_lock,
)
from db_depends.identity import ObjectIdentity, Urn

console = Console()
err_console = Console(stderr=True)


# ============================================================================
# Helpers
# ============================================================================


def _configure_logging(verbose: bool) -> None:
    """Route library logging through rich on stderr."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


def _display_name(identity: ObjectIdentity | None) -> str:
    """Short ``schema.name`` form of a URN for tables and messages."""
    if identity is None:
        return ""
    if isinstance(identity, Urn) and identity.name is not None:
        if identity.schema:
            return f"{identity.schema}.{identity.name}"
        return identity.name
    return str(identity)


def _direction(args: argparse.Namespace) -> DependencyDirection:
    if getattr(args, "parents", False):
        return DependencyDirection.DEPENDENCIES
    return DependencyDirection.DEPENDENTS


def _load_settings() -> DependencySettings:
    """Dependency settings from db.toml, or defaults when it has none."""
    return load_db_config().dependencies


async def _collect(
    args: argparse.Namespace,
    settings: DependencySettings,
    include_script: bool,
) -> list[DependencyResult] | None:
    """Resolve every object named on the command line.

    Prints setup errors (profile, connection, unknown objects) and returns
    None for them; per-root failures are left in the results.
    """
    env_prefix = getattr(args, "env_prefix", "")

    try:
        catalog = get_catalog(env_prefix=env_prefix)
    except ProfileNotFoundError as e:
        err_console.print(f"[yellow]{e}[/yellow]")
        return None
    except (FileNotFoundError, KeyError, ValueError) as e:
        err_console.print(f"[red]Error: {e}[/red]")
        return None

    try:
        async with catalog:
            roots = []
            for name in args.objects:
                try:
                    roots.append(await catalog.identify(name, kind=args.kind))
                except (CatalogError, ValueError) as e:
                    err_console.print(f"[red]Error: {e}[/red]")
                    return None

            return await get_dependencies_batch(
                roots,
                catalog,
                catalog,
                concurrency=settings.concurrency,
                allow_system_objects=(
                    args.allow_system_objects or settings.allow_system_objects
                ),
                direction=_direction(args),
                include_self=args.include_self,
                include_script=include_script,
                batch_terminator=settings.batch_terminator,
                timeout=settings.timeout,
            )
    except psycopg.Error as e:
        err_console.print(f"[red]Failed to connect to database: {e}[/red]")
        return None


def _records_table(result: DependencyResult, direction: DependencyDirection) -> Table:
    title = "Dependents" if direction == DependencyDirection.DEPENDENTS else "Dependencies"
    table = Table(
        title=f"{title} of {_display_name(result.root)}",
        show_header=True,
        header_style="bold",
    )
    table.add_column("Tier", justify="right")
    table.add_column("Kind")
    table.add_column("Object", style="cyan")
    table.add_column("Owner", style="dim")
    table.add_column("Schema-bound", justify="center")
    table.add_column("Parent")

    for record in result.records:
        table.add_row(
            str(record.tier),
            record.kind,
            _display_name(record.dependent),
            record.owner or "",
            "[green]v[/green]" if record.is_schema_bound else "",
            _display_name(record.parent),
        )
    return table


def _print_failure(result: DependencyResult) -> None:
    err_console.print(
        f"[bold red]x[/bold red] {_display_name(result.root)} "
        f"[dim]({result.stage})[/dim]: {result.error}"
    )


def _print_node_errors(result: DependencyResult) -> None:
    for node_error in result.node_errors:
        err_console.print(
            f"[yellow]! Skipped {_display_name(node_error.identity)}:[/yellow] "
            f"{node_error.error}"
        )


# ============================================================================
# Async command implementations
# ============================================================================


async def _async_connect(args: argparse.Namespace) -> int:
    """Async implementation for connect command.

    Args:
        args: Parsed arguments with env_prefix.

    Returns:
        0 on success, 1 on failure.
    """
    env_prefix = getattr(args, "env_prefix", "")

    previous_profile = read_profile_lock()

    console.print("Connecting to database...", style="dim")

    result = await connect_and_verify(env_prefix=env_prefix)

    if result.success:
        console.print()
        console.print(
            f"[bold green]v[/bold green] Connected to profile: "
            f"[bold cyan]{result.profile_name}[/bold cyan]"
        )
        console.print(f"  Server: {result.server}  Database: {result.database}")

        if previous_profile and previous_profile != result.profile_name:
            console.print(
                f"\n[dim]Switched from[/dim] [bold]{previous_profile}[/bold] "
                f"[dim]to[/dim] [bold cyan]{result.profile_name}[/bold cyan]"
            )

        return 0
    else:
        console.print()
        console.print(f"[bold red]x[/bold red] {result.error}")
        return 1


async def _async_deps(args: argparse.Namespace) -> int:
    """Async implementation for deps command.

    Returns:
        0 when every root resolved, 1 otherwise.
    """
    try:
        settings = _load_settings()
    except (FileNotFoundError, ValueError) as e:
        err_console.print(f"[red]Error: {e}[/red]")
        return 1

    include_script = settings.include_script and not args.no_script
    results = await _collect(args, settings, include_script=include_script)
    if results is None:
        return 1

    direction = _direction(args)
    exit_code = 0
    for result in results:
        console.print()
        if not result.success:
            _print_failure(result)
            exit_code = 1
            continue

        if result.is_empty:
            console.print(
                f"[dim]No dependencies detected for[/dim] "
                f"[bold]{_display_name(result.root)}[/bold]"
            )
            continue

        if result.records:
            console.print(_records_table(result, direction))
        _print_node_errors(result)

        if include_script and result.records:
            script = render_script(result.records)
            if script:
                console.print(Syntax(script, "sql", word_wrap=True))

    return exit_code


async def _async_script(args: argparse.Namespace) -> int:
    """Async implementation for script command.

    The records of all roots are merged and ordered again, so an object
    shared by several roots is written once, after everything it needs.

    Returns:
        0 when every root resolved, 1 otherwise.
    """
    try:
        settings = _load_settings()
    except (FileNotFoundError, ValueError) as e:
        err_console.print(f"[red]Error: {e}[/red]")
        return 1

    results = await _collect(args, settings, include_script=True)
    if results is None:
        return 1

    exit_code = 0
    merged: list[DependencyRecord] = []
    for result in results:
        if not result.success:
            _print_failure(result)
            exit_code = 1
            continue
        _print_node_errors(result)
        merged.extend(result.records)

    ordered = resolve_precedence(merged)

    script = render_script(ordered)

    if args.output:
        Path(args.output).write_text(script)
        err_console.print(
            f"[bold green]v[/bold green] Wrote {len(ordered)} objects to "
            f"[cyan]{args.output}[/cyan]"
        )
    elif script:
        sys.stdout.write(script)
    else:
        err_console.print("[dim]No dependencies detected.[/dim]")

    return exit_code


# ============================================================================
# Command handlers
# ============================================================================


def cmd_connect(args: argparse.Namespace) -> int:
    """Connect to database and lock the profile.

    Wraps the async implementation with ``asyncio.run()``.

    Args:
        args: Parsed CLI arguments.

    Returns:
        0 on success, 1 on failure.
    """
    return asyncio.run(_async_connect(args))


def cmd_status(args: argparse.Namespace) -> int:
    """Show current connection status.

    Reads only local files (lock file and TOML config) -- no database calls.

    Args:
        args: Parsed CLI arguments.

    Returns:
        0 always (informational command).
    """
    profile = read_profile_lock()

    if profile:
        table = Table(title="Connection Status", show_header=False)
        table.add_column("Key", style="dim")
        table.add_column("Value")

        table.add_row("Current profile", f"[bold cyan]{profile}[/bold cyan]")
        table.add_row("Profile source", ".db-profile (verified)")

        try:
            config = load_db_config()
            if profile in config.profiles:
                p = config.profiles[profile]
                table.add_row("Provider", p.provider)
                if p.description:
                    table.add_row("Description", p.description)
            else:
                table.add_row("Warning", "[yellow]profile not in db.toml[/yellow]")
        except FileNotFoundError:
            table.add_row("Warning", "[yellow]db.toml not found[/yellow]")

        console.print(table)
    else:
        env_var = f"{getattr(args, 'env_prefix', '')}DB_PROFILE"
        console.print("[yellow]No verified profile.[/yellow]")
        console.print(f"[dim]Run:[/dim] [cyan]{env_var}=<name> db-depends connect[/cyan]")

    return 0


def cmd_profiles(args: argparse.Namespace) -> int:
    """List available profiles from db.toml.

    Reads only local TOML config -- no database calls.

    Args:
        args: Parsed CLI arguments.

    Returns:
        0 on success, 1 if db.toml not found.
    """
    try:
        config = load_db_config()
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1

    try:
        current = get_active_profile_name(getattr(args, "env_prefix", ""))
    except ProfileNotFoundError:
        current = None

    table = Table(title="Database Profiles", show_header=True, header_style="bold")
    table.add_column("", width=2)
    table.add_column("Profile")
    table.add_column("Provider")
    table.add_column("Description")

    for name, profile in config.profiles.items():
        marker = "[bold green]*[/bold green]" if name == current else " "
        name_style = "bold cyan" if name == current else ""
        table.add_row(
            marker,
            f"[{name_style}]{name}[/{name_style}]" if name_style else name,
            profile.provider,
            profile.description or "",
        )

    console.print(table)

    if current:
        console.print("\n[bold green]*[/bold green] = current profile")

    return 0


def cmd_deps(args: argparse.Namespace) -> int:
    """List dependents or dependencies of one or more objects.

    Wraps the async implementation with ``asyncio.run()``.
    """
    return asyncio.run(_async_deps(args))


def cmd_script(args: argparse.Namespace) -> int:
    """Write the ordered creation script of one or more objects' dependencies.

    Wraps the async implementation with ``asyncio.run()``.
    """
    return asyncio.run(_async_script(args))


# ============================================================================
# Main entry point
# ============================================================================


def _add_selection_arguments(parser: argparse.ArgumentParser) -> None:
    """Arguments shared by deps and script."""
    parser.add_argument(
        "objects",
        nargs="+",
        metavar="OBJECT",
        help="Object name, optionally schema-qualified (e.g., public.orders)",
    )
    parser.add_argument(
        "--kind",
        default="table",
        help="Kind of the named objects: table, view, matview, sequence, function, ...",
    )
    parser.add_argument(
        "--parents",
        action="store_true",
        help="Walk the objects these depend on instead of their dependents",
    )
    parser.add_argument(
        "--include-self",
        action="store_true",
        help="Include the named objects themselves at tier 0",
    )
    parser.add_argument(
        "--allow-system-objects",
        action="store_true",
        help="Include objects from system schemas",
    )


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with all subcommands."""
    parser = argparse.ArgumentParser(
        prog="db-depends",
        description="Database dependency discovery and ordered scripting",
    )

    # Global options
    parser.add_argument(
        "--env-prefix",
        default="",
        help=(
            "Prefix for environment variable lookup "
            "(e.g., --env-prefix APP_ reads APP_DB_PROFILE)"
        ),
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Show debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # connect command
    p_connect = subparsers.add_parser(
        "connect",
        help="Connect to database and lock the profile",
    )
    p_connect.set_defaults(func=cmd_connect)

    # status command
    p_status = subparsers.add_parser(
        "status",
        help="Show current connection status",
    )
    p_status.set_defaults(func=cmd_status)

    # profiles command
    p_profiles = subparsers.add_parser(
        "profiles",
        help="List available profiles",
    )
    p_profiles.set_defaults(func=cmd_profiles)

    # deps command
    p_deps = subparsers.add_parser(
        "deps",
        help="List dependents (or dependencies) of objects",
    )
    _add_selection_arguments(p_deps)
    p_deps.add_argument(
        "--no-script",
        action="store_true",
        help="Do not fetch creation scripts",
    )
    p_deps.set_defaults(func=cmd_deps)

    # script command
    p_script = subparsers.add_parser(
        "script",
        help="Write the ordered creation script of dependents (or dependencies)",
    )
    _add_selection_arguments(p_script)
    p_script.add_argument(
        "--output",
        "-o",
        help="Output file (default: stdout)",
    )
    p_script.set_defaults(func=cmd_script)

    return parser


def main() -> int:
    """Main CLI entry point.

    Parses command line arguments and dispatches to appropriate handler.

    Returns:
        Exit code (0 for success, non-zero for errors).
    """
    parser = build_parser()
    args = parser.parse_args()
    _configure_logging(args.verbose)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
