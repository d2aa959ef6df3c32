"""Typer CLI entry point for spacesafe."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import TYPE_CHECKING, Annotated, Any

import httpx
import structlog
import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from spacesafe import __version__
from spacesafe.config import Settings, format_validation_error
from spacesafe.doctor import CheckStatus, run_doctor
from spacesafe.exceptions import SessionError, SpaceSafeError
from spacesafe.logging import configure_logging, generate_request_id
from spacesafe.services import TechnicianAssignmentService
from spacesafe.session import SessionContext

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from spacesafe.resilience import ExecutionResult
    from spacesafe.services import AssignmentSummary, Technician

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

console = Console()
err_console = Console(stderr=True)

app = typer.Typer(
    name="spacesafe",
    help="Technician assignment tooling for the confined-space safety platform.",
    no_args_is_help=True,
)

ConfigOption = Annotated[
    Path | None,
    typer.Option("--config", "-c", help="Path to config YAML file."),
]
TokenOption = Annotated[
    str | None,
    typer.Option(
        "--token",
        envvar="SPACESAFE_TOKEN",
        help="Bearer token (overrides session.token from config).",
        show_default=False,
    ),
]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _load_settings(
    config_path: Path | None = None,
    **overrides: Any,
) -> Settings:
    """Load settings with error handling and user-friendly messages."""
    from pydantic import ValidationError

    try:
        return Settings.load(config_path=config_path, **overrides)
    except ValidationError as exc:
        err_console.print(
            Panel(
                format_validation_error(exc),
                title="Configuration Error",
                border_style="red",
            )
        )
        raise typer.Exit(code=1) from exc


def _prepare(
    config: Path | None, token: str | None, verbose: bool = False
) -> tuple[Settings, SessionContext]:
    settings = _load_settings(config)
    level = "DEBUG" if verbose else settings.logging.level
    configure_logging(
        level=level,
        fmt=settings.logging.format,
        log_file=settings.logging.file,
        request_id=generate_request_id(),
    )
    return settings, SessionContext.from_settings(settings.session, token=token)


def _require_token(session: SessionContext) -> None:
    """Exit before any request when a mutating command has no credentials."""
    try:
        session.require_token()
    except SessionError as exc:
        err_console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(code=1) from exc


def _run_with_service(
    settings: Settings,
    session: SessionContext,
    action: Callable[[TechnicianAssignmentService], Awaitable[Any]],
) -> Any:
    """Run ``action`` against a service whose clients are closed afterwards."""

    async def _runner() -> Any:
        async with TechnicianAssignmentService.from_settings(settings, session) as service:
            return await action(service)

    try:
        return asyncio.run(_runner())
    except SpaceSafeError as exc:
        err_console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(code=1) from exc
    except httpx.HTTPError as exc:
        logger.error("service_request_failed", error=str(exc))
        err_console.print(f"[red]Service unreachable:[/red] {exc}")
        raise typer.Exit(code=1) from exc


def _technician_table(technicians: list[Technician], title: str) -> Table:
    table = Table(title=title)
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Email")
    table.add_column("Skills")
    table.add_column("Available", justify="center")
    for tech in technicians:
        table.add_row(
            tech.id,
            tech.name,
            tech.email,
            ", ".join(tech.skills),
            "[green]yes[/green]" if tech.is_available else "[yellow]no[/yellow]",
        )
    return table


def _attempts_table(result: ExecutionResult) -> Table:
    table = Table(title=f"Attempts: {result.operation}")
    table.add_column("#", justify="right")
    table.add_column("Strategy", style="cyan")
    table.add_column("Try", justify="right")
    table.add_column("Outcome")
    table.add_column("Status", justify="right")
    table.add_column("Error")
    for attempt in result.attempts:
        table.add_row(
            str(attempt.strategy_index + 1),
            attempt.strategy,
            str(attempt.attempt),
            "[green]ok[/green]" if attempt.success else "[red]failed[/red]",
            str(attempt.status_code) if attempt.status_code is not None else "-",
            attempt.error or "",
        )
    return table


def _version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"[bold]spacesafe[/bold] {__version__}")
        raise typer.Exit


@app.callback()
def common(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit.",
            callback=_version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """spacesafe global options."""


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@app.command()
def technicians(
    config: ConfigOption = None,
    token: TokenOption = None,
    query: Annotated[
        str | None,
        typer.Option("--query", "-q", help="Filter by name, email, or skill."),
    ] = None,
    available: Annotated[
        bool,
        typer.Option("--available", help="Only technicians without a location."),
    ] = False,
) -> None:
    """List technicians from the auth service."""
    settings, session = _prepare(config, token)

    async def _action(service: TechnicianAssignmentService) -> list[Technician]:
        if available:
            found = await service.available_technicians()
        else:
            found = await service.list_technicians()
        if query:
            found = [tech for tech in found if tech.matches(query)]
        return found

    found: list[Technician] = _run_with_service(settings, session, _action)
    if not found:
        console.print("[yellow]No technicians found.[/yellow]")
        return
    title = "Available Technicians" if available else "Technicians"
    console.print(_technician_table(found, title))


@app.command()
def assign(
    location_id: Annotated[str, typer.Argument(help="Location to assign.")],
    technician_id: Annotated[str, typer.Argument(help="Technician to assign.")],
    config: ConfigOption = None,
    token: TokenOption = None,
) -> None:
    """Assign a technician to a location."""
    settings, session = _prepare(config, token)
    _require_token(session)
    _run_with_service(
        settings,
        session,
        lambda service: service.assign_technician(location_id, technician_id),
    )
    console.print(
        f"[green]Assigned[/green] technician {technician_id} to location {location_id}."
    )


@app.command()
def unassign(
    location_id: Annotated[str, typer.Argument(help="Location to clear.")],
    config: ConfigOption = None,
    token: TokenOption = None,
    verify: Annotated[
        bool,
        typer.Option("--verify", help="Re-read the location to confirm the change."),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Show every attempt and debug logs."),
    ] = False,
) -> None:
    """Remove the technician assignment from a location."""
    settings, session = _prepare(config, token, verbose=verbose)
    _require_token(session)
    result: ExecutionResult = _run_with_service(
        settings,
        session,
        lambda service: service.remove_technician_assignment(location_id, verify=verify),
    )

    if verbose:
        console.print(_attempts_table(result))

    if not result.success:
        err_console.print(
            Panel(result.error or "Unassignment failed.", title="Unassign Failed", border_style="red")
        )
        raise typer.Exit(code=1)

    console.print(
        f"[green]Unassigned[/green] location {location_id} via [bold]{result.strategy}[/bold]."
    )


@app.command()
def summary(
    config: ConfigOption = None,
    token: TokenOption = None,
) -> None:
    """Show location and technician assignment counts."""
    settings, session = _prepare(config, token)
    counts: AssignmentSummary = _run_with_service(
        settings, session, lambda service: service.assignments_summary()
    )

    table = Table(title="Assignment Summary")
    table.add_column("Metric", style="cyan")
    table.add_column("Count", justify="right")
    for label, value in counts.model_dump().items():
        table.add_row(label.replace("_", " ").capitalize(), str(value))
    console.print(table)


@app.command()
def doctor(
    config: ConfigOption = None,
    token: TokenOption = None,
    no_probes: Annotated[
        bool,
        typer.Option("--no-probes", help="Skip service reachability probes (offline mode)."),
    ] = False,
    quiet: Annotated[
        bool,
        typer.Option("--quiet", help="Suppress table output, use exit code only."),
    ] = False,
) -> None:
    """Run self-diagnostics against the configured services."""
    settings = _load_settings(config)
    session = SessionContext.from_settings(settings.session, token=token)
    report = run_doctor(
        settings=settings,
        session=session,
        config_path=config,
        check_service_probes=not no_probes,
    )

    if not quiet:
        table = Table(title="spacesafe Doctor", show_lines=True)
        table.add_column("Check", style="cyan")
        table.add_column("Status", justify="center")
        table.add_column("Message")

        status_style = {
            CheckStatus.OK: "[green]OK[/green]",
            CheckStatus.WARN: "[yellow]WARN[/yellow]",
            CheckStatus.FAIL: "[red]FAIL[/red]",
        }

        for check in report.checks:
            table.add_row(
                check.name,
                status_style[check.status],
                check.message,
            )
        console.print(table)

        for check in report.checks:
            if check.details:
                details = ", ".join(f"{k}={v}" for k, v in check.details.items())
                console.print(f"[dim]{check.name}: {details}[/dim]")

    raise typer.Exit(code=report.exit_code)


def main() -> None:
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
