"""Command line interface for running the nightly protocol."""

from __future__ import annotations

import asyncio
import logging
from datetime import date
from typing import Optional

import typer

from vesper.adapters import load_services
from vesper.config import load_config
from vesper.constants import step_name
from vesper.coordinator import Phase, SessionCoordinator
from vesper.listener import LoggingProgressListener
from vesper.persistence import StepStatus, get_repository

app = typer.Typer(help="CLI for the vesper nightly protocol")

session_app = typer.Typer(help="Commands for inspecting session dates")
app.add_typer(session_app, name="session")


@app.callback()
def main() -> None:
    """Vesper CLI entry point."""
    pass


def _parse_date(value: Optional[str]) -> date:
    if not value:
        return date.today()
    try:
        return date.fromisoformat(value)
    except ValueError:
        typer.secho(f"Invalid date: {value} (expected YYYY-MM-DD)", fg=typer.colors.RED)
        raise typer.Exit(code=2)


def _coordinator() -> SessionCoordinator:
    config = load_config()
    logging.basicConfig(
        level=config.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return SessionCoordinator(
        get_repository(),
        load_services(config),
        config,
        listener=LoggingProgressListener(),
    )


def _echo_results(results) -> None:
    for step_id, status in results.items():
        colour = typer.colors.RED if status == StepStatus.ERROR else None
        typer.secho(f"{step_id:>2} {step_name(step_id):<32} {status.value}", fg=colour)


@app.command("run")
def run(session_date: Optional[str] = typer.Argument(None, help="YYYY-MM-DD, default today")) -> None:
    """
    Run every step for a session date.

    Completed steps are restored from the store and not executed again.

    Example:
        vesper run
        vesper run 2024-05-06
    """
    coordinator = _coordinator()
    results = asyncio.run(coordinator.run(_parse_date(session_date)))
    _echo_results(results)


@app.command("phase")
def run_phase(
    phase: Phase,
    session_date: Optional[str] = typer.Argument(None, help="YYYY-MM-DD, default today"),
) -> None:
    """Run one phase (collection, analysis or planning) for a session date."""
    coordinator = _coordinator()
    results = asyncio.run(coordinator.run_phase(phase, _parse_date(session_date)))
    _echo_results(results)


@app.command("step")
def run_step(
    step_id: int,
    session_date: Optional[str] = typer.Argument(None, help="YYYY-MM-DD, default today"),
) -> None:
    """
    Run or retry a single step.

    Example:
        vesper step 6 2024-05-06
    """
    if not 1 <= step_id <= 15:
        typer.secho(f"Unknown step id: {step_id}", fg=typer.colors.RED)
        raise typer.Exit(code=2)
    coordinator = _coordinator()
    status = asyncio.run(coordinator.run_step(step_id, _parse_date(session_date)))
    _echo_results({step_id: status})
    if status == StepStatus.ERROR:
        raise typer.Exit(code=1)


@session_app.command("list")
def session_list() -> None:
    """List known session dates, newest first."""
    repo = get_repository()
    sessions = asyncio.run(repo.list_sessions())
    if not sessions:
        typer.echo("No sessions found")
        return
    for session in sessions:
        typer.echo(f"{session.session_date.isoformat()}\t{session.started_at or ''}")


@session_app.command("show")
def session_show(session_date: str) -> None:
    """Show state and per-step status for a session date."""
    coordinator = _coordinator()
    day = _parse_date(session_date)

    async def _load():
        return (
            await coordinator.session_state(day),
            await coordinator.records(day),
            await coordinator.repository.get_session(day),
        )

    state, records, session = asyncio.run(_load())
    typer.echo(f"Session {day.isoformat()}: {state.value}")
    if session is not None:
        if session.diary_doc_id:
            typer.echo(f"Diary: {session.diary_doc_id}")
        if session.plan_doc_id:
            typer.echo(f"Plan: {session.plan_doc_id}")
        if session.reflection_xp is not None:
            typer.echo(f"Reflection XP: {session.reflection_xp}")
    for record in records:
        line = f"- {record.step_id:>2} {step_name(record.step_id)}: {record.status.value}"
        if record.details:
            line += f" ({record.details})"
        if record.link_url:
            line += f" {record.link_url}"
        typer.echo(line)


@session_app.command("reset")
def session_reset(
    session_date: str,
    yes: bool = typer.Option(False, "--yes", help="Confirm deleting the stored state"),
) -> None:
    """Delete every stored step and the session record for a date."""
    day = _parse_date(session_date)
    if not yes:
        typer.secho("Refusing to reset without --yes", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    repo = get_repository()
    asyncio.run(repo.clear_session(day))
    typer.echo(f"Session {day.isoformat()} reset")


if __name__ == "__main__":
    app()
