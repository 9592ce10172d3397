"""Command line interface for authoring flows and driving runs."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import NoReturn, Optional

import typer

from assessflow import FlowRunner, get_repository, load_flow_file, publish_flow, validate
from assessflow.cli_utils.formatting import format_issue, format_step, parse_value
from assessflow.config import load_config
from assessflow.constants import RunStatus
from assessflow.errors import AssessFlowError, FlowValidationError
from assessflow.logging_setup import configure_logging

app = typer.Typer(help="CLI for assessflow assessments")

# Command groups
flow_app = typer.Typer(help="Commands for managing flows")
run_app = typer.Typer(help="Commands for managing assessment runs")

app.add_typer(flow_app, name="flow")
app.add_typer(run_app, name="run")


def _fail(message: str) -> NoReturn:
    typer.secho(message, fg=typer.colors.RED)
    raise typer.Exit(code=1)


def _load_file(path: Path):
    if not path.exists():
        _fail("Specified path does not exist")
    try:
        return load_flow_file(path)
    except ValueError as exc:
        _fail(f"Invalid flow file: {exc}")


@app.callback()
def main(
    log_level: Optional[str] = typer.Option(
        None, help="Logging level (defaults to the configured log_level)"
    ),
) -> None:
    """assessflow CLI entry point."""
    configure_logging(log_level or load_config().log_level)


@flow_app.command("import")
def flow_import(path: Path) -> None:
    """
    Load a YAML/JSON flow document and save it to the repository.

    Example:
        assessflow flow import ./guides/trt_assessment.yaml
        # Output: Imported flow trt: Testosterone Replacement Therapy (TRT) Assessment (8 steps, 7 transitions)
    """
    flow = _load_file(path)
    asyncio.run(get_repository().save_flow(flow))
    typer.echo(
        f"Imported flow {flow.id}: {flow.title or '(untitled)'} "
        f"({len(flow.steps)} steps, {len(flow.transitions)} transitions)"
    )


@flow_app.command("validate")
def flow_validate(path: Path) -> None:
    """
    Check a flow document for structural problems.

    Prints every issue found; exits with code 1 when any is an error.
    Warnings (dead transitions, ambiguous order) do not fail the command.
    """
    flow = _load_file(path)
    result = validate(flow)
    for issue in result.errors:
        typer.echo(format_issue(issue))
    if not result.is_valid:
        _fail(f"Flow {flow.id} has {len(result.blocking)} error(s)")
    typer.echo(f"Flow {flow.id} is valid")


@flow_app.command("publish")
def flow_publish(flow_id: str) -> None:
    """Validate a stored flow and mark it ACTIVE."""
    repo = get_repository()
    flow = asyncio.run(repo.load_flow(flow_id))
    if flow is None:
        _fail("Flow not found")
    try:
        publish_flow(flow)
    except FlowValidationError as exc:
        for issue in exc.issues:
            typer.echo(format_issue(issue))
        _fail(f"Flow {flow_id} cannot be published")
    asyncio.run(repo.save_flow(flow))
    typer.echo(f"Flow {flow_id} published")


@flow_app.command("list")
def flow_list() -> None:
    """List stored flows with their status."""
    flows = asyncio.run(get_repository().list_flows())
    if not flows:
        typer.echo("No flows found")
        return
    for flow in flows:
        typer.echo(f"{flow.id}\t{flow.status.value}\t{flow.title or ''}")


@run_app.command("start")
def run_start(
    flow_id: str,
    subject: str = typer.Option(..., help="Identifier of the subject taking the assessment"),
) -> None:
    """
    Begin a run of a stored flow.

    Example:
        assessflow run start trt --subject patient-1
        # Output: Run 5f0c...: DRAFT
        #         Current step: welcome [INFORMATION] - Welcome
    """
    runner = FlowRunner(get_repository())

    async def _start():
        run = await runner.start(flow_id, subject)
        return run, await runner.current_step(run.id)

    try:
        run, step = asyncio.run(_start())
    except AssessFlowError as exc:
        _fail(f"Cannot begin assessment: {exc}")
    typer.echo(f"Run {run.id}: {run.status.value}")
    typer.echo(f"Current step: {format_step(step)}")


@run_app.command("submit")
def run_submit(
    run_id: str,
    step_id: str,
    value: Optional[str] = typer.Option(None, help="Answer as JSON (bare words are strings)"),
) -> None:
    """
    Submit an answer for the run's current step.

    Example:
        assessflow run submit 5f0c... age --value 34
        assessflow run submit 5f0c... symptoms --value '["low_energy"]'
    """
    runner = FlowRunner(get_repository())
    try:
        result = asyncio.run(runner.submit(run_id, step_id, parse_value(value)))
    except AssessFlowError as exc:
        _fail(str(exc))
    if result.completed:
        typer.echo(f"Run {run_id} completed")
    else:
        typer.echo(f"Next step: {format_step(result.next_step)}")


@run_app.command("list")
def run_list(flow: Optional[str] = typer.Option(None, help="Only runs of this flow")) -> None:
    """List runs with their status."""
    runs = asyncio.run(get_repository().list_runs(flow))
    if not runs:
        typer.echo("No runs found")
        return
    for run in runs:
        typer.echo(f"{run.id}\t{run.flow_id}\t{run.subject_id}\t{run.status.value}")


@run_app.command("show")
def run_show(run_id: str) -> None:
    """Show a run's status, position and recorded responses."""
    repo = get_repository()

    async def _load():
        return await repo.get_run(run_id), await repo.load_responses(run_id)

    run, responses = asyncio.run(_load())
    if run is None:
        _fail("Run not found")
    typer.echo(f"Run {run.id}: {run.status.value}")
    typer.echo(f"Flow: {run.flow_id}  Subject: {run.subject_id}")
    typer.echo(f"Started: {run.started_at}" + (f"  Completed: {run.completed_at}" if run.completed_at else ""))
    if run.current_step_id:
        typer.echo(f"Current step: {run.current_step_id}")
    for response in responses:
        typer.echo(f"- {response.step_id}: {json.dumps(response.data)} ({response.created_at})")


@run_app.command("review")
def run_review(
    run_id: str,
    status: str = typer.Option(..., help="reviewed or archived"),
) -> None:
    """Record a reviewer decision on a run."""
    try:
        target = RunStatus(status.upper())
    except ValueError:
        _fail(f"Unknown status {status}")
    runner = FlowRunner(get_repository())
    try:
        run = asyncio.run(runner.record_review(run_id, target))
    except (AssessFlowError, ValueError) as exc:
        _fail(str(exc))
    typer.echo(f"Run {run.id}: {run.status.value}")


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    app()
