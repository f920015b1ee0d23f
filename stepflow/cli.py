"""Command line interface for inspecting persisted workflow state."""

from __future__ import annotations

import asyncio
import json
import logging

import typer

from stepflow.contracts import WorkflowState
from stepflow.persistence import StatePersistence, get_store, migrate, state_key

logger = logging.getLogger(__name__)

app = typer.Typer(help="CLI for stepflow workflows")

state_app = typer.Typer(help="Commands for managing persisted workflow state")

app.add_typer(state_app, name="state")


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v")) -> None:
    """Stepflow CLI entry point."""
    logging.basicConfig(level=logging.DEBUG if verbose else logging.WARNING)


def _parse_state(raw: str) -> WorkflowState:
    data = json.loads(raw)
    if not isinstance(data, dict):
        raise ValueError("record is not an object")
    return WorkflowState.model_validate(migrate(data))


def _read_state(workflow_id: str) -> WorkflowState | None:
    """Return the stored state, ``None`` when absent.

    Raises ``ValueError`` when the record cannot be read.
    """
    raw = asyncio.run(get_store().get(state_key(workflow_id)))
    if raw is None:
        return None
    try:
        return _parse_state(raw)
    except (TypeError, ValueError) as e:
        raise ValueError(f"Unreadable state for {workflow_id}: {e}") from e


@state_app.command("list")
def state_list() -> None:
    """
    List all workflows that have persisted state.

    Shows workflow ids with their current step and progress, read from the
    configured state store.

    Example:
        stepflow state list
        # Output: project-creation    repository-selection    40%
    """
    persistence = StatePersistence(get_store())
    workflow_ids = asyncio.run(persistence.list_workflow_ids())
    if not workflow_ids:
        typer.echo("No workflows found")
        return
    for workflow_id in workflow_ids:
        try:
            state = _read_state(workflow_id)
        except ValueError as e:
            logger.warning(str(e))
            typer.secho(f"{workflow_id}\t<unreadable>", fg=typer.colors.YELLOW)
            continue
        if state is None:
            continue
        typer.echo(f"{workflow_id}\t{state.current_step}\t{state.progress:.0f}%")


@state_app.command("show")
def state_show(workflow_id: str) -> None:
    """
    Show the persisted state of a single workflow.

    Args:
        workflow_id: Workflow to inspect (get from 'state list')

    Example:
        stepflow state show project-creation
    """
    try:
        state = _read_state(workflow_id)
    except ValueError as e:
        typer.secho(str(e), fg=typer.colors.RED)
        raise typer.Exit(code=2)
    if state is None:
        typer.echo("Workflow not found")
        raise typer.Exit(code=1)

    typer.echo(f"Workflow {state.workflow_id}: {state.current_step} ({state.progress:.0f}%)")
    typer.echo(f"Completed: {', '.join(state.completed_steps) or '-'}")
    typer.echo(f"Skipped: {', '.join(state.skipped_steps) or '-'}")
    typer.echo(f"Last saved: {state.last_saved.isoformat()}")
    for field, message in state.errors.items():
        typer.echo(f"- error {field}: {message}")
    for field, message in state.warnings.items():
        typer.echo(f"- warning {field}: {message}")


@state_app.command("clear")
def state_clear(workflow_id: str) -> None:
    """Remove the persisted state of ``workflow_id`` so it starts over."""
    persistence = StatePersistence(get_store())
    asyncio.run(persistence.clear(workflow_id))
    typer.echo(f"Cleared {workflow_id}")


if __name__ == "__main__":
    app()
