"""CLI command implementations."""

from __future__ import annotations

import os
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Annotated, Literal

import typer

from circleci_provisioner.cli import app
from circleci_provisioner.cli.errors import handle_error

if TYPE_CHECKING:
    from collections.abc import Iterator

    from circleci_provisioner.config.schema import Config
    from circleci_provisioner.engine.types import ApplyResult, Plan

DEFAULT_CONFIG = Path("circleci-provisioner.yaml")

ConfigPath = Annotated[
    Path,
    typer.Option("--config", "-c", help="Path to the configuration file."),
]

NoColor = Annotated[
    bool,
    typer.Option("--no-color", help="Disable colored output."),
]

AutoApprove = Annotated[
    bool,
    typer.Option("--auto-approve", help="Skip interactive approval."),
]

NoRefresh = Annotated[
    bool,
    typer.Option("--no-refresh", help="Skip refreshing state from CircleCI."),
]

LockTimeout = Annotated[
    float | None,
    typer.Option(
        "--lock-timeout",
        min=0,
        help="Seconds to wait for the state lock (default: wait indefinitely).",
    ),
]


def _use_color(no_color: bool) -> bool:
    return not (no_color or os.environ.get("NO_COLOR"))


@contextmanager
def _exit_on_error(color: bool) -> Iterator[None]:
    """Report any failure on stderr and leave with its exit code."""
    try:
        yield
    except (typer.Exit, typer.Abort):
        raise
    except Exception as exc:
        raise typer.Exit(handle_error(exc, color=color)) from exc


def _load(config: Path, lock_timeout: float | None = None) -> Config:
    from circleci_provisioner.config import load

    cfg = load(config)
    if lock_timeout is not None:
        cfg.lock_timeout = lock_timeout
    return cfg


def _confirm_or_exit(question: str, canceled: str) -> None:
    try:
        typer.confirm(question, abort=True)
    except typer.Abort as e:
        typer.echo(canceled, err=True)
        raise typer.Exit(1) from e


def _show_plan(plan_obj: Plan, *, color: bool) -> None:
    from circleci_provisioner.cli.formatting import format_plan, format_plan_summary

    typer.echo(format_plan(plan_obj, color=color))
    typer.echo()
    typer.echo(format_plan_summary(plan_obj.summary(), color=color))


def _apply_with_progress(plan_obj: Plan, cfg: Config, *, color: bool) -> ApplyResult:
    """Apply a plan, drawing a Rich progress bar and one line per finished resource."""
    from rich.console import Console
    from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn

    from circleci_provisioner.cli.formatting import _ACTION_STYLES
    from circleci_provisioner.config import apply
    from circleci_provisioner.engine.types import Action, ResourceChange

    total = sum(1 for c in plan_obj.changes if c.action != Action.NOOP)
    columns = (
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
    )

    with Progress(*columns, console=Console(no_color=not color)) as progress:
        task = progress.add_task("Applying", total=total)

        def report(change: ResourceChange, event: Literal["start", "done"]) -> None:
            style = _ACTION_STYLES[change.action.value]
            if event == "done":
                progress.console.print(f"  {change.address}: {style.done_verb}")
                progress.advance(task)
            else:
                progress.update(task, description=f"{change.address}: {style.progress_verb}...")

        return apply(plan_obj, cfg, progress=report)


def _review_and_apply(
    plan_obj: Plan,
    cfg: Config,
    *,
    color: bool,
    auto_approve: bool,
    question: str,
    nothing_to_do: str,
) -> None:
    """Show the plan, ask for approval, then apply it with progress output.

    Leaves with exit code 0 when the plan has nothing to do.
    """
    from circleci_provisioner.cli.formatting import format_apply_summary, has_actionable_changes

    if not has_actionable_changes(plan_obj):
        typer.echo(nothing_to_do)
        raise typer.Exit(0)

    _show_plan(plan_obj, color=color)
    typer.echo()
    if not auto_approve:
        _confirm_or_exit(question, "Apply canceled.")

    with _exit_on_error(color):
        result = _apply_with_progress(plan_obj, cfg, color=color)

    typer.echo()
    typer.echo(format_apply_summary(result.summary(), color=color))


@app.command()
def plan(
    config: ConfigPath = DEFAULT_CONFIG,
    out: Annotated[
        Path | None,
        typer.Option("--out", "-o", help="Save plan to file (contains secret values)."),
    ] = None,
    no_color: NoColor = False,
    no_refresh: NoRefresh = False,
    lock_timeout: LockTimeout = None,
) -> None:
    """Show changes required by the current configuration.

    Exits with code 2 when the plan contains changes.
    """
    from circleci_provisioner.cli.formatting import has_actionable_changes
    from circleci_provisioner.config import plan as plan_fn

    color = _use_color(no_color)
    with _exit_on_error(color):
        plan_obj = plan_fn(_load(config, lock_timeout), refresh=not no_refresh)

    _show_plan(plan_obj, color=color)
    if out is not None:
        plan_obj.save(out)
        typer.echo(f"\nPlan saved to {out}")

    if has_actionable_changes(plan_obj):
        raise typer.Exit(2)


@app.command(name="apply")
def apply_cmd(
    plan_file: Annotated[
        Path | None,
        typer.Argument(help="Saved plan file to apply."),
    ] = None,
    config: ConfigPath = DEFAULT_CONFIG,
    auto_approve: AutoApprove = False,
    no_color: NoColor = False,
    no_refresh: NoRefresh = False,
    lock_timeout: LockTimeout = None,
) -> None:
    """Apply the changes required by the current configuration."""
    from circleci_provisioner.config import plan as plan_fn
    from circleci_provisioner.engine.types import Plan

    color = _use_color(no_color)
    with _exit_on_error(color):
        cfg = _load(config, lock_timeout)
        if plan_file is None:
            plan_obj = plan_fn(cfg, refresh=not no_refresh)
        else:
            plan_obj = Plan.load(plan_file)

    _review_and_apply(
        plan_obj,
        cfg,
        color=color,
        auto_approve=auto_approve,
        question="Do you want to apply these changes?",
        nothing_to_do="No changes. Resources are up-to-date.",
    )


@app.command()
def destroy(
    config: ConfigPath = DEFAULT_CONFIG,
    auto_approve: AutoApprove = False,
    no_color: NoColor = False,
    lock_timeout: LockTimeout = None,
) -> None:
    """Destroy all managed resources."""
    from circleci_provisioner.config import plan as plan_fn

    color = _use_color(no_color)
    with _exit_on_error(color):
        cfg = _load(config, lock_timeout)
        plan_obj = plan_fn(cfg, destroy=True)

    _review_and_apply(
        plan_obj,
        cfg,
        color=color,
        auto_approve=auto_approve,
        question="Do you really want to destroy all resources?",
        nothing_to_do="No resources to destroy.",
    )


@app.command(name="refresh")
def refresh_cmd(
    config: ConfigPath = DEFAULT_CONFIG,
    auto_approve: AutoApprove = False,
    no_color: NoColor = False,
    lock_timeout: LockTimeout = None,
) -> None:
    """Refresh state from the live CircleCI API."""
    from circleci_provisioner.cli.formatting import (
        changes_summary,
        format_changes,
        format_plan_summary,
    )
    from circleci_provisioner.config import refresh as refresh_fn
    from circleci_provisioner.config import save_state

    color = _use_color(no_color)
    with _exit_on_error(color):
        cfg = _load(config, lock_timeout)
        changes, state = refresh_fn(cfg)

    if not changes:
        typer.echo("No changes. State is up-to-date with CircleCI.")
        raise typer.Exit(0)

    typer.echo(format_changes(changes, color=color))
    typer.echo()
    typer.echo(format_plan_summary(changes_summary(changes), color=color, header="Refresh"))
    typer.echo()
    if not auto_approve:
        _confirm_or_exit("Do you want to update the state file?", "Refresh canceled.")

    with _exit_on_error(color):
        save_state(cfg, state)
    count = len(state.resources)
    typer.echo(f"State refreshed. {count} resource{'s' if count != 1 else ''} tracked.")


@app.command()
def drift(
    config: ConfigPath = DEFAULT_CONFIG,
    no_color: NoColor = False,
) -> None:
    """Show drift between state and the live CircleCI API."""
    from circleci_provisioner.cli.formatting import format_changes
    from circleci_provisioner.config import drift as drift_fn

    color = _use_color(no_color)
    with _exit_on_error(color):
        changes = drift_fn(_load(config))

    if not changes:
        typer.echo("No drift detected. State is up-to-date with CircleCI.")
        raise typer.Exit(0)

    typer.echo("Drift detected:\n")
    typer.echo(format_changes(changes, color=color))


@app.command(name="import")
def import_cmd(
    address: Annotated[
        str,
        typer.Argument(help="Resource address, e.g. circleci_context.deploy."),
    ],
    import_id: Annotated[
        str,
        typer.Argument(
            help=(
                "Remote identifier: ORG.PROJECT.NAME for environment variables, "
                "ORG/CONTEXT for contexts, ORG/CONTEXT/VARIABLE for context "
                "environment variables, the schedule UUID for schedules."
            ),
        ),
    ],
    config: ConfigPath = DEFAULT_CONFIG,
    no_color: NoColor = False,
    lock_timeout: LockTimeout = None,
) -> None:
    """Bring an existing CircleCI object under management.

    Secret values cannot be read back from CircleCI; set CIRCLECI_ENV_VALUE to
    the current value when importing environment variables.
    """
    from circleci_provisioner.cli.formatting import styler
    from circleci_provisioner.config import import_resource

    color = _use_color(no_color)
    with _exit_on_error(color):
        inst = import_resource(_load(config, lock_timeout), address, import_id)

    message = f"Imported {inst.address} (id {inst.attributes.get('id')})."
    typer.echo(styler(color)(message, fg="green"))


@app.command()
def context(
    name: Annotated[str, typer.Argument(help="Context name.")],
    organization: Annotated[
        str | None,
        typer.Option("--organization", help="Organization to search (default: provider's)."),
    ] = None,
    config: ConfigPath = DEFAULT_CONFIG,
    no_color: NoColor = False,
) -> None:
    """Look up a context by name and print its id."""
    from circleci_provisioner.config import lookup_context

    color = _use_color(no_color)
    with _exit_on_error(color):
        found = lookup_context(_load(config), name, organization=organization)

    if found is None:
        typer.echo(f"Context '{name}' not found.", err=True)
        raise typer.Exit(1)
    typer.echo(found["id"])


@app.command()
def validate(
    config: ConfigPath = DEFAULT_CONFIG,
    no_color: NoColor = False,
) -> None:
    """Validate the configuration file without contacting CircleCI."""
    from circleci_provisioner.cli.formatting import styler
    from circleci_provisioner.config import plan as plan_fn

    color = _use_color(no_color)
    with _exit_on_error(color):
        plan_fn(_load(config), refresh=False)

    typer.echo(styler(color)("Configuration is valid.", fg="green"))
