"""Plan and apply output rendering (Terraform-style)."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, NamedTuple

import typer

from circleci_provisioner.engine.types import Action

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from circleci_provisioner.engine.types import Plan, ResourceChange


class _ActionStyle(NamedTuple):
    color: str
    symbol: str
    description: str
    progress_verb: str
    done_verb: str


_ACTION_STYLES: dict[str, _ActionStyle] = {
    "create": _ActionStyle("green", "+", "will be created", "Creating", "Creation complete"),
    "update": _ActionStyle(
        "yellow", "~", "will be updated in-place", "Updating", "Update complete"
    ),
    "replace": _ActionStyle(
        "magenta", "-/+", "must be replaced", "Replacing", "Replacement complete"
    ),
    "delete": _ActionStyle("red", "-", "will be destroyed", "Destroying", "Destroy complete"),
    "no-op": _ActionStyle("bright_black", " ", "is up-to-date", "", ""),
}

_SENSITIVE = "(sensitive value)"
_FORCES_REPLACEMENT = "  # forces replacement"


def styler(color: bool) -> Callable[..., str]:
    """Return ``typer.style`` when *color* is True, otherwise a passthrough."""
    if color:
        return typer.style
    return lambda text, **_kw: text


def has_actionable_changes(plan: Plan) -> bool:
    """Return True if the plan contains any non-NOOP changes."""
    return any(c.action != Action.NOOP for c in plan.changes)


def _format_value(value: Any) -> str:
    if isinstance(value, str):
        return f'"{value}"'
    if value is None:
        return "null"
    if isinstance(value, bool):
        return str(value).lower()
    return str(value)


def _attribute_rows(change: ResourceChange) -> dict[str, str]:
    """Displayable ``attribute -> text`` pairs for one change.

    Secrets are planned and stored as digests; neither the digest nor the
    value is ever shown.
    """
    sensitive = set(change.sensitive)

    def shown(key: str, value: Any) -> str:
        return _SENSITIVE if key in sensitive else _format_value(value)

    match change.action:
        case Action.CREATE:
            return {k: shown(k, v) for k, v in (change.planned or {}).items()}
        case Action.DELETE:
            return {k: shown(k, v) for k, v in (change.prior or {}).items()}
        case Action.UPDATE | Action.REPLACE:
            forcing = set(change.forces_replacement)
            rows: dict[str, str] = {}
            for key, d in (change.diff or {}).items():
                if key in sensitive:
                    text = _SENSITIVE
                else:
                    text = f"{_format_value(d['from'])} -> {_format_value(d['to'])}"
                rows[key] = text + _FORCES_REPLACEMENT if key in forcing else text
            return rows
        case _:
            return {}


def format_change(change: ResourceChange, *, color: bool = True) -> str:
    """Render a single ResourceChange as a Terraform-style block."""
    style = styler(color)
    action_style = _ACTION_STYLES[change.action.value]
    fg = action_style.color
    symbol = action_style.symbol
    _, _, name = change.address.partition(".")

    lines = [style(f"  # {change.address} {action_style.description}", bold=True, fg=fg)]
    if change.replaced_because:
        lines.append(style(f"  # (because {change.replaced_because} must be replaced)", fg=fg))
    lines.append(style(f'  {symbol} resource "{change.resource_type}" "{name}" {{', fg=fg))

    rows = _attribute_rows(change)
    width = max((len(k) for k in rows), default=0)
    lines.extend(style(f"      {symbol} {k.ljust(width)} = {v}", fg=fg) for k, v in rows.items())
    lines.append(style("    }", fg=fg))
    return "\n".join(lines)


def format_changes(changes: Iterable[ResourceChange], *, color: bool = True) -> str:
    """Render changes as Terraform-style diff blocks, skipping no-ops."""
    blocks = [format_change(c, color=color) for c in changes if c.action != Action.NOOP]
    if not blocks:
        return "No changes. Resources are up-to-date."
    return "\n\n".join(blocks)


def format_plan(plan: Plan, *, color: bool = True) -> str:
    return format_changes(plan.changes, color=color)


# ---------------------------------------------------------------------------
# Summaries
# ---------------------------------------------------------------------------

_PLAN_VERBS = ("to add", "to change", "to destroy")
_APPLY_VERBS = ("added", "changed", "destroyed")
_SUMMARY_COLORS = ("green", "yellow", "red")


def _format_summary(summary: dict[str, int], verbs: tuple[str, ...], *, color: bool) -> str:
    """Build the ``N verb, N verb, N verb`` part of a summary line.

    A replacement counts once as an addition and once as a destruction.
    """
    style = styler(color)
    replaced = summary.get("replace", 0)
    counts = (
        summary.get("create", 0) + replaced,
        summary.get("update", 0),
        summary.get("delete", 0) + replaced,
    )
    return ", ".join(
        style(f"{n} {verb}", fg=fg) if n else f"{n} {verb}"
        for n, verb, fg in zip(counts, verbs, _SUMMARY_COLORS, strict=True)
    )


def changes_summary(changes: Iterable[ResourceChange]) -> dict[str, int]:
    """Count changes by action type (create/update/replace/delete)."""
    summary = dict.fromkeys(("create", "update", "replace", "delete"), 0)
    for c in changes:
        if c.action != Action.NOOP:
            summary[c.action.value] += 1
    return summary


def format_plan_summary(
    summary: dict[str, int], *, color: bool = True, header: str = "Plan"
) -> str:
    """Render ``Plan: 2 to add, 1 to change, 0 to destroy.``"""
    return f"{header}: {_format_summary(summary, _PLAN_VERBS, color=color)}."


def format_apply_summary(summary: dict[str, int], *, color: bool = True) -> str:
    """Render ``Apply complete! Resources: 2 added, 0 changed, 0 destroyed.``"""
    header = styler(color)("Apply complete!", fg="green", bold=True)
    return f"{header} Resources: {_format_summary(summary, _APPLY_VERBS, color=color)}."
