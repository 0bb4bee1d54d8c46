"""Plan, publish-plan and run-report rendering (Terraform-style)."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, NamedTuple

import typer

from edge_provisioner.engine.types import Action

if TYPE_CHECKING:
    from collections.abc import Callable

    from edge_provisioner.engine.types import Plan, ResourceChange
    from edge_provisioner.publish.invalidator import InvalidationResult
    from edge_provisioner.publish.plan import PublishPlan
    from edge_provisioner.publish.report import RunReport


class _ActionStyle(NamedTuple):
    color: str
    symbol: str
    progress_verb: str
    done_verb: str


_ACTION_STYLES: dict[str, _ActionStyle] = {
    "create": _ActionStyle("green", "+", "Creating", "Creation complete"),
    "update": _ActionStyle("yellow", "~", "Updating", "Update complete"),
    "no-op": _ActionStyle("bright_black", " ", "", ""),
}

_ACTION_DESC: dict[str, str] = {
    "create": "will be created",
    "update": "will be updated in-place",
    "no-op": "is up-to-date",
}


def styler(color: bool) -> Callable[..., str]:
    """Return ``typer.style`` when *color* is True, otherwise a passthrough."""
    if color:
        return typer.style
    return lambda text, **_kw: text


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def has_actionable_changes(plan: Plan) -> bool:
    """Return True if the plan contains any non-NOOP changes."""
    return any(c.action != Action.NOOP for c in plan.changes)


def _align_values(items: dict[str, str]) -> list[tuple[str, str]]:
    """Right-pad keys so ``=`` signs align."""
    if not items:
        return []
    max_key = max(len(k) for k in items)
    return [(k.ljust(max_key), v) for k, v in items.items()]


def _format_value(value: Any) -> str:
    """Format a value for display in a plan diff block."""
    if isinstance(value, str):
        return f'"{value}"'
    if value is None:
        return "null"
    return str(value)


# ---------------------------------------------------------------------------
# Infrastructure plan rendering
# ---------------------------------------------------------------------------


def _change_attrs(change: ResourceChange) -> dict[str, str]:
    """Extract displayable ``key -> formatted value`` pairs from a change."""
    if change.action == Action.CREATE and change.planned:
        return {k: _format_value(v) for k, v in change.planned.items()}
    if change.action == Action.UPDATE and change.diff:
        return {
            k: f"{_format_value(d['from'])} -> {_format_value(d['to'])}"
            for k, d in change.diff.items()
        }
    return {}


def format_change(change: ResourceChange, *, color: bool = True) -> str:
    """Render a single ResourceChange as a Terraform-style block."""
    style = styler(color)
    action_val = change.action.value
    sc = {"fg": _ACTION_STYLES[action_val].color}
    symbol = _ACTION_STYLES[action_val].symbol

    lines = [
        style(f"  # {change.id} {_ACTION_DESC[action_val]}", bold=True, **sc),
        style(f'  {symbol} resource "{change.kind}" "{change.id}" {{', **sc),
        *[
            style(f"      {symbol} {k} = {v}", **sc)
            for k, v in _align_values(_change_attrs(change))
        ],
        style("    }", **sc),
    ]
    return "\n".join(lines)


def format_changes(changes: list[ResourceChange], *, color: bool = True) -> str:
    """Render a list of changes as Terraform-style diff blocks."""
    blocks = [format_change(c, color=color) for c in changes if c.action != Action.NOOP]
    if not blocks:
        return "No changes. Resources are up-to-date."
    return "\n\n".join(blocks)


def format_plan(plan: Plan, *, color: bool = True) -> str:
    """Render the full plan output with per-change diff blocks."""
    return format_changes(plan.changes, color=color)


# ---------------------------------------------------------------------------
# Summaries
# ---------------------------------------------------------------------------

_PLAN_VERBS = ("to add", "to change")
_APPLY_VERBS = ("added", "changed")
_SUMMARY_COLORS = ("green", "yellow")


def _format_summary(summary: dict[str, int], verbs: tuple[str, ...], *, color: bool) -> str:
    """Build the ``N verb, N verb`` part of a summary line."""
    style = styler(color)
    counts = (summary.get("create", 0), summary.get("update", 0))
    parts = [
        style(f"{n} {verb}", fg=fg) if n and color else f"{n} {verb}"
        for n, verb, fg in zip(counts, verbs, _SUMMARY_COLORS, strict=True)
    ]
    return ", ".join(parts)


def format_plan_summary(summary: dict[str, int], *, color: bool = True) -> str:
    """Render ``Plan: 2 to add, 1 to change.``"""
    return f"Plan: {_format_summary(summary, _PLAN_VERBS, color=color)}."


def format_apply_summary(summary: dict[str, int], *, color: bool = True) -> str:
    """Render ``Apply complete! Resources: 2 added, 0 changed.``"""
    style = styler(color)
    header = style("Apply complete!", fg="green", bold=True)
    return f"{header} Resources: {_format_summary(summary, _APPLY_VERBS, color=color)}."


# ---------------------------------------------------------------------------
# Content
# ---------------------------------------------------------------------------


def format_publish_plan(plan: PublishPlan, *, color: bool = True) -> str:
    """Render uploads, deletions and the keys that will be invalidated."""
    style = styler(color)
    if not plan.has_changes:
        return f"No content changes. {len(plan.unchanged)} objects up-to-date."
    lines = [
        *(style(f"  + {key}", fg="green") for key in sorted(plan.to_upload)),
        *(style(f"  - {key}", fg="red") for key in sorted(plan.to_delete)),
        "",
        f"Content: {len(plan.to_upload)} to upload, {len(plan.to_delete)} to delete, "
        f"{len(plan.unchanged)} unchanged; {len(plan.invalidation_paths)} paths to invalidate.",
    ]
    return "\n".join(lines)


def format_invalidation(result: InvalidationResult, *, color: bool = True) -> str:
    style = styler(color)
    if not result.paths:
        return "Nothing to invalidate."
    ids = ", ".join(result.invalidation_ids)
    header = style("Invalidation submitted!", fg="green", bold=True)
    return f"{header} {len(result.paths)} paths on {result.distribution_id} ({ids})."


def _list_line(label: str, items: list[str], limit: int = 10) -> str:
    shown = ", ".join(items[:limit])
    more = f" (+{len(items) - limit} more)" if len(items) > limit else ""
    return f"  {label}: {shown}{more}"


def format_run_report(report: RunReport, *, color: bool = True) -> str:
    """Render the outcome of a deployment run."""
    style = styler(color)
    if report.ok:
        lines = [style("Deploy complete!", fg="green", bold=True) + f" {report.message}."]
    else:
        stage = report.failed_stage.value if report.failed_stage else "unknown"
        lines = [
            style(f"Deploy failed at {stage}.", fg="red", bold=True),
            style(f"  {report.message}", fg="red"),
        ]
        if report.cause:
            lines.append(f"  Cause ({report.cause_type}): {report.cause}")

    if report.domain_name:
        lines.append(f"  Domain: {report.domain_name}")
    if report.store:
        lines.append(f"  Store: {report.store}")
    for label, items in (
        ("Resources applied", report.resources_applied),
        ("Resources not attempted", report.resources_not_attempted),
        ("Uploaded", report.objects_uploaded),
        ("Deleted", report.objects_deleted),
        ("Failed", sorted(report.objects_failed)),
        ("Skipped", report.objects_skipped),
        ("Invalidation paths", report.invalidation_paths),
        ("Invalidation ids", report.invalidation_ids),
        ("Stale paths", report.stale_paths),
    ):
        if items:
            lines.append(_list_line(label, items))
    if report.retry_command:
        lines.append(f"  Retry with: {report.retry_command}")
    return "\n".join(lines)
