"""CLI command implementations."""

from __future__ import annotations

import contextlib
import os
import signal
from pathlib import Path
from typing import TYPE_CHECKING, Annotated, Literal

import typer

from edge_provisioner.cli import app
from edge_provisioner.cli.errors import handle_error

if TYPE_CHECKING:
    from collections.abc import Iterator

    from edge_provisioner.config.schema import Config
    from edge_provisioner.engine.types import Plan, ReconcileResult
    from edge_provisioner.publish.cancel import CancelToken

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

LockFile = Annotated[
    Path | None,
    typer.Option("--lock-file", help="Hold an exclusive lock on this file while running."),
]

DEFAULT_CONFIG = Path("edge-provisioner.yaml")


def _use_color(no_color: bool) -> bool:
    """Determine whether to use color output."""
    return not (no_color or os.environ.get("NO_COLOR"))


@contextlib.contextmanager
def _cancel_on_interrupt() -> Iterator[CancelToken]:
    """Turn the first Ctrl-C into a cooperative cancellation; a second one aborts."""
    from edge_provisioner.publish.cancel import CancelToken

    token = CancelToken()

    def on_sigint(signum: int, frame: object) -> None:
        _ = signum, frame
        if token.is_set():
            raise KeyboardInterrupt
        typer.echo("Interrupt received; finishing in-flight work...", err=True)
        token.cancel("interrupted by user")

    previous = signal.signal(signal.SIGINT, on_sigint)
    try:
        yield token
    finally:
        signal.signal(signal.SIGINT, previous)


def _run_lock(path: Path | None) -> contextlib.AbstractContextManager[object]:
    if path is None:
        return contextlib.nullcontext()
    from edge_provisioner.engine.lock import RunLock

    return RunLock(path)


def _reconcile_with_progress(
    plan_obj: Plan, cfg: Config, *, color: bool, cancel: CancelToken
) -> ReconcileResult:
    """Reconcile with a Rich progress bar and per-resource status lines."""
    from rich.console import Console
    from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn

    from edge_provisioner.cli.formatting import _ACTION_STYLES
    from edge_provisioner.config import reconcile
    from edge_provisioner.engine.types import Action, ResourceChange

    console = Console(no_color=not color)
    actionable = [c for c in plan_obj.changes if c.action != Action.NOOP]

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        console=console,
    ) as progress:
        task = progress.add_task("Applying", total=len(actionable))

        def on_progress(
            change: ResourceChange, event: Literal["start", "done", "unchanged"]
        ) -> None:
            s = _ACTION_STYLES[change.action.value]
            if event == "start":
                progress.update(task, description=f"{change.id}: {s.progress_verb}...")
            elif event == "done":
                progress.console.print(f"  {change.id}: {s.done_verb}")
                progress.advance(task)

        return reconcile(cfg, progress=on_progress, cancel=cancel)


@app.command()
def validate(
    config: ConfigPath = DEFAULT_CONFIG,
    no_color: NoColor = False,
) -> None:
    """Validate the configuration file and resource graph (no remote calls)."""
    from edge_provisioner.cli.formatting import styler
    from edge_provisioner.config import load
    from edge_provisioner.engine.graph import build_dependency_graph

    color = _use_color(no_color)
    try:
        cfg = load(config)
        order = build_dependency_graph(cfg.resources).topological_order()
    except Exception as exc:
        raise typer.Exit(handle_error(exc, color=color)) from exc

    typer.echo(styler(color)("Configuration is valid.", fg="green"))
    if order:
        typer.echo(f"Apply order: {' -> '.join(order)}")


@app.command()
def plan(
    config: ConfigPath = DEFAULT_CONFIG,
    out: Annotated[
        Path | None,
        typer.Option("--out", "-o", help="Save plan to file."),
    ] = None,
    no_color: NoColor = False,
) -> None:
    """Show infrastructure changes required by the current configuration."""
    from edge_provisioner.cli.formatting import (
        format_plan,
        format_plan_summary,
        has_actionable_changes,
    )
    from edge_provisioner.config import load
    from edge_provisioner.config import plan as plan_fn

    color = _use_color(no_color)
    try:
        cfg = load(config)
        plan_obj = plan_fn(cfg)
    except Exception as exc:
        raise typer.Exit(handle_error(exc, color=color)) from exc

    typer.echo(format_plan(plan_obj, color=color))
    typer.echo()
    typer.echo(format_plan_summary(plan_obj.summary(), color=color))

    if out is not None:
        plan_obj.save(out)
        typer.echo(f"\nPlan saved to {out}")

    if has_actionable_changes(plan_obj):
        raise typer.Exit(2)


@app.command(name="apply")
def apply_cmd(
    config: ConfigPath = DEFAULT_CONFIG,
    auto_approve: AutoApprove = False,
    no_color: NoColor = False,
    lock_file: LockFile = None,
) -> None:
    """Create or update infrastructure to match the configuration."""
    from edge_provisioner.cli.formatting import (
        format_apply_summary,
        format_plan,
        format_plan_summary,
        has_actionable_changes,
    )
    from edge_provisioner.config import load
    from edge_provisioner.config import plan as plan_fn

    color = _use_color(no_color)
    try:
        cfg = load(config)
        plan_obj = plan_fn(cfg)
    except Exception as exc:
        raise typer.Exit(handle_error(exc, color=color)) from exc

    if not has_actionable_changes(plan_obj):
        typer.echo("No changes. Resources are up-to-date.")
        raise typer.Exit(0)

    typer.echo(format_plan(plan_obj, color=color))
    typer.echo()
    typer.echo(format_plan_summary(plan_obj.summary(), color=color))
    typer.echo()

    if not auto_approve:
        try:
            typer.confirm("Do you want to apply these changes?", abort=True)
        except typer.Abort as e:
            typer.echo("Apply canceled.", err=True)
            raise typer.Exit(1) from e

    try:
        with _run_lock(lock_file), _cancel_on_interrupt() as cancel:
            result = _reconcile_with_progress(plan_obj, cfg, color=color, cancel=cancel)
    except Exception as exc:
        raise typer.Exit(handle_error(exc, color=color)) from exc

    typer.echo()
    typer.echo(format_apply_summary(result.summary(), color=color))


@app.command()
def diff(
    config: ConfigPath = DEFAULT_CONFIG,
    no_color: NoColor = False,
) -> None:
    """Show the content changes the next deploy would publish."""
    from edge_provisioner.cli.formatting import format_publish_plan
    from edge_provisioner.config import load, sync_plan

    color = _use_color(no_color)
    try:
        cfg = load(config)
        publish_plan = sync_plan(cfg)
    except Exception as exc:
        raise typer.Exit(handle_error(exc, color=color)) from exc

    typer.echo(format_publish_plan(publish_plan, color=color))


@app.command()
def deploy(
    config: ConfigPath = DEFAULT_CONFIG,
    report: Annotated[
        Path | None,
        typer.Option("--report", help="Write the run report as JSON to this file."),
    ] = None,
    lock_file: LockFile = None,
    no_color: NoColor = False,
) -> None:
    """Reconcile infrastructure, publish content and invalidate the edge."""
    from edge_provisioner.cli.formatting import format_run_report
    from edge_provisioner.config import deploy as deploy_fn
    from edge_provisioner.config import load
    from edge_provisioner.publish.report import Stage

    color = _use_color(no_color)

    def on_transition(old: Stage, new: Stage) -> None:
        _ = old
        if new not in (Stage.COMPLETE, Stage.FAILED):
            typer.echo(f"==> {new.value}")

    try:
        cfg = load(config)
        with _run_lock(lock_file), _cancel_on_interrupt() as cancel:
            run_report = deploy_fn(cfg, on_transition=on_transition, cancel=cancel)
    except Exception as exc:
        raise typer.Exit(handle_error(exc, color=color)) from exc

    typer.echo()
    typer.echo(format_run_report(run_report, color=color))
    if report is not None:
        run_report.save(report)
        typer.echo(f"\nReport saved to {report}")

    if not run_report.ok:
        raise typer.Exit(1)


@app.command()
def invalidate(
    paths: Annotated[
        list[str],
        typer.Argument(help="Edge paths to invalidate, e.g. /index.html or /assets/*."),
    ],
    config: ConfigPath = DEFAULT_CONFIG,
    no_color: NoColor = False,
) -> None:
    """Invalidate paths on the distribution (e.g. to retry a failed deploy's last stage)."""
    from edge_provisioner.cli.formatting import format_invalidation
    from edge_provisioner.config import invalidate as invalidate_fn
    from edge_provisioner.config import load

    color = _use_color(no_color)
    try:
        cfg = load(config)
        with _cancel_on_interrupt() as cancel:
            result = invalidate_fn(cfg, paths, cancel=cancel)
    except Exception as exc:
        raise typer.Exit(handle_error(exc, color=color)) from exc

    typer.echo(format_invalidation(result, color=color))
