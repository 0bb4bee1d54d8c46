"""Map exceptions to clean stderr messages and exit codes."""

from __future__ import annotations

import typer


def _err(msg: str, *, fg: str | None) -> None:
    """Print a styled message to stderr."""
    typer.echo(typer.style(msg, fg=fg), err=True)


def handle_error(exc: Exception, *, color: bool = True) -> int:
    """Print a clean error message to stderr and return an exit code.

    All errors map to exit code 1.  No tracebacks are printed.
    """
    from edge_provisioner.errors import (
        ConfigurationError,
        CyclicDependencyError,
        ImmutablePropertyError,
        InvalidationError,
        OperationCanceled,
        ProviderError,
        ResourceApplyError,
        RunLockError,
        SyncIncompleteError,
    )
    from edge_provisioner.publish.invalidator import object_paths
    from edge_provisioner.publish.report import invalidate_command

    fg = typer.colors.RED if color else None

    if isinstance(exc, ConfigurationError):
        lines = str(exc).splitlines() or [""]
        if len(lines) == 1:
            _err(f"Configuration error: {lines[0]}", fg=fg)
        else:
            _err("Configuration error:", fg=fg)
            for line in lines:
                _err(f"  - {line}", fg=fg)
    elif isinstance(exc, CyclicDependencyError):
        _err(f"Invalid resource graph: {exc}", fg=fg)
    elif isinstance(exc, ImmutablePropertyError):
        _err(f"{exc}. Replace the resource under a new id instead.", fg=fg)
    elif isinstance(exc, ResourceApplyError):
        _err(f"Apply failed: {exc}", fg=fg)
        if exc.applied:
            _err(f"  Converged: {', '.join(exc.applied)}", fg=fg)
        if exc.not_attempted:
            _err(f"  Not attempted: {', '.join(exc.not_attempted)}", fg=fg)
    elif isinstance(exc, SyncIncompleteError):
        _err(f"Sync failed: {exc}", fg=fg)
        for key, reason in exc.failed.items():
            _err(f"  - {key}: {reason}", fg=fg)
        live = exc.result.invalidation_paths if exc.result is not None else exc.succeeded
        if live:
            _err("  Content is live at the origin but was not invalidated.", fg=fg)
            _err(f"  Retry with: {invalidate_command(object_paths(live))}", fg=fg)
    elif isinstance(exc, InvalidationError):
        _err(f"Invalidation failed: {exc}", fg=fg)
        if exc.failed_paths:
            _err(f"  Retry with: {invalidate_command(exc.failed_paths)}", fg=fg)
    elif isinstance(exc, OperationCanceled):
        _err(f"Canceled: {exc}", fg=fg)
    elif isinstance(exc, RunLockError):
        _err(f"Another deployment holds the lock: {exc}", fg=fg)
    elif isinstance(exc, ProviderError):
        _err(f"Provider error: {exc}", fg=fg)
    else:
        _err(f"Error: {exc}", fg=fg)

    return 1
