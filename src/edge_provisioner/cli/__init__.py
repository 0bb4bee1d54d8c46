"""CLI application for edge-provisioner."""

from __future__ import annotations

import logging
import os
import sys

import typer

from edge_provisioner import __version__

app = typer.Typer(
    name="edge-provisioner",
    no_args_is_help=True,
    add_completion=False,
)

LOG_ENV_VAR = "EDGE_LOG"
_LOG_FORMAT = "%(levelname)s %(name)s: %(message)s"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"edge-provisioner {__version__}")
        raise typer.Exit


def _log_level(verbose: int) -> int | None:
    """Level requested through ``EDGE_LOG`` (which wins) or ``-v`` flags.

    ``None`` means nothing was requested and logging stays unconfigured.
    """
    name = os.environ.get(LOG_ENV_VAR, "").strip().upper()
    if name:
        level = logging.getLevelName(name)
        if isinstance(level, int):
            return level
        typer.echo(
            f"WARNING: invalid {LOG_ENV_VAR} level {name!r}; defaulting to INFO",
            err=True,
        )
        return logging.INFO
    if verbose >= 2:
        return logging.DEBUG
    if verbose == 1:
        return logging.INFO
    return None


def _configure_logging(verbose: int) -> None:
    level = _log_level(verbose)
    if level is None:
        return
    # Third-party loggers (botocore) stay at WARNING; only ours follow the flag.
    logging.basicConfig(level=logging.WARNING, format=_LOG_FORMAT, stream=sys.stderr, force=True)
    logging.getLogger("edge_provisioner").setLevel(level)


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    verbose: int = typer.Option(
        0,
        "--verbose",
        "-v",
        count=True,
        help=f"Increase log verbosity (-v info, -vv debug). {LOG_ENV_VAR} overrides.",
    ),
) -> None:
    """Provision a static-site edge (object store + CDN) and publish content to it."""
    _ = version
    _configure_logging(verbose)


# Register commands after app is created to avoid circular imports.
from edge_provisioner.cli import commands as _commands  # noqa: E402, F401
