"""CLI application for circleci-provisioner."""

from __future__ import annotations

import logging
import os
import sys

import typer

from circleci_provisioner import __version__

app = typer.Typer(
    name="circleci-provisioner",
    no_args_is_help=True,
    add_completion=False,
)

_LOG_FORMAT = "%(levelname)s %(name)s: %(message)s"
_VERBOSITY_LEVELS = {1: logging.INFO, 2: logging.DEBUG}


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"circleci-provisioner {__version__}")
        raise typer.Exit


def _log_level(verbose: int) -> int | None:
    """Resolve the package log level; ``None`` leaves logging unconfigured.

    ``CIRCLECI_LOG`` (a level name) takes precedence over ``-v`` flags.
    """
    env_level = os.environ.get("CIRCLECI_LOG", "").strip().upper()
    if env_level:
        level = logging.getLevelName(env_level)
        if isinstance(level, int):
            return level
        typer.echo(
            f"WARNING: invalid CIRCLECI_LOG level '{env_level}', "
            "expected a level name such as DEBUG or INFO; defaulting to INFO",
            err=True,
        )
        return logging.INFO
    if verbose <= 0:
        return None
    return _VERBOSITY_LEVELS.get(verbose, logging.DEBUG)


def _configure_logging(verbose: int) -> None:
    """Send package logs to stderr; everything else stays at WARNING."""
    level = _log_level(verbose)
    if level is None:
        return
    logging.basicConfig(
        level=logging.WARNING,
        format=_LOG_FORMAT,
        stream=sys.stderr,
        force=True,
    )
    logging.getLogger("circleci_provisioner").setLevel(level)


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
        help="Increase log verbosity (-v info, -vv debug, including API traffic).",
    ),
) -> None:
    """Terraform-style management of CircleCI environment variables, contexts and schedules."""
    _ = version
    _configure_logging(verbose)


# Commands register themselves on ``app`` when imported.
from circleci_provisioner.cli import commands as _commands  # noqa: E402, F401
