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
    from circleci_provisioner.client.errors import (
        APIError,
        ConfigurationError,
        ConflictError,
        RetryExhaustedError,
        TransportError,
    )
    from circleci_provisioner.config.loader import ConfigError
    from circleci_provisioner.core.identifiers import IdentifierError
    from circleci_provisioner.core.migrations import MigrationError
    from circleci_provisioner.engine.errors import (
        ApplyCanceled,
        ApplyError,
        ResourceImportError,
        StalePlanError,
        StateLockError,
        StateOrganizationMismatchError,
        ValidationError,
    )

    fg = typer.colors.RED if color else None

    if isinstance(exc, ConfigError | ConfigurationError):
        _err(f"Configuration error: {exc}", fg=fg)
    elif isinstance(exc, ValidationError):
        _err("Validation failed:", fg=fg)
        for e in exc.errors:
            _err(f"  - {e}", fg=fg)
    elif isinstance(exc, IdentifierError):
        _err(f"Invalid identifier: {exc}", fg=fg)
    elif isinstance(exc, StalePlanError):
        _err(f"Plan is stale: {exc}", fg=fg)
    elif isinstance(exc, StateOrganizationMismatchError):
        _err(f"State mismatch: {exc}", fg=fg)
    elif isinstance(exc, MigrationError):
        _err(f"State upgrade failed: {exc}", fg=fg)
    elif isinstance(exc, StateLockError):
        _err(f"State lock: {exc}", fg=fg)
    elif isinstance(exc, ResourceImportError):
        _err(f"Import failed: {exc}", fg=fg)
    elif isinstance(exc, ConflictError):
        _err(f"Conflict: {exc}", fg=fg)
    elif isinstance(exc, RetryExhaustedError):
        _err(f"CircleCI API unavailable: {exc}", fg=fg)
    elif isinstance(exc, APIError):
        _err(f"CircleCI API error: {exc}", fg=fg)
    elif isinstance(exc, TransportError):
        _err(f"Request failed: {exc}", fg=fg)
    elif isinstance(exc, ApplyError):
        _err(f"Apply failed: {exc}", fg=fg)
        s = exc.result.summary()
        parts = [
            f"{n} {verb}"
            for n, verb in (
                (s["create"], "added"),
                (s["update"], "changed"),
                (s["replace"], "replaced"),
                (s["delete"], "destroyed"),
            )
            if n
        ]
        if parts:
            _err(f"  Partial result: {', '.join(parts)}.", fg=fg)
    elif isinstance(exc, ApplyCanceled):
        _err("Apply canceled.", fg=fg)
    else:
        _err(f"Error: {exc}", fg=fg)

    return 1
