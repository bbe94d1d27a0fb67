"""Naming rules CircleCI enforces on environment variables."""

from __future__ import annotations

import re

_FIRST_CHAR = re.compile(r"^[A-Za-z]")
_NAME = re.compile(r"[A-Za-z][A-Za-z0-9_]*")


def validate_env_var_name(name: str) -> list[str]:
    """Return error messages for *name* (empty = valid)."""
    if not _FIRST_CHAR.match(name):
        return ["environment variables may only begin with a letter"]
    if not _NAME.fullmatch(name):
        return [
            "environment variable names may only contain letters "
            "(uppercase and lowercase), digits, and underscores"
        ]
    return []
