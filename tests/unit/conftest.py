"""Shared fixtures for unit tests."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from circleci_provisioner.config import load

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

    from circleci_provisioner.config.schema import Config

_CIRCLECI_ENV_VARS = (
    "CIRCLECI_TOKEN",
    "CIRCLECI_VCS_TYPE",
    "CIRCLECI_ORGANIZATION",
    "CIRCLECI_URL",
    "CIRCLECI_TIMEOUT",
    "CIRCLECI_ENV_VALUE",
    "CIRCLECI_LOG",
)


@pytest.fixture(autouse=True)
def _clean_circleci_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove CIRCLECI_* env vars so unit tests don't leak real credentials."""
    for var in _CIRCLECI_ENV_VARS:
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def make_config(tmp_path: Path) -> Callable[..., Config]:
    """Factory fixture: write YAML + optional .env, return loaded Config."""

    def _make(yaml_str: str, *, dotenv: str | None = None) -> Config:
        (tmp_path / "config.yaml").write_text(yaml_str)
        if dotenv is not None:
            (tmp_path / ".env").write_text(dotenv)
        return load(tmp_path / "config.yaml")

    return _make
