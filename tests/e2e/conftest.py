"""Shared fixtures for e2e tests against the live CircleCI API.

Requires ``CIRCLECI_TOKEN``, ``CIRCLECI_ORGANIZATION`` and ``CIRCLECI_PROJECT``
(a project the token may administer); every test is skipped otherwise.
"""

from __future__ import annotations

import logging
import os
import uuid
from typing import TYPE_CHECKING, Any

import pytest

from circleci_provisioner.config import apply, plan
from circleci_provisioner.config.schema import Config, ProviderConfig

if TYPE_CHECKING:
    from collections.abc import Callable, Generator
    from pathlib import Path

logger = logging.getLogger(__name__)


def _require_env(name: str) -> str:
    value = os.environ.get(name)
    if not value:
        pytest.skip(f"{name} is not set")
    return value


@pytest.fixture(scope="session")
def circleci_organization() -> str:
    _require_env("CIRCLECI_TOKEN")
    return _require_env("CIRCLECI_ORGANIZATION")


@pytest.fixture(scope="session")
def circleci_project(circleci_organization: str) -> str:
    _ = circleci_organization
    return _require_env("CIRCLECI_PROJECT")


@pytest.fixture()
def unique_suffix() -> str:
    return uuid.uuid4().hex[:8]


@pytest.fixture()
def make_config(
    tmp_path: Path, circleci_organization: str
) -> Generator[Callable[..., Config]]:
    """Build configs sharing one state file; destroys whatever is left on teardown."""
    state_path = tmp_path / "state.json"
    latest: list[Config] = []

    def _make(**resources: Any) -> Config:
        cfg = Config(
            provider=ProviderConfig(organization=circleci_organization),
            state_path=state_path,
            config_dir=tmp_path,
            **resources,
        )
        latest.append(cfg)
        return cfg

    yield _make

    if latest and state_path.exists():
        cfg = latest[-1]
        try:
            apply(plan(cfg, destroy=True), cfg)
        except Exception:
            logger.exception("Failed to clean up e2e resources from %s", state_path)

