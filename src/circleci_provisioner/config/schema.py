"""Configuration models for YAML-based provisioning."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict

from circleci_provisioner.client.rest import DEFAULT_BASE_URL
from circleci_provisioner.client.retry import DEFAULT_TIMEOUT
from circleci_provisioner.resources.base import Resource  # noqa: TC001
from circleci_provisioner.resources.context import ContextResource  # noqa: TC001
from circleci_provisioner.resources.context_environment_variable import (
    ContextEnvironmentVariableResource,  # noqa: TC001
)
from circleci_provisioner.resources.environment_variable import (
    EnvironmentVariableResource,  # noqa: TC001
)
from circleci_provisioner.resources.schedule import (
    ScheduleResource,  # noqa: TC001
)


class ProviderConfig(BaseSettings):
    """CircleCI provider connection settings.

    Fields can be set via YAML (constructor kwargs) or environment variables
    with the ``CIRCLECI_`` prefix.  Constructor kwargs take precedence.

    ``token`` is typically provided via the ``CIRCLECI_TOKEN`` environment
    variable rather than YAML to avoid committing secrets to version control.
    """

    model_config = SettingsConfigDict(env_prefix="CIRCLECI_")

    token: str | None = None
    vcs_type: str = "github"
    organization: str | None = None
    url: str = DEFAULT_BASE_URL
    timeout: float = Field(default=DEFAULT_TIMEOUT, ge=0)


def _none_to_list(v: Any) -> Any:
    return v if v is not None else []


class Config(BaseModel):
    """Provisioning configuration, validated straight from the YAML structure."""

    provider: ProviderConfig
    state_path: Path = Path(".circleci-state.json")
    # None waits for the state lock indefinitely.
    lock_timeout: float | None = Field(default=None, ge=0)
    contexts: Annotated[list[ContextResource], BeforeValidator(_none_to_list)] = []
    environment_variables: Annotated[
        list[EnvironmentVariableResource],
        BeforeValidator(_none_to_list),
    ] = []
    context_environment_variables: Annotated[
        list[ContextEnvironmentVariableResource],
        BeforeValidator(_none_to_list),
    ] = []
    schedules: Annotated[list[ScheduleResource], BeforeValidator(_none_to_list)] = []
    config_dir: Path = Path()

    @computed_field  # type: ignore[prop-decorator]
    @property
    def resources(self) -> list[Resource]:
        """All declared resources; ordering is not significant."""
        return [
            *self.contexts,
            *self.environment_variables,
            *self.context_environment_variables,
            *self.schedules,
        ]
