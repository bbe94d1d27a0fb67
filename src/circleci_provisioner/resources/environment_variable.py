"""Project environment variable resource model."""

from __future__ import annotations

from typing import Annotated, ClassVar

from pydantic import Field

from circleci_provisioner.resources.base import Resource
from circleci_provisioner.resources.markers import ForceNew, Sensitive


class EnvironmentVariableResource(Resource):
    """Environment variable attached to a single CircleCI project.

    CircleCI cannot update a variable in place, so every field forces a
    replacement. The value is write-only: the API only ever returns a masked
    echo of it.
    """

    resource_type: ClassVar[str] = "circleci_environment_variable"
    plan_priority: ClassVar[int] = 50
    schema_version: ClassVar[int] = 1

    project: Annotated[str, ForceNew()] = Field(min_length=1)
    value: Annotated[str, Sensitive(), ForceNew()]

    def address_key(self) -> str:
        return self._organization_scoped(self.project, self.name)
