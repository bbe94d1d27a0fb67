"""Context environment variable resource model."""

from __future__ import annotations

from typing import Annotated, ClassVar

from pydantic import Field

from circleci_provisioner.resources.base import Resource
from circleci_provisioner.resources.markers import ForceNew, Ref, Sensitive


class ContextEnvironmentVariableResource(Resource):
    """Environment variable stored in a context.

    ``context`` is either the UUID of an existing context or the name of one;
    when a ``circleci_context`` with that name is declared, it is created
    first.
    """

    resource_type: ClassVar[str] = "circleci_context_environment_variable"
    plan_priority: ClassVar[int] = 50

    context: Annotated[str, Ref("circleci_context"), ForceNew()] = Field(min_length=1)
    value: Annotated[str, Sensitive(), ForceNew()]

    def address_key(self) -> str:
        return f"{self.context}.{self.name}"
