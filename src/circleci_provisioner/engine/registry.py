"""Resource type registry: which model and handler serve each ``circleci_*`` type."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from circleci_provisioner.engine.errors import UnknownResourceTypeError
from circleci_provisioner.resources.markers import sensitive_fields

if TYPE_CHECKING:
    from circleci_provisioner.core.state import ResourceInstance
    from circleci_provisioner.engine.handlers import EngineContext, ResourceHandler
    from circleci_provisioner.resources.base import Resource


@dataclass(frozen=True)
class ResourceTypeRegistration:
    """A resource model paired with the handler that talks to CircleCI for it."""

    resource_type: str
    model: type[Resource]
    handler: ResourceHandler[Any]

    @property
    def schema_version(self) -> int:
        return self.model.schema_version

    def sensitive_fields(self) -> list[str]:
        return sorted(sensitive_fields(self.model))


class ResourceTypeRegistry:
    """Maps a resource type such as ``circleci_schedule`` to its registration."""

    def __init__(self) -> None:
        self._registrations: dict[str, ResourceTypeRegistration] = {}

    def register(self, model: type[Resource], handler: ResourceHandler[Any]) -> None:
        resource_type = getattr(model, "resource_type", None)
        if not isinstance(resource_type, str) or not resource_type:
            raise ValueError("Resource model must define a non-empty classvar `resource_type`")
        if resource_type in self._registrations:
            raise ValueError(f"Resource type already registered: {resource_type}")

        unknown = sorted(model.address_only_fields - set(model.model_fields))
        if unknown:
            raise ValueError(
                f"{resource_type}: address_only_fields names unknown fields {unknown}"
            )

        self._registrations[resource_type] = ResourceTypeRegistration(
            resource_type=resource_type, model=model, handler=handler
        )

    def get(self, resource_type: str) -> ResourceTypeRegistration:
        if resource_type not in self._registrations:
            raise UnknownResourceTypeError(resource_type)
        return self._registrations[resource_type]

    def current_schema_version(self, resource_type: str) -> int:
        """Attribute layout version new state entries of *resource_type* are written with."""
        return self.get(resource_type).schema_version

    def upgrade_attributes(self, ctx: EngineContext, inst: ResourceInstance) -> dict[str, Any]:
        """Stored attributes of *inst* migrated to the current layout of its type.

        Raises:
            MigrationError: *inst* is newer than this release or a step is missing.
        """
        reg = self.get(inst.resource_type)
        table = reg.handler.migrations(ctx)
        return table.upgrade(inst.attributes, inst.schema_version, reg.schema_version)
