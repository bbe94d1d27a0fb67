"""Base resource class for CircleCI resources."""

from typing import Annotated, ClassVar

from pydantic import BaseModel, ConfigDict, Field, computed_field

from circleci_provisioner.resources.markers import (
    ForceNew,
    ResourceRef,
    collect_ref_specs,
    collect_refs,
)


class Resource(BaseModel):
    """Base class for all CircleCI resources.

    Resources are pure data - they define the desired state.
    Handlers know how to CRUD resources.
    """

    model_config = ConfigDict(extra="forbid")

    resource_type: ClassVar[str]
    plan_priority: ClassVar[int] = 100
    # Bumped whenever the stored attribute layout changes; see core.migrations.
    schema_version: ClassVar[int] = 0
    # Fields that only shape the address; never sent to CircleCI or stored.
    address_only_fields: ClassVar[frozenset[str]] = frozenset()

    name: str = Field(min_length=1)
    # Falls back to the provider organization when omitted.
    organization: Annotated[str | None, ForceNew()] = None

    # Lifecycle
    depends_on: list[str] = []

    def reference_names(self) -> list[str]:
        """Names of other resources this one references (auto-collected from Ref markers)."""
        return collect_refs(self)

    def references(self) -> list[ResourceRef]:
        """Typed references declared on this resource."""
        return collect_ref_specs(self)

    def address_key(self) -> str:
        """Part of the address after the resource type."""
        return self.name

    def _organization_scoped(self, *parts: str) -> str:
        """Join *parts* with dots, prefixed by the organization when one is set."""
        if self.organization:
            parts = (self.organization, *parts)
        return ".".join(parts)

    @computed_field
    @property
    def address(self) -> str:
        """Unique address for this resource (e.g., 'circleci_context.deploy')."""
        return f"{self.resource_type}.{self.address_key()}"
