"""Engine-facing handler interfaces."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from circleci_provisioner.client.errors import ConfigurationError
from circleci_provisioner.core.migrations import MigrationTable
from circleci_provisioner.resources.base import Resource

if TYPE_CHECKING:
    from collections.abc import Mapping

    from circleci_provisioner.client import CircleCIClient
    from circleci_provisioner.core.provider import CircleCIProvider
    from circleci_provisioner.core.state import ResourceInstance, State

R = TypeVar("R", bound=Resource)


@dataclass(frozen=True)
class EngineContext:
    """Context passed to handlers."""

    provider: CircleCIProvider
    organization: str | None

    @property
    def client(self) -> CircleCIClient:
        return self.provider.client

    def resolve_organization(self, organization: str | None = None) -> str:
        """Resource organization, falling back to the provider default."""
        resolved = organization or self.organization
        if not resolved:
            raise ConfigurationError(
                "organization is required: set it on the resource or on the provider "
                "(CIRCLECI_ORGANIZATION)"
            )
        return resolved


@dataclass(frozen=True)
class PlanContext:
    """Every desired resource plus the current state, for cross-resource checks."""

    desired: Mapping[str, Resource]
    state: State

    def address_exists(self, address: str) -> bool:
        return address in self.desired or address in self.state.resources

    def declared(self, resource_type: str, name: str) -> list[Resource]:
        """Desired resources of *resource_type* named *name*."""
        return [
            r
            for r in self.desired.values()
            if r.resource_type == resource_type and r.name == name
        ]


class ResourceHandler(Generic[R]):
    """Base class for resource handlers.

    Handlers are responsible for translating resources into CircleCI API
    calls. Subclass and override the CRUD methods; validation, import and
    migrations are optional.

    Attributes returned by ``read``/``create``/``update``/``import_resource``
    are what the state file stores: the remote ``id`` plus every declared
    field, with ``Sensitive`` fields replaced by ``hash_value`` digests.
    """

    def validate(self, ctx: EngineContext, desired: R) -> list[str]:
        """Single-resource validation.

        Return list of error messages (empty = valid).
        """
        _ = ctx, desired
        return []

    def validate_plan(self, ctx: EngineContext, desired: R, plan_ctx: PlanContext) -> list[str]:
        """Cross-resource validation with access to all resources."""
        _ = ctx, desired, plan_ctx
        return []

    def migrations(self, ctx: EngineContext) -> MigrationTable:
        """Upgraders for attributes stored by older schema versions."""
        _ = ctx
        return MigrationTable({})

    def read(self, ctx: EngineContext, prior: ResourceInstance) -> dict[str, Any] | None:
        """Read the resource from CircleCI. Return None if it no longer exists."""
        raise NotImplementedError

    def create(self, ctx: EngineContext, desired: R) -> dict[str, Any]:
        """Create the resource in CircleCI. Return stored attributes."""
        raise NotImplementedError

    def update(self, ctx: EngineContext, desired: R, prior: ResourceInstance) -> dict[str, Any]:
        """Update the resource in CircleCI. Return stored attributes."""
        raise NotImplementedError

    def delete(self, ctx: EngineContext, prior: ResourceInstance) -> None:
        """Delete the resource from CircleCI."""
        raise NotImplementedError

    def import_resource(self, ctx: EngineContext, import_id: str) -> dict[str, Any]:
        """Read an existing remote object identified by *import_id*.

        Return stored attributes (must include ``name``).
        """
        raise NotImplementedError
