"""Context handler and context lookup."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from circleci_provisioner.core.identifiers import parse_import_path
from circleci_provisioner.engine.errors import ResourceImportError
from circleci_provisioner.engine.handlers import ResourceHandler

if TYPE_CHECKING:
    from circleci_provisioner.client import CircleCIClient
    from circleci_provisioner.client.models import Context
    from circleci_provisioner.core.state import ResourceInstance
    from circleci_provisioner.engine.handlers import EngineContext
    from circleci_provisioner.resources.context import ContextResource

logger = logging.getLogger(__name__)


def _attrs(ctx_obj: Context, organization: str) -> dict[str, Any]:
    return {"id": ctx_obj.id, "name": ctx_obj.name, "organization": organization}


def lookup_context(
    client: CircleCIClient, name: str, organization: str
) -> dict[str, Any] | None:
    """Find a context by name; ``None`` when the organization has no such context."""
    found = client.get_context_by_name(name, organization)
    if found is None:
        logger.debug("Context %s not found in %s", name, organization)
        return None
    return _attrs(found, organization)


class ContextHandler(ResourceHandler["ContextResource"]):
    """Create/read/delete handler for CircleCI contexts (no in-place update)."""

    def create(self, ctx: EngineContext, desired: ContextResource) -> dict[str, Any]:
        organization = ctx.resolve_organization(desired.organization)
        created = ctx.client.create_context(organization, desired.name)
        logger.info("Created context %s (%s)", created.name, created.id)
        return _attrs(created, organization)

    def read(self, ctx: EngineContext, prior: ResourceInstance) -> dict[str, Any] | None:
        found = ctx.client.get_context(prior.attributes["id"])
        if found is None:
            return None
        organization = prior.attributes.get("organization") or ctx.resolve_organization()
        return _attrs(found, organization)

    def delete(self, ctx: EngineContext, prior: ResourceInstance) -> None:
        ctx.client.delete_context(prior.attributes["id"])

    def import_resource(self, ctx: EngineContext, import_id: str) -> dict[str, Any]:
        organization, context = parse_import_path(import_id, parts=2)
        found = ctx.client.get_context_by_id_or_name(context, organization)
        if found is None:
            raise ResourceImportError(
                f"context '{context}' not found in organization '{organization}'"
            )
        return _attrs(found, organization)
