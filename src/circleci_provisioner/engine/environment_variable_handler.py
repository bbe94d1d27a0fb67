"""Project environment variable handler."""

from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING, Any

from circleci_provisioner.client.errors import ConflictError
from circleci_provisioner.core.identifiers import decode_id, encode_id
from circleci_provisioner.core.masking import hash_value
from circleci_provisioner.core.migrations import MigrationTable
from circleci_provisioner.engine.errors import ResourceImportError
from circleci_provisioner.engine.handlers import ResourceHandler
from circleci_provisioner.resources.validation import validate_env_var_name

if TYPE_CHECKING:
    from circleci_provisioner.core.state import ResourceInstance
    from circleci_provisioner.engine.handlers import EngineContext
    from circleci_provisioner.resources.environment_variable import EnvironmentVariableResource

logger = logging.getLogger(__name__)

# Secret supplied out of band when importing; the API never returns it.
IMPORT_VALUE_ENV = "CIRCLECI_ENV_VALUE"


def _attrs(organization: str, project: str, name: str, value_digest: str) -> dict[str, Any]:
    return {
        "id": encode_id(organization, project, name),
        "organization": organization,
        "project": project,
        "name": name,
        "value": value_digest,
    }


class EnvironmentVariableHandler(ResourceHandler["EnvironmentVariableResource"]):
    """CRUD handler for CircleCI project environment variables.

    Variables have no server-side id; state identifies them by
    ``ORGANIZATION.PROJECT.NAME``.
    """

    def validate(self, ctx: EngineContext, desired: EnvironmentVariableResource) -> list[str]:
        _ = ctx
        return validate_env_var_name(desired.name)

    def migrations(self, ctx: EngineContext) -> MigrationTable:
        def add_id(raw: dict[str, Any]) -> dict[str, Any]:
            organization = ctx.resolve_organization(raw.get("organization"))
            raw["organization"] = organization
            raw["id"] = encode_id(organization, raw["project"], raw["name"])
            return raw

        return MigrationTable({0: add_id})

    def create(self, ctx: EngineContext, desired: EnvironmentVariableResource) -> dict[str, Any]:
        organization = ctx.resolve_organization(desired.organization)
        client = ctx.client
        if client.has_project_env_var(organization, desired.project, desired.name):
            raise ConflictError(
                f"environment variable '{desired.name}' already exists "
                f"for project '{desired.project}'"
            )

        client.create_project_env_var(organization, desired.project, desired.name, desired.value)
        logger.info("Created environment variable %s/%s", desired.project, desired.name)
        return _attrs(organization, desired.project, desired.name, hash_value(desired.value))

    def read(self, ctx: EngineContext, prior: ResourceInstance) -> dict[str, Any] | None:
        attrs = prior.attributes
        if attrs.get("project") and attrs.get("name"):
            organization = ctx.resolve_organization(attrs.get("organization"))
            project, name = attrs["project"], attrs["name"]
        else:
            organization, project, name = decode_id(attrs["id"])

        if not ctx.client.has_project_env_var(organization, project, name):
            return None
        # The API only echoes a masked value; keep the stored digest.
        return _attrs(organization, project, name, attrs.get("value", ""))

    def delete(self, ctx: EngineContext, prior: ResourceInstance) -> None:
        organization, project, name = decode_id(prior.attributes["id"])
        ctx.client.delete_project_env_var(organization, project, name)

    def import_resource(self, ctx: EngineContext, import_id: str) -> dict[str, Any]:
        organization, project, name = decode_id(import_id)
        if not ctx.client.has_project_env_var(organization, project, name):
            raise ResourceImportError(
                f"environment variable '{name}' does not exist for project '{project}'"
            )
        value = os.environ.get(IMPORT_VALUE_ENV)
        return _attrs(organization, project, name, hash_value(value) if value is not None else "")
