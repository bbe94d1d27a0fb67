"""Context environment variable handler."""

from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING, Any

from circleci_provisioner.client.errors import ConfigurationError
from circleci_provisioner.core.identifiers import encode_import_path, parse_import_path
from circleci_provisioner.core.masking import hash_value
from circleci_provisioner.engine.environment_variable_handler import IMPORT_VALUE_ENV
from circleci_provisioner.engine.errors import ResourceImportError
from circleci_provisioner.engine.handlers import ResourceHandler
from circleci_provisioner.resources.validation import validate_env_var_name

if TYPE_CHECKING:
    from circleci_provisioner.client.models import Context
    from circleci_provisioner.core.state import ResourceInstance
    from circleci_provisioner.engine.handlers import EngineContext, PlanContext
    from circleci_provisioner.resources.context_environment_variable import (
        ContextEnvironmentVariableResource,
    )

logger = logging.getLogger(__name__)


def _attrs(
    organization: str, context: str, context_id: str, name: str, value_digest: str
) -> dict[str, Any]:
    return {
        "id": encode_import_path(organization, context_id, name),
        "organization": organization,
        "context": context,
        "context_id": context_id,
        "name": name,
        "value": value_digest,
    }


class ContextEnvironmentVariableHandler(ResourceHandler["ContextEnvironmentVariableResource"]):
    """CRUD handler for environment variables stored in a context.

    Setting a variable is an upsert (``PUT``), but any change to the value or
    the target context replaces the resource.
    """

    def validate(
        self, ctx: EngineContext, desired: ContextEnvironmentVariableResource
    ) -> list[str]:
        _ = ctx
        return validate_env_var_name(desired.name)

    def validate_plan(
        self,
        ctx: EngineContext,
        desired: ContextEnvironmentVariableResource,
        plan_ctx: PlanContext,
    ) -> list[str]:
        organization = desired.organization or ctx.organization
        errors: list[str] = []
        for context in plan_ctx.declared("circleci_context", desired.context):
            declared_in = context.organization or ctx.organization
            if declared_in != organization:
                errors.append(
                    f"context '{desired.context}' is declared in organization "
                    f"'{declared_in}', not '{organization}'"
                )
        return errors

    def _context(self, ctx: EngineContext, context: str, organization: str) -> Context:
        found = ctx.client.get_context_by_id_or_name(context, organization)
        if found is None:
            raise ConfigurationError(
                f"context '{context}' not found in organization '{organization}'"
            )
        return found

    def create(
        self, ctx: EngineContext, desired: ContextEnvironmentVariableResource
    ) -> dict[str, Any]:
        organization = ctx.resolve_organization(desired.organization)
        context = self._context(ctx, desired.context, organization)
        ctx.client.create_context_env_var(context.id, desired.name, desired.value)
        logger.info("Set %s in context %s", desired.name, context.name)
        return _attrs(
            organization, desired.context, context.id, desired.name, hash_value(desired.value)
        )

    def read(self, ctx: EngineContext, prior: ResourceInstance) -> dict[str, Any] | None:
        attrs = prior.attributes
        if not ctx.client.has_context_env_var(attrs["context_id"], attrs["name"]):
            return None
        return _attrs(
            attrs["organization"],
            attrs["context"],
            attrs["context_id"],
            attrs["name"],
            attrs.get("value", ""),
        )

    def delete(self, ctx: EngineContext, prior: ResourceInstance) -> None:
        ctx.client.delete_context_env_var(prior.attributes["context_id"], prior.attributes["name"])

    def import_resource(self, ctx: EngineContext, import_id: str) -> dict[str, Any]:
        value = os.environ.get(IMPORT_VALUE_ENV)
        if value is None:
            raise ConfigurationError(
                f"{IMPORT_VALUE_ENV} must be set to the variable's value to import it"
            )
        organization, context_ref, name = parse_import_path(import_id, parts=3)
        context = ctx.client.get_context_by_id_or_name(context_ref, organization)
        if context is None or not ctx.client.has_context_env_var(context.id, name):
            raise ResourceImportError(
                f"environment variable '{name}' not found in context '{context_ref}'"
            )
        return _attrs(organization, context_ref, context.id, name, hash_value(value))
