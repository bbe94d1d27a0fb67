"""High-level CircleCI client used by the resource handlers."""

from __future__ import annotations

import logging
import uuid
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

from circleci_provisioner.client.errors import APIError, ConfigurationError
from circleci_provisioner.client.models import (
    Context,
    ContextEnvironmentVariable,
    ProjectEnvironmentVariable,
    Schedule,
)
from circleci_provisioner.core.identifiers import project_slug

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from circleci_provisioner.client.rest import RestClient

logger = logging.getLogger(__name__)


def _seg(value: str) -> str:
    return quote(value, safe="")


def _is_uuid(value: str) -> bool:
    try:
        uuid.UUID(value)
    except ValueError:
        return False
    return True


def timetable_payload(
    per_hour: int, hours_of_day: Sequence[int], days_of_week: Sequence[str]
) -> dict[str, Any]:
    return {
        "per-hour": per_hour,
        "hours-of-day": list(hours_of_day),
        "days-of-week": list(days_of_week),
    }


class CircleCIClient:
    """Operations on project env vars, contexts and schedules.

    ``organization`` is the provider-level default; every method that needs an
    organization accepts an override and falls back to it.
    """

    def __init__(
        self, rest: RestClient, *, vcs_type: str = "github", organization: str | None = None
    ) -> None:
        self._rest = rest
        self._vcs_type = vcs_type
        self._organization = organization or None

    @property
    def rest(self) -> RestClient:
        return self._rest

    @property
    def vcs_type(self) -> str:
        return self._vcs_type

    def organization(self, organization: str | None = None) -> str:
        """Resolve the organization for a request: explicit, then provider default."""
        if organization:
            return organization
        if self._organization:
            return self._organization
        raise ConfigurationError(
            "organization is required: set it on the resource or on the provider "
            "(CIRCLECI_ORGANIZATION)"
        )

    def slug(self, organization: str | None, project: str) -> str:
        return project_slug(self._vcs_type, self.organization(organization), project)

    def owner_slug(self, organization: str | None = None) -> str:
        return f"{self._vcs_type}/{self.organization(organization)}"

    # -- project environment variables -------------------------------------

    def _envvar_path(self, organization: str | None, project: str, name: str | None = None) -> str:
        slug = self.slug(organization, project)
        path = "project/" + "/".join(_seg(p) for p in slug.split("/")) + "/envvar"
        if name is not None:
            path += f"/{_seg(name)}"
        return path

    def get_project_env_var(
        self, organization: str | None, project: str, name: str
    ) -> ProjectEnvironmentVariable | None:
        """Return the (masked) variable, or ``None`` if it does not exist."""
        try:
            payload = self._rest.request("GET", self._envvar_path(organization, project, name))
        except APIError as exc:
            if exc.is_not_found:
                return None
            raise
        return ProjectEnvironmentVariable.model_validate(payload)

    def has_project_env_var(self, organization: str | None, project: str, name: str) -> bool:
        return self.get_project_env_var(organization, project, name) is not None

    def create_project_env_var(
        self, organization: str | None, project: str, name: str, value: str
    ) -> ProjectEnvironmentVariable:
        payload = self._rest.request(
            "POST",
            self._envvar_path(organization, project),
            body={"name": name, "value": value},
        )
        logger.debug("Created environment variable %s in %s", name, project)
        return ProjectEnvironmentVariable.model_validate(payload or {"name": name})

    def delete_project_env_var(self, organization: str | None, project: str, name: str) -> None:
        self._rest.request("DELETE", self._envvar_path(organization, project, name))

    # -- contexts ----------------------------------------------------------

    def get_context(self, context_id: str) -> Context | None:
        try:
            payload = self._rest.request("GET", f"context/{_seg(context_id)}")
        except APIError as exc:
            if exc.is_not_found:
                return None
            raise
        return Context.model_validate(payload)

    def list_contexts(self, organization: str | None = None) -> list[Context]:
        params = {"owner-slug": self.owner_slug(organization), "owner-type": "organization"}
        return [Context.model_validate(item) for item in self._rest.paginate("context", params)]

    def get_context_by_name(self, name: str, organization: str | None = None) -> Context | None:
        for ctx in self.list_contexts(organization):
            if ctx.name == name:
                return ctx
        return None

    def get_context_by_id_or_name(
        self, value: str, organization: str | None = None
    ) -> Context | None:
        """Look up by id when *value* parses as a UUID, otherwise by name."""
        if _is_uuid(value):
            return self.get_context(value)
        return self.get_context_by_name(value, organization)

    def create_context(self, organization: str | None, name: str) -> Context:
        payload = self._rest.request(
            "POST",
            "context",
            body={
                "name": name,
                "owner": {"slug": self.owner_slug(organization), "type": "organization"},
            },
        )
        return Context.model_validate(payload)

    def delete_context(self, context_id: str) -> None:
        self._rest.request("DELETE", f"context/{_seg(context_id)}")

    # -- context environment variables -------------------------------------

    def list_context_env_vars(self, context_id: str) -> list[ContextEnvironmentVariable]:
        path = f"context/{_seg(context_id)}/environment-variable"
        return [ContextEnvironmentVariable.model_validate(i) for i in self._rest.paginate(path)]

    def has_context_env_var(self, context_id: str, variable: str) -> bool:
        """False when either the context or the variable does not exist."""
        try:
            envs = self.list_context_env_vars(context_id)
        except APIError as exc:
            if exc.is_not_found:
                return False
            raise
        return any(e.variable == variable for e in envs)

    def create_context_env_var(self, context_id: str, variable: str, value: str) -> None:
        self._rest.request(
            "PUT",
            f"context/{_seg(context_id)}/environment-variable/{_seg(variable)}",
            body={"value": value},
        )

    def delete_context_env_var(self, context_id: str, variable: str) -> None:
        self._rest.request(
            "DELETE", f"context/{_seg(context_id)}/environment-variable/{_seg(variable)}"
        )

    # -- schedules ---------------------------------------------------------

    def get_schedule(self, schedule_id: str) -> Schedule | None:
        try:
            payload = self._rest.request("GET", f"schedule/{_seg(schedule_id)}")
        except APIError as exc:
            if exc.is_not_found:
                return None
            raise
        return Schedule.model_validate(payload)

    @staticmethod
    def _schedule_body(
        name: str,
        description: str,
        timetable: Mapping[str, Any],
        use_scheduling_system: bool,
        parameters: Mapping[str, Any],
    ) -> dict[str, Any]:
        return {
            "name": name,
            "description": description,
            "attribution-actor": "system" if use_scheduling_system else "current",
            "timetable": dict(timetable),
            "parameters": dict(parameters),
        }

    def create_schedule(
        self,
        organization: str | None,
        project: str,
        *,
        name: str,
        description: str,
        timetable: Mapping[str, Any],
        use_scheduling_system: bool,
        parameters: Mapping[str, Any],
    ) -> Schedule:
        slug = self.slug(organization, project)
        path = "project/" + "/".join(_seg(p) for p in slug.split("/")) + "/schedule"
        payload = self._rest.request(
            "POST",
            path,
            body=self._schedule_body(
                name, description, timetable, use_scheduling_system, parameters
            ),
        )
        return Schedule.model_validate(payload)

    def update_schedule(
        self,
        schedule_id: str,
        *,
        name: str,
        description: str,
        timetable: Mapping[str, Any],
        use_scheduling_system: bool,
        parameters: Mapping[str, Any],
    ) -> Schedule:
        """Send the complete set of mutable fields; partial updates are not used."""
        payload = self._rest.request(
            "PATCH",
            f"schedule/{_seg(schedule_id)}",
            body=self._schedule_body(
                name, description, timetable, use_scheduling_system, parameters
            ),
        )
        return Schedule.model_validate(payload)

    def delete_schedule(self, schedule_id: str) -> None:
        self._rest.request("DELETE", f"schedule/{_seg(schedule_id)}")
