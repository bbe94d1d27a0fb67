"""Scheduled pipeline handler."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from circleci_provisioner.client.client import timetable_payload
from circleci_provisioner.client.models import DayOfWeek
from circleci_provisioner.core.identifiers import explode_project_slug
from circleci_provisioner.engine.errors import ResourceImportError
from circleci_provisioner.engine.handlers import ResourceHandler

if TYPE_CHECKING:
    from circleci_provisioner.client.models import Schedule
    from circleci_provisioner.core.state import ResourceInstance
    from circleci_provisioner.engine.handlers import EngineContext
    from circleci_provisioner.resources.schedule import ScheduleResource

logger = logging.getLogger(__name__)

_VALID_DAYS = frozenset(d.value for d in DayOfWeek)


def _attrs(schedule: Schedule) -> dict[str, Any]:
    _, organization, project = explode_project_slug(schedule.project_slug)
    return {
        "id": schedule.id,
        "organization": organization,
        "project": project,
        "name": schedule.name,
        "description": schedule.description or "",
        "per_hour": schedule.timetable.per_hour,
        "hours_of_day": list(schedule.timetable.hours_of_day),
        "days_of_week": [d.value for d in schedule.timetable.days_of_week],
        "use_scheduling_system": schedule.uses_scheduling_system,
        "parameters": dict(schedule.parameters),
    }


class ScheduleHandler(ResourceHandler["ScheduleResource"]):
    """CRUD handler for CircleCI scheduled pipelines."""

    def validate(self, ctx: EngineContext, desired: ScheduleResource) -> list[str]:
        _ = ctx
        errors: list[str] = []
        if not 1 <= desired.per_hour <= 60:
            errors.append(f"per_hour must be between 1 and 60, got {desired.per_hour}")
        if not desired.hours_of_day:
            errors.append("hours_of_day must list at least one hour")
        errors.extend(
            f"hours_of_day entries must be between 0 and 23, got {hour}"
            for hour in desired.hours_of_day
            if not 0 <= hour <= 23
        )
        if not desired.days_of_week:
            errors.append("days_of_week must list at least one day")
        errors.extend(
            f"Invalid day specified: {day!r}"
            for day in desired.days_of_week
            if day not in _VALID_DAYS
        )
        return errors

    @staticmethod
    def _body(desired: ScheduleResource) -> dict[str, Any]:
        return {
            "name": desired.name,
            "description": desired.description,
            "timetable": timetable_payload(
                desired.per_hour, desired.hours_of_day, desired.days_of_week
            ),
            "use_scheduling_system": desired.use_scheduling_system,
            "parameters": desired.parameters,
        }

    def create(self, ctx: EngineContext, desired: ScheduleResource) -> dict[str, Any]:
        organization = ctx.resolve_organization(desired.organization)
        created = ctx.client.create_schedule(organization, desired.project, **self._body(desired))
        logger.info("Created schedule %s (%s)", created.name, created.id)
        return _attrs(created)

    def read(self, ctx: EngineContext, prior: ResourceInstance) -> dict[str, Any] | None:
        found = ctx.client.get_schedule(prior.attributes["id"])
        return _attrs(found) if found is not None else None

    def update(
        self, ctx: EngineContext, desired: ScheduleResource, prior: ResourceInstance
    ) -> dict[str, Any]:
        updated = ctx.client.update_schedule(prior.attributes["id"], **self._body(desired))
        return _attrs(updated)

    def delete(self, ctx: EngineContext, prior: ResourceInstance) -> None:
        ctx.client.delete_schedule(prior.attributes["id"])

    def import_resource(self, ctx: EngineContext, import_id: str) -> dict[str, Any]:
        found = ctx.client.get_schedule(import_id)
        if found is None:
            raise ResourceImportError(f"schedule '{import_id}' not found")
        return _attrs(found)
