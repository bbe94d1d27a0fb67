"""Scheduled pipeline resource model."""

from __future__ import annotations

from typing import Annotated, Any, ClassVar

from pydantic import Field

from circleci_provisioner.resources.base import Resource
from circleci_provisioner.resources.markers import Compare, ForceNew


class ScheduleResource(Resource):
    """Scheduled pipeline trigger for a project.

    ``per_hour`` runs are spread across every hour listed in ``hours_of_day``
    (UTC) on every day listed in ``days_of_week``. ``parameters`` are passed
    to the triggered pipeline.

    The address uses ``key`` when set, so ``name`` can be changed in place;
    without a key a rename is a delete plus a create.
    """

    resource_type: ClassVar[str] = "circleci_schedule"
    plan_priority: ClassVar[int] = 60
    address_only_fields: ClassVar[frozenset[str]] = frozenset({"key"})

    project: Annotated[str, ForceNew()] = Field(min_length=1)
    key: str | None = Field(default=None, min_length=1)
    description: str = ""
    per_hour: int
    hours_of_day: Annotated[list[int], Compare("set")]
    days_of_week: Annotated[list[str], Compare("set")]
    use_scheduling_system: bool = False
    parameters: Annotated[dict[str, Any], Compare("exact")] = Field(default_factory=dict)

    def address_key(self) -> str:
        return self._organization_scoped(self.project, self.key or self.name)
