"""Typed views of CircleCI API payloads."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# Actor id CircleCI reports for schedules attributed to the scheduling system.
SCHEDULING_SYSTEM_ACTOR_ID = "d9b3fcaa-6032-405a-8c75-40079ce33c3e"


class DayOfWeek(str, Enum):
    MON = "MON"
    TUE = "TUE"
    WED = "WED"
    THU = "THU"
    FRI = "FRI"
    SAT = "SAT"
    SUN = "SUN"


class _ApiModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class ProjectEnvironmentVariable(_ApiModel):
    name: str
    # Masked by the API (``xxxx`` + suffix); never the real secret.
    value: str = ""


class ContextOwner(_ApiModel):
    slug: str
    type: str = "organization"


class Context(_ApiModel):
    id: str
    name: str
    created_at: str | None = None


class ContextEnvironmentVariable(_ApiModel):
    variable: str
    context_id: str | None = None
    created_at: str | None = None


class Timetable(_ApiModel):
    per_hour: int = Field(alias="per-hour")
    hours_of_day: list[int] = Field(alias="hours-of-day")
    days_of_week: list[DayOfWeek] = Field(alias="days-of-week")


class Actor(_ApiModel):
    id: str
    login: str | None = None
    name: str | None = None


class Schedule(_ApiModel):
    id: str
    name: str
    description: str | None = ""
    project_slug: str = Field(alias="project-slug")
    timetable: Timetable
    actor: Actor | None = None
    parameters: dict[str, Any] = Field(default_factory=dict)

    @property
    def uses_scheduling_system(self) -> bool:
        return self.actor is not None and self.actor.id == SCHEDULING_SYSTEM_ACTOR_ID
