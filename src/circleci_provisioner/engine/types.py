"""Engine types (plan, changes, metadata)."""

from __future__ import annotations

import json
from collections import Counter
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from collections.abc import Iterable


class Action(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    REPLACE = "replace"
    DELETE = "delete"
    NOOP = "no-op"


def _count_actions(changes: Iterable[ResourceChange]) -> dict[str, int]:
    """Count changes per action; every action is present, zero or not."""
    counts = Counter(c.action.value for c in changes)
    return {a.value: counts[a.value] for a in Action}


class PlanMetadata(BaseModel):
    """Where a plan came from; apply refuses a plan whose state has moved on."""

    organization: str | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    destroy: bool
    refresh: bool
    state_lineage: str
    state_serial: int
    state_digest: str
    config_digest: str
    engine_version: str


class ResourceChange(BaseModel):
    address: str
    resource_type: str
    action: Action
    desired: dict[str, Any] | None = None
    prior: dict[str, Any] | None = None
    planned: dict[str, Any] | None = None
    diff: dict[str, Any] | None = None
    # Attribute names whose values are digests of secrets.
    sensitive: list[str] = Field(default_factory=list)
    # Changed attributes that cannot be updated in place.
    forces_replacement: list[str] = Field(default_factory=list)
    # Set when this resource is replaced only because a resource it references is.
    replaced_because: str | None = None


class Plan(BaseModel):
    metadata: PlanMetadata
    changes: list[ResourceChange]

    def summary(self) -> dict[str, int]:
        return _count_actions(self.changes)

    def save(self, path: Path) -> None:
        """Write the plan as JSON, readable by the owner only.

        ``desired`` holds raw secret values, which apply needs to create them.
        """
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.touch(mode=0o600, exist_ok=True)
        path.chmod(0o600)
        content = json.dumps(self.model_dump(mode="json"), indent=2, sort_keys=True)
        path.write_text(content + "\n", encoding="utf-8")

    @classmethod
    def load(cls, path: Path) -> Plan:
        return cls.model_validate_json(Path(path).read_text(encoding="utf-8"))


class ApplyResult(BaseModel):
    applied: list[ResourceChange] = Field(default_factory=list)

    def summary(self) -> dict[str, int]:
        return _count_actions(self.applied)
