"""Apply operations.

Apply executes a graph of operations: one node per resource change plus
barrier nodes that separate phases. Each operation knows how to apply itself
and lists the operations it depends on.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, Protocol

from circleci_provisioner.core.state import ResourceInstance, State, compute_attributes_hash

if TYPE_CHECKING:
    from circleci_provisioner.engine.handlers import EngineContext
    from circleci_provisioner.engine.registry import ResourceTypeRegistration, ResourceTypeRegistry
    from circleci_provisioner.engine.types import ResourceChange

logger = logging.getLogger(__name__)


class Operation(Protocol):
    key: str
    deps: list[str]
    change: ResourceChange | None

    def run(self, *, ctx: EngineContext, state: State, registry: ResourceTypeRegistry) -> bool:
        """Execute this operation.

        Returns:
            True if state should be persisted (serial bump + write).
        """


@dataclass
class BarrierOperation:
    """A no-op node used to enforce ordering between operation phases."""

    key: str
    deps: list[str] = field(default_factory=list)
    change: ResourceChange | None = None

    def run(self, *, ctx: EngineContext, state: State, registry: ResourceTypeRegistry) -> bool:
        _ = ctx, state, registry
        return False


def _desired_object(change: ResourceChange, reg: ResourceTypeRegistration, *, action: str) -> Any:
    if change.desired is None:
        raise ValueError(f"Missing desired config for {action}: {change.address}")

    desired_obj = reg.model.model_validate(change.desired)
    if desired_obj.address != change.address:
        raise ValueError(
            f"Desired address mismatch for {action}: {change.address} != {desired_obj.address}"
        )
    return desired_obj


def _new_instance(
    change: ResourceChange, reg: ResourceTypeRegistration, desired_obj: Any, attrs: dict[str, Any]
) -> ResourceInstance:
    now = datetime.now(UTC)
    return ResourceInstance(
        address=change.address,
        resource_type=change.resource_type,
        name=desired_obj.name,
        schema_version=reg.schema_version,
        attributes=attrs,
        attributes_hash=compute_attributes_hash(attrs),
        dependencies=list(desired_obj.depends_on),
        created_at=now,
        updated_at=now,
    )


@dataclass
class CreateOperation:
    key: str
    change: ResourceChange | None
    deps: list[str] = field(default_factory=list)

    def run(self, *, ctx: EngineContext, state: State, registry: ResourceTypeRegistry) -> bool:
        assert self.change is not None
        reg = registry.get(self.change.resource_type)
        desired_obj = _desired_object(self.change, reg, action="create")

        attrs = reg.handler.create(ctx, desired_obj)
        state.resources[self.change.address] = _new_instance(self.change, reg, desired_obj, attrs)
        return True


@dataclass
class UpdateOperation:
    key: str
    change: ResourceChange | None
    deps: list[str] = field(default_factory=list)

    def run(self, *, ctx: EngineContext, state: State, registry: ResourceTypeRegistry) -> bool:
        assert self.change is not None
        reg = registry.get(self.change.resource_type)
        desired_obj = _desired_object(self.change, reg, action="update")

        prior_inst = state.resources[self.change.address]
        attrs = reg.handler.update(ctx, desired_obj, prior_inst)

        prior_inst.name = desired_obj.name
        prior_inst.attributes = attrs
        prior_inst.attributes_hash = compute_attributes_hash(attrs)
        prior_inst.dependencies = list(desired_obj.depends_on)
        prior_inst.updated_at = datetime.now(UTC)
        return True


@dataclass
class ReplaceOperation:
    """Delete the remote object, then create it again from the desired config."""

    key: str
    change: ResourceChange | None
    deps: list[str] = field(default_factory=list)

    def run(self, *, ctx: EngineContext, state: State, registry: ResourceTypeRegistry) -> bool:
        assert self.change is not None
        reg = registry.get(self.change.resource_type)
        desired_obj = _desired_object(self.change, reg, action="replace")

        prior_inst = state.resources[self.change.address]
        # Deleting a parent (e.g. a context) can take this object with it.
        if reg.handler.read(ctx, prior_inst) is not None:
            logger.debug("Replacing %s: deleting prior object", self.change.address)
            reg.handler.delete(ctx, prior_inst)
        del state.resources[self.change.address]

        attrs = reg.handler.create(ctx, desired_obj)
        inst = _new_instance(self.change, reg, desired_obj, attrs)
        inst.created_at = prior_inst.created_at
        state.resources[self.change.address] = inst
        return True


@dataclass
class DeleteOperation:
    key: str
    change: ResourceChange | None
    deps: list[str] = field(default_factory=list)

    def run(self, *, ctx: EngineContext, state: State, registry: ResourceTypeRegistry) -> bool:
        assert self.change is not None
        reg = registry.get(self.change.resource_type)

        prior_inst = state.resources[self.change.address]
        reg.handler.delete(ctx, prior_inst)
        del state.resources[self.change.address]
        return True
