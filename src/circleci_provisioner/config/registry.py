"""Default resource type registry factory."""

from __future__ import annotations

from circleci_provisioner.engine.context_environment_variable_handler import (
    ContextEnvironmentVariableHandler,
)
from circleci_provisioner.engine.context_handler import ContextHandler
from circleci_provisioner.engine.environment_variable_handler import EnvironmentVariableHandler
from circleci_provisioner.engine.registry import ResourceTypeRegistry
from circleci_provisioner.engine.schedule_handler import ScheduleHandler
from circleci_provisioner.resources.context import ContextResource
from circleci_provisioner.resources.context_environment_variable import (
    ContextEnvironmentVariableResource,
)
from circleci_provisioner.resources.environment_variable import EnvironmentVariableResource
from circleci_provisioner.resources.schedule import ScheduleResource


def default_registry() -> ResourceTypeRegistry:
    """Create a fresh registry with all built-in resource types and handlers."""
    registry = ResourceTypeRegistry()
    registry.register(ContextResource, ContextHandler())
    registry.register(EnvironmentVariableResource, EnvironmentVariableHandler())
    registry.register(ContextEnvironmentVariableResource, ContextEnvironmentVariableHandler())
    registry.register(ScheduleResource, ScheduleHandler())
    return registry
