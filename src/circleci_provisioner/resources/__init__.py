"""Resource models for CircleCI Provisioner."""

from circleci_provisioner.resources.base import Resource
from circleci_provisioner.resources.context import ContextResource
from circleci_provisioner.resources.context_environment_variable import (
    ContextEnvironmentVariableResource,
)
from circleci_provisioner.resources.environment_variable import EnvironmentVariableResource
from circleci_provisioner.resources.markers import Compare, ForceNew, Ref, Sensitive
from circleci_provisioner.resources.schedule import ScheduleResource

__all__ = [
    "Compare",
    "ContextEnvironmentVariableResource",
    "ContextResource",
    "EnvironmentVariableResource",
    "ForceNew",
    "Ref",
    "Resource",
    "ScheduleResource",
    "Sensitive",
]
