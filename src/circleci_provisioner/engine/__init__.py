"""Plan and apply engine for CircleCI resources."""

from circleci_provisioner.engine.engine import CircleCIEngine
from circleci_provisioner.engine.errors import (
    ApplyCanceled,
    ApplyError,
    DependencyCycleError,
    DuplicateAddressError,
    EngineError,
    ResourceImportError,
    StalePlanError,
    StateLockError,
    StateOrganizationMismatchError,
    UnknownResourceTypeError,
    ValidationError,
)
from circleci_provisioner.engine.handlers import EngineContext, PlanContext, ResourceHandler
from circleci_provisioner.engine.registry import ResourceTypeRegistration, ResourceTypeRegistry
from circleci_provisioner.engine.types import (
    Action,
    ApplyResult,
    Plan,
    PlanMetadata,
    ResourceChange,
)

__all__ = [
    "Action",
    "ApplyCanceled",
    "ApplyError",
    "ApplyResult",
    "CircleCIEngine",
    "DependencyCycleError",
    "DuplicateAddressError",
    "EngineContext",
    "EngineError",
    "Plan",
    "PlanContext",
    "PlanMetadata",
    "ResourceChange",
    "ResourceHandler",
    "ResourceImportError",
    "ResourceTypeRegistration",
    "ResourceTypeRegistry",
    "StalePlanError",
    "StateLockError",
    "StateOrganizationMismatchError",
    "UnknownResourceTypeError",
    "ValidationError",
]
