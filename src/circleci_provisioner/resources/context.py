"""Context resource model."""

from __future__ import annotations

from typing import ClassVar

from circleci_provisioner.resources.base import Resource


class ContextResource(Resource):
    """Organization-level CircleCI context.

    Contexts can only be created and deleted; the name is the address, so a
    rename shows up as a delete plus a create.
    """

    resource_type: ClassVar[str] = "circleci_context"
    plan_priority: ClassVar[int] = 10
