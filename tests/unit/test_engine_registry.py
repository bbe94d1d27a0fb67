from typing import Annotated, Any, ClassVar
from unittest.mock import MagicMock

import pytest

from circleci_provisioner.core.migrations import MigrationError, MigrationTable
from circleci_provisioner.core.provider import CircleCIProvider
from circleci_provisioner.core.state import ResourceInstance
from circleci_provisioner.engine.errors import UnknownResourceTypeError
from circleci_provisioner.engine.handlers import EngineContext, ResourceHandler
from circleci_provisioner.engine.registry import ResourceTypeRegistry
from circleci_provisioner.resources.base import Resource
from circleci_provisioner.resources.markers import Sensitive


class DummyResource(Resource):
    resource_type: ClassVar[str] = "dummy"
    value: int


class DummyHandler(ResourceHandler["DummyResource"]):
    pass


class UntypedResource(Resource):
    pass


def test_registry_register_and_get() -> None:
    registry = ResourceTypeRegistry()
    handler = DummyHandler()

    registry.register(DummyResource, handler)
    reg = registry.get("dummy")

    assert reg.resource_type == "dummy"
    assert reg.model is DummyResource
    assert reg.handler is handler


def test_registry_duplicate_registration() -> None:
    registry = ResourceTypeRegistry()
    handler = DummyHandler()

    registry.register(DummyResource, handler)
    with pytest.raises(ValueError, match="already registered"):
        registry.register(DummyResource, handler)


def test_registry_requires_resource_type() -> None:
    with pytest.raises(ValueError, match="resource_type"):
        ResourceTypeRegistry().register(UntypedResource, DummyHandler())


def test_registry_unknown_type() -> None:
    registry = ResourceTypeRegistry()
    with pytest.raises(UnknownResourceTypeError):
        registry.get("missing")


class TokenResource(Resource):
    resource_type: ClassVar[str] = "token"
    schema_version: ClassVar[int] = 2
    secret: Annotated[str, Sensitive()]


class TokenHandler(ResourceHandler["TokenResource"]):
    def migrations(self, ctx: EngineContext) -> MigrationTable:
        _ = ctx

        def rename_value(raw: dict[str, Any]) -> dict[str, Any]:
            raw["secret"] = raw.pop("value")
            return raw

        def add_id(raw: dict[str, Any]) -> dict[str, Any]:
            raw.setdefault("id", raw["name"])
            return raw

        return MigrationTable({0: rename_value, 1: add_id})


def _token_registry() -> ResourceTypeRegistry:
    registry = ResourceTypeRegistry()
    registry.register(TokenResource, TokenHandler())
    return registry


def _ctx() -> EngineContext:
    return EngineContext(provider=CircleCIProvider.from_client(MagicMock()), organization="acme")


def _instance(schema_version: int, **attrs: Any) -> ResourceInstance:
    return ResourceInstance(
        address="token.t1",
        resource_type="token",
        name="t1",
        schema_version=schema_version,
        attributes=attrs,
    )


def test_current_schema_version() -> None:
    registry = _token_registry()
    registry.register(DummyResource, DummyHandler())

    assert registry.current_schema_version("token") == 2
    assert registry.current_schema_version("dummy") == 0
    with pytest.raises(UnknownResourceTypeError):
        registry.current_schema_version("missing")


def test_sensitive_fields() -> None:
    assert _token_registry().get("token").sensitive_fields() == ["secret"]


def test_upgrade_attributes_runs_every_step() -> None:
    inst = _instance(0, name="t1", value="digest")

    upgraded = _token_registry().upgrade_attributes(_ctx(), inst)

    assert upgraded == {"id": "t1", "name": "t1", "secret": "digest"}
    assert inst.attributes == {"name": "t1", "value": "digest"}


def test_upgrade_attributes_current_version_is_unchanged() -> None:
    inst = _instance(2, id="t1", name="t1", secret="digest")

    assert _token_registry().upgrade_attributes(_ctx(), inst) == inst.attributes


def test_upgrade_attributes_rejects_newer_layout() -> None:
    with pytest.raises(MigrationError, match="newer"):
        _token_registry().upgrade_attributes(_ctx(), _instance(3, name="t1"))


def test_registry_rejects_unknown_address_only_fields() -> None:
    class Labelled(Resource):
        resource_type: ClassVar[str] = "labelled"
        address_only_fields: ClassVar[frozenset[str]] = frozenset({"label"})

    with pytest.raises(ValueError, match="label"):
        ResourceTypeRegistry().register(Labelled, DummyHandler())
