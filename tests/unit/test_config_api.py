"""Tests for config convenience API and engine wiring."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

import pytest

from circleci_provisioner.client import CircleCIClient
from circleci_provisioner.config import (
    _build_drift_changes,
    _engine_from_config,
    lookup_context,
    plan_and_apply,
    save_state,
)
from circleci_provisioner.config.loader import ConfigError
from circleci_provisioner.config.schema import Config, ProviderConfig
from circleci_provisioner.core.state import ResourceInstance, State
from circleci_provisioner.engine.types import Action


def _config(**provider: object) -> Config:
    return Config(provider=ProviderConfig(**provider))


def _inst(address: str, **attrs: object) -> ResourceInstance:
    resource_type, _, name = address.partition(".")
    return ResourceInstance(
        address=address, resource_type=resource_type, name=name, attributes=dict(attrs)
    )


class TestEngineFromConfig:
    def test_builds_engine_with_organization(self) -> None:
        engine = _engine_from_config(_config(token="t", organization="acme"))
        assert engine.organization == "acme"

    def test_builds_engine_with_state_path(self) -> None:
        config = Config(provider=ProviderConfig(token="t"), state_path=Path("custom.json"))
        engine = _engine_from_config(config)
        assert engine.state_path == Path("custom.json")

    def test_missing_token_raises(self) -> None:
        with pytest.raises(ConfigError, match="CIRCLECI_TOKEN"):
            _engine_from_config(_config(organization="acme"))

    def test_provider_settings_passed_through(self) -> None:
        engine = _engine_from_config(
            _config(token="t", vcs_type="bitbucket", url="https://cci.example/api/v2/", timeout=5)
        )
        provider = engine._provider
        assert provider.vcs_type == "bitbucket"
        assert provider.url == "https://cci.example/api/v2/"
        assert provider.timeout == 5
        assert provider.auth is not None
        assert provider.auth.token.get_secret_value() == "t"

    def test_lock_timeout_passed_through(self) -> None:
        config = Config(provider=ProviderConfig(token="t"), lock_timeout=2.5)
        assert _engine_from_config(config)._lock_timeout == 2.5


class TestLookupContext:
    def test_uses_provider_organization(self) -> None:
        with patch("circleci_provisioner.config._lookup_context") as mock_lookup:
            mock_lookup.return_value = {"id": "ctx-1", "name": "deploy", "organization": "acme"}

            found = lookup_context(_config(token="t", organization="acme"), "deploy")

        assert found is not None
        assert found["id"] == "ctx-1"
        client, name, org = mock_lookup.call_args.args
        assert isinstance(client, CircleCIClient)
        assert (name, org) == ("deploy", "acme")

    def test_explicit_organization_wins(self) -> None:
        with patch(
            "circleci_provisioner.config._lookup_context", return_value=None
        ) as mock_lookup:
            assert lookup_context(_config(token="t"), "deploy", organization="other") is None

        assert mock_lookup.call_args.args[2] == "other"

    def test_organization_required(self) -> None:
        with pytest.raises(ConfigError, match="organization is required"):
            lookup_context(_config(token="t"), "deploy")


class TestDriftChanges:
    def test_no_drift(self) -> None:
        inst = _inst("circleci_context.deploy", id="1", name="deploy")
        old = State(resources={inst.address: inst})

        assert _build_drift_changes(old, old.model_copy(deep=True)) == []

    def test_changed_attributes(self) -> None:
        addr = "circleci_schedule.web.n"
        old = State(resources={addr: _inst(addr, per_hour=1)})
        new = State(resources={addr: _inst(addr, per_hour=2)})

        (change,) = _build_drift_changes(old, new)

        assert change.action == Action.UPDATE
        assert change.diff == {"per_hour": {"from": 1, "to": 2}}

    def test_sensitive_attributes_marked(self) -> None:
        addr = "circleci_environment_variable.web.API_KEY"
        old = State(resources={addr: _inst(addr, value="digest-a")})
        new = State(resources={addr: _inst(addr, value="digest-b")})

        (change,) = _build_drift_changes(old, new)

        assert change.sensitive == ["value"]

    def test_removed_remotely(self) -> None:
        inst = _inst("circleci_context.deploy", id="1")
        old = State(resources={inst.address: inst})

        (change,) = _build_drift_changes(old, State())

        assert change.action == Action.DELETE
        assert change.address == "circleci_context.deploy"
        assert change.prior == {"id": "1"}


def test_save_state_bumps_serial(tmp_path: Path) -> None:
    config = Config(provider=ProviderConfig(), state_path=tmp_path / "state.json")
    state = State(organization="acme", serial=3)

    save_state(config, state)

    assert State.load(tmp_path / "state.json").serial == 4


def test_plan_and_apply_applies_the_fresh_plan() -> None:
    config = _config()

    with (
        patch("circleci_provisioner.config.plan") as mock_plan,
        patch("circleci_provisioner.config.apply") as mock_apply,
    ):
        result = plan_and_apply(config, destroy=True)

    mock_plan.assert_called_once_with(config, destroy=True, refresh=True)
    mock_apply.assert_called_once_with(mock_plan.return_value, config)
    assert result is mock_apply.return_value
