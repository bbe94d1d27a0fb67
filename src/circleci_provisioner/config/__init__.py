"""YAML configuration loading and convenience plan/apply API."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from pydantic import SecretStr

from circleci_provisioner.config.loader import ConfigError, load_config
from circleci_provisioner.config.registry import default_registry
from circleci_provisioner.config.schema import Config, ProviderConfig
from circleci_provisioner.core.provider import CircleCIProvider, TokenAuth
from circleci_provisioner.core.state import ResourceInstance, State
from circleci_provisioner.engine.context_handler import lookup_context as _lookup_context
from circleci_provisioner.engine.engine import CircleCIEngine, ProgressCallback
from circleci_provisioner.engine.lock import StateLock
from circleci_provisioner.engine.types import Action, ResourceChange

if TYPE_CHECKING:
    from pathlib import Path

    from circleci_provisioner.engine.registry import ResourceTypeRegistry
    from circleci_provisioner.engine.types import ApplyResult, Plan

__all__ = [
    "Config",
    "ConfigError",
    "ProviderConfig",
    "State",
    "apply",
    "drift",
    "import_resource",
    "load",
    "load_config",
    "lookup_context",
    "plan",
    "plan_and_apply",
    "refresh",
    "save_state",
]


def load(path: Path | str) -> Config:
    """Load a YAML configuration file."""
    return load_config(path)


def _provider_from_config(config: Config) -> CircleCIProvider:
    if not config.provider.token:
        raise ConfigError("provider.token is required (set CIRCLECI_TOKEN env var)")
    return CircleCIProvider(
        url=config.provider.url,
        vcs_type=config.provider.vcs_type,
        organization=config.provider.organization,
        auth=TokenAuth(token=SecretStr(config.provider.token)),
        timeout=config.provider.timeout,
    )


def _engine_from_config(config: Config) -> CircleCIEngine:
    """Build a ``CircleCIEngine`` from a ``Config`` instance."""
    return CircleCIEngine(
        provider=_provider_from_config(config),
        state_path=config.state_path,
        registry=default_registry(),
        lock_timeout=config.lock_timeout,
    )


def plan(config: Config, *, destroy: bool = False, refresh: bool = True) -> Plan:
    """Plan changes for the given configuration."""
    engine = _engine_from_config(config)
    return engine.plan(config.resources, destroy=destroy, refresh=refresh)


def apply(
    plan_obj: Plan, config: Config, *, progress: ProgressCallback | None = None
) -> ApplyResult:
    """Apply a previously computed plan."""
    engine = _engine_from_config(config)
    return engine.apply(plan_obj, progress=progress)


def plan_and_apply(config: Config, *, destroy: bool = False, refresh: bool = True) -> ApplyResult:
    """Plan and apply in one step."""
    plan_obj = plan(config, destroy=destroy, refresh=refresh)
    return apply(plan_obj, config)


def import_resource(config: Config, address: str, import_id: str) -> ResourceInstance:
    """Adopt an existing CircleCI object into state under *address*."""
    engine = _engine_from_config(config)
    return engine.import_resource(address, import_id)


def lookup_context(
    config: Config, name: str, *, organization: str | None = None
) -> dict[str, Any] | None:
    """Find a context by name in *organization* (default: the provider's)."""
    provider = _provider_from_config(config)
    org = organization or provider.organization
    if not org:
        raise ConfigError(
            "organization is required (pass --organization or set CIRCLECI_ORGANIZATION)"
        )
    return _lookup_context(provider.client, name, org)


def refresh(config: Config) -> tuple[list[ResourceChange], State]:
    """Refresh state from the live CircleCI API (not persisted).

    Returns the list of drift changes and the new state. Call
    :func:`save_state` to persist the returned state to disk.
    """
    engine = _engine_from_config(config)
    old_state, new_state = engine.refresh()
    return _build_drift_changes(old_state, new_state), new_state


def save_state(config: Config, state: State) -> None:
    """Persist state to disk."""
    with StateLock(config.state_path, timeout=config.lock_timeout):
        state.serial += 1
        state.save(config.state_path)


def drift(config: Config) -> list[ResourceChange]:
    """Detect drift between state file and live CircleCI."""
    changes, _ = refresh(config)
    return changes


def _build_drift_changes(
    old_state: State, new_state: State, registry: ResourceTypeRegistry | None = None
) -> list[ResourceChange]:
    """Compare old vs new state and return a list of drift changes."""
    registry = registry or default_registry()

    def sensitive(resource_type: str) -> list[str]:
        return registry.get(resource_type).sensitive_fields()

    changes: list[ResourceChange] = []
    for addr, inst in sorted(new_state.resources.items()):
        old_inst = old_state.resources.get(addr)
        if old_inst is None or old_inst.attributes == inst.attributes:
            continue
        old, new = old_inst.attributes, inst.attributes
        changes.append(
            ResourceChange(
                address=addr,
                resource_type=inst.resource_type,
                action=Action.UPDATE,
                prior=dict(old),
                planned=dict(new),
                diff={
                    k: {"from": old.get(k), "to": new.get(k)}
                    for k in sorted(set(old) | set(new))
                    if old.get(k) != new.get(k)
                },
                sensitive=sensitive(inst.resource_type),
            )
        )
    changes.extend(
        ResourceChange(
            address=addr,
            resource_type=inst.resource_type,
            action=Action.DELETE,
            prior=dict(inst.attributes),
            sensitive=sensitive(inst.resource_type),
        )
        for addr, inst in sorted(old_state.resources.items())
        if addr not in new_state.resources
    )
    return changes
