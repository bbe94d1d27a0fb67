"""Plan/apply engine."""

from __future__ import annotations

import contextlib
import hashlib
import json
import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, Literal

from pydantic import ValidationError as PydanticValidationError

from circleci_provisioner import __version__
from circleci_provisioner.core.masking import hash_value
from circleci_provisioner.core.state import (
    ResourceInstance,
    State,
    compute_attributes_hash,
    compute_state_digest,
)
from circleci_provisioner.engine.errors import (
    ApplyCanceled,
    ApplyError,
    DuplicateAddressError,
    ResourceImportError,
    StalePlanError,
    StateOrganizationMismatchError,
    ValidationError,
)
from circleci_provisioner.engine.graph import DependencyGraph
from circleci_provisioner.engine.handlers import EngineContext, PlanContext
from circleci_provisioner.engine.lock import StateLock
from circleci_provisioner.engine.operations import (
    BarrierOperation,
    CreateOperation,
    DeleteOperation,
    ReplaceOperation,
    UpdateOperation,
)
from circleci_provisioner.engine.types import (
    Action,
    ApplyResult,
    Plan,
    PlanMetadata,
    ResourceChange,
)
from circleci_provisioner.resources.markers import (
    CompareStrategy,
    collect_compare_strategies,
    force_new_fields,
    sensitive_fields,
)

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ResourceChange, Literal["start", "done"]], None]

_ResourceOperation = CreateOperation | UpdateOperation | ReplaceOperation | DeleteOperation

_OPERATION_TYPES: dict[Action, type[_ResourceOperation]] = {
    Action.CREATE: CreateOperation,
    Action.UPDATE: UpdateOperation,
    Action.REPLACE: ReplaceOperation,
    Action.DELETE: DeleteOperation,
}

_APPLY_BARRIER = "__engine__.apply_barrier"

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

    from circleci_provisioner.core.provider import CircleCIProvider
    from circleci_provisioner.engine.operations import Operation
    from circleci_provisioner.engine.registry import (
        ResourceTypeRegistration,
        ResourceTypeRegistry,
    )
    from circleci_provisioner.resources.base import Resource


def _values_differ(
    desired: Any,
    prior: Any,
    *,
    strategy: CompareStrategy | None = None,
) -> bool:
    """Check whether a desired value differs from the prior (stored) value.

    Comparison semantics depend on *strategy*:

    - ``strategy="set"``:
      - If both values are lists, they are compared as sets (order-insensitive).
      - Other types fall back to strict equality.
    - ``strategy="exact"``:
      - Values are compared with strict equality.
      - For dicts, extra or missing keys are treated as differences.
    - ``strategy=None`` or ``"partial"``:
      - For dict values, only keys present in *desired* are compared.
      - Extra keys present only in *prior* (server-added defaults) are ignored.
      - Non-dict values use strict equality.
    """
    if strategy == "set":
        if isinstance(desired, list) and isinstance(prior, list):
            return set(desired) != set(prior)
        return desired != prior

    if strategy == "exact":
        return desired != prior

    if isinstance(desired, dict) and isinstance(prior, dict):
        return any(_values_differ(v, prior.get(k), strategy="partial") for k, v in desired.items())
    return desired != prior


def planned_attributes(resource: Resource) -> dict[str, Any]:
    """Desired attributes in their stored form: secrets replaced by digests."""
    excluded = {"address", "depends_on", *resource.address_only_fields}
    planned = resource.model_dump(exclude_none=True, exclude=excluded)
    for name in sensitive_fields(resource):
        if isinstance(planned.get(name), str):
            planned[name] = hash_value(planned[name])
    return planned


def _canonical_json(obj: Any) -> str:
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), default=str)


def _sha256_hex(payload: str) -> str:
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def _compute_config_digest(resources: Sequence[Resource]) -> str:
    items = sorted(
        (
            {
                "address": r.address,
                "resource_type": r.resource_type,
                "planned": planned_attributes(r),
            }
            for r in resources
        ),
        key=lambda x: x["address"],
    )
    return _sha256_hex(_canonical_json(items))


class CircleCIEngine:
    """Terraform-like plan/apply engine for CircleCI resources."""

    def __init__(
        self,
        *,
        provider: CircleCIProvider,
        state_path: Path,
        registry: ResourceTypeRegistry,
        lock_timeout: float | None = None,
    ) -> None:
        self._provider = provider
        self._organization = provider.organization
        self._state_path = state_path
        self._registry = registry
        self._lock_timeout = lock_timeout

    @property
    def organization(self) -> str | None:
        return self._organization

    @property
    def state_path(self) -> Path:
        return self._state_path

    def _lock(self) -> StateLock:
        return StateLock(self._state_path, timeout=self._lock_timeout)

    def _ctx(self) -> EngineContext:
        return EngineContext(provider=self._provider, organization=self._organization)

    def _load_state(self) -> State:
        state = State.load_or_create(self._state_path, organization=self._organization)
        if state.organization != self._organization:
            raise StateOrganizationMismatchError(self._organization, state.organization)
        self._upgrade_state(state)
        logger.debug("State loaded: serial=%d, %d resources", state.serial, len(state.resources))
        return state

    def _load_state_for_apply(self, plan: Plan) -> State:
        if self._state_path.exists():
            return self._load_state()
        # If no state exists, bootstrap from the plan metadata (saved-plan semantics).
        return State(
            organization=self._organization,
            lineage=plan.metadata.state_lineage,
            serial=plan.metadata.state_serial,
        )

    def _upgrade_state(self, state: State) -> None:
        """Bring every instance to its resource type's current schema version (in memory)."""
        ctx = self._ctx()
        for inst in state.resources.values():
            target = self._registry.current_schema_version(inst.resource_type)
            if inst.schema_version == target:
                continue
            logger.info(
                "Upgrading %s from schema version %d to %d",
                inst.address,
                inst.schema_version,
                target,
            )
            inst.attributes = self._registry.upgrade_attributes(ctx, inst)
            inst.attributes_hash = compute_attributes_hash(inst.attributes)
            inst.schema_version = target

    def _refresh_state_in_place(self, state: State) -> bool:
        logger.debug("Refreshing state from CircleCI")
        changed = False
        ctx = self._ctx()

        for address, inst in list(state.resources.items()):
            handler = self._registry.get(inst.resource_type).handler
            attrs = handler.read(ctx, inst)
            if attrs is None:
                logger.info("%s no longer exists; removing from state", address)
                del state.resources[address]
                changed = True
                continue

            new_hash = compute_attributes_hash(attrs)
            if attrs != inst.attributes or new_hash != inst.attributes_hash:
                inst.attributes = attrs
                inst.attributes_hash = new_hash
                inst.updated_at = datetime.now(UTC)
                changed = True

        logger.debug("State refreshed, changed=%s", changed)
        return changed

    def refresh(self, *, persist: bool = False) -> tuple[State, State]:
        """Refresh state from CircleCI. Returns (pre_refresh, post_refresh)."""
        with self._lock():
            state = self._load_state()
            snapshot = state.model_copy(deep=True)
            changed = self._refresh_state_in_place(state)
            if changed and persist:
                state.serial += 1
                state.save(self._state_path)
            return snapshot, state

    @staticmethod
    def _resolve_deps(
        desired_by_addr: dict[str, Resource],
    ) -> tuple[dict[str, list[str]], dict[str, list[str]]]:
        """Build dependency maps: explicit depends_on + implicit from ``Ref`` markers.

        Returns ``(all_deps, ref_deps)``, both addr -> dep list, without
        mutating the Resource objects.
        """
        name_to_addrs: dict[str, list[str]] = {}
        typed_name_to_addrs: dict[tuple[str, str], list[str]] = {}
        for addr, r in desired_by_addr.items():
            name_to_addrs.setdefault(r.name, []).append(addr)
            typed_name_to_addrs.setdefault((r.resource_type, r.name), []).append(addr)

        dep_map: dict[str, list[str]] = {}
        ref_map: dict[str, list[str]] = {}
        for addr, r in desired_by_addr.items():
            deps = list(r.depends_on)
            refs: list[str] = []
            for ref in r.references():
                if ref.resource_type is not None:
                    ref_addrs = typed_name_to_addrs.get((ref.resource_type, ref.name), [])
                else:
                    ref_addrs = name_to_addrs.get(ref.name, [])
                refs.extend(a for a in ref_addrs if a != addr and a not in refs)
            deps.extend(a for a in refs if a not in deps)
            dep_map[addr] = deps
            ref_map[addr] = refs
        return dep_map, ref_map

    def _classify_change(
        self,
        addr: str,
        resource: Resource,
        state: State,
        deps: list[str],
    ) -> ResourceChange:
        """Classify a single resource as CREATE, UPDATE, REPLACE, or NOOP."""
        desired_dump = resource.model_dump(exclude_none=True, exclude={"address"})
        desired_dump["depends_on"] = deps
        planned = planned_attributes(resource)
        sensitive = sorted(sensitive_fields(resource))

        prior_inst = state.resources.get(addr)
        if prior_inst is None:
            logger.debug("Classified %s as create", addr)
            return ResourceChange(
                address=addr,
                resource_type=resource.resource_type,
                action=Action.CREATE,
                desired=desired_dump,
                planned=planned,
                sensitive=sensitive,
            )

        prior = dict(prior_inst.attributes)
        compare_strategies = collect_compare_strategies(resource)
        diff = {
            k: {"from": prior.get(k), "to": v}
            for k, v in planned.items()
            if _values_differ(v, prior.get(k), strategy=compare_strategies.get(k))
        }

        forcing = sorted(force_new_fields(resource) & diff.keys())
        if not diff:
            action = Action.NOOP
        elif forcing:
            action = Action.REPLACE
        else:
            action = Action.UPDATE
        logger.debug("Classified %s as %s", addr, action.value)
        return ResourceChange(
            address=addr,
            resource_type=resource.resource_type,
            action=action,
            desired=desired_dump,
            prior=prior,
            planned=planned,
            diff=diff or None,
            sensitive=sensitive,
            forces_replacement=forcing,
        )

    @staticmethod
    def _cascade_replacements(
        changes: dict[str, ResourceChange], ref_map: dict[str, list[str]]
    ) -> None:
        """Replace existing resources that reference a replaced resource."""
        graph = DependencyGraph(changes.keys(), ref_map)
        replaced = [a for a, c in changes.items() if c.action == Action.REPLACE]
        for addr in replaced:
            for dependent in sorted(graph.transitive_dependents(addr)):
                change = changes[dependent]
                if change.action in (Action.NOOP, Action.UPDATE):
                    logger.debug("Replacing %s because %s is replaced", dependent, addr)
                    change.action = Action.REPLACE
                    change.replaced_because = addr

    def _plan_deletes(self, state: State, addrs: set[str]) -> list[ResourceChange]:
        """Plan delete changes for the given addresses in reverse dependency order."""
        order = self._delete_order(state, addrs)
        changes: list[ResourceChange] = []
        for addr in order:
            inst = state.resources[addr]
            reg = self._registry.get(inst.resource_type)
            changes.append(
                ResourceChange(
                    address=addr,
                    resource_type=inst.resource_type,
                    action=Action.DELETE,
                    prior=dict(inst.attributes),
                    sensitive=reg.sensitive_fields(),
                )
            )
        return changes

    def _validate(self, desired_by_addr: dict[str, Resource], state: State) -> None:
        ctx = self._ctx()
        errors: list[str] = []
        for r in desired_by_addr.values():
            reg = self._registry.get(r.resource_type)
            errors.extend(f"{r.address}: {e}" for e in reg.handler.validate(ctx, r))
        plan_ctx = PlanContext(desired_by_addr, state)
        for r in desired_by_addr.values():
            reg = self._registry.get(r.resource_type)
            errors.extend(
                f"{r.address}: {e}" for e in reg.handler.validate_plan(ctx, r, plan_ctx)
            )
            errors.extend(
                f"Resource '{r.address}' depends on unknown address '{dep}'"
                for dep in r.depends_on
                if not plan_ctx.address_exists(dep)
            )
        if errors:
            raise ValidationError(errors)

    def plan(
        self, resources: Sequence[Resource], *, destroy: bool = False, refresh: bool = True
    ) -> Plan:
        logger.info(
            "Planning %d resources (destroy=%s, refresh=%s)", len(resources), destroy, refresh
        )
        # Only lock when refresh may write state.
        lock_cm = self._lock() if refresh else contextlib.nullcontext()
        with lock_cm:
            state = self._load_state()

            if refresh:
                changed = self._refresh_state_in_place(state)
                if changed:
                    state.serial += 1
                    state.save(self._state_path)

            desired_by_addr: dict[str, Resource] = {}
            for r in resources:
                if r.address in desired_by_addr:
                    raise DuplicateAddressError(r.address)
                self._registry.get(r.resource_type)
                desired_by_addr[r.address] = r

            if not destroy:
                self._validate(desired_by_addr, state)

            desired_addrs = set(desired_by_addr)
            state_addrs = set(state.resources)

            if destroy:
                changes = self._plan_deletes(state, state_addrs)
            else:
                dep_map, ref_map = self._resolve_deps(desired_by_addr)
                topo_deps = {a: [d for d in ds if d in desired_addrs] for a, ds in dep_map.items()}
                priorities = {addr: r.plan_priority for addr, r in desired_by_addr.items()}
                order = DependencyGraph(
                    desired_addrs, topo_deps, priorities=priorities
                ).topological_order()
                by_addr = {
                    addr: self._classify_change(addr, desired_by_addr[addr], state, dep_map[addr])
                    for addr in order
                }
                self._cascade_replacements(by_addr, ref_map)
                changes = [by_addr[addr] for addr in order]
                changes.extend(self._plan_deletes(state, state_addrs - desired_addrs))

            metadata = PlanMetadata(
                organization=self._organization,
                created_at=datetime.now(UTC),
                destroy=destroy,
                refresh=refresh,
                state_lineage=state.lineage,
                state_serial=state.serial,
                state_digest=compute_state_digest(state),
                config_digest=_compute_config_digest([] if destroy else resources),
                engine_version=__version__,
            )

            return Plan(metadata=metadata, changes=changes)

    def _delete_order(self, state: State, delete_set: set[str]) -> list[str]:
        dep_map: dict[str, list[str]] = {}
        priorities: dict[str, int] = {}
        for addr in delete_set:
            inst = state.resources[addr]
            dep_map[addr] = [d for d in inst.dependencies if d in delete_set]
            priorities[addr] = self._registry.get(inst.resource_type).model.plan_priority
        return DependencyGraph(
            delete_set, dep_map, priorities=priorities
        ).reverse_topological_order()

    def _operation_order(self, plan: Plan, state: State) -> list[Operation]:
        """Compute a deterministic operation order using an operation graph."""
        ops = self._build_apply_operations(plan, state)
        dep_map = {k: op.deps for k, op in ops.items()}
        priorities: dict[str, int] = {}
        for k, op in ops.items():
            if op.change is not None:
                reg = self._registry.get(op.change.resource_type)
                priorities[k] = reg.model.plan_priority
        order = DependencyGraph(ops.keys(), dep_map, priorities=priorities).topological_order()
        return [ops[k] for k in order]

    def _build_apply_operations(self, plan: Plan, state: State) -> dict[str, Operation]:
        ops: dict[str, Operation] = {}
        writes: set[str] = set()
        deletes: set[str] = set()

        for c in plan.changes:
            if c.action == Action.NOOP:
                continue
            op_type = _OPERATION_TYPES.get(c.action)
            if op_type is None:
                raise ValueError(f"Unknown action: {c.action}")
            if c.address in ops:
                raise ValueError(f"Duplicate operation key in plan: {c.address}")
            ops[c.address] = op_type(key=c.address, change=c)
            (deletes if c.action == Action.DELETE else writes).add(c.address)

        # Writes follow their dependencies.
        for addr in writes:
            change = ops[addr].change
            assert change is not None
            desired = change.desired
            if desired is None:
                raise ValueError(f"Missing desired config for {addr}")
            deps = desired.get("depends_on") or []
            if not isinstance(deps, list) or not all(isinstance(d, str) for d in deps):
                raise ValueError(f"Invalid depends_on for {addr}: expected list[str]")
            ops[addr].deps.extend(d for d in deps if d in writes)

        # Deletes run dependents first.
        for addr in deletes:
            inst = state.resources.get(addr)
            if inst is None:
                raise ValueError(f"Missing state for delete operation: {addr}")
            for dep in inst.dependencies:
                if dep in deletes:
                    ops[dep].deps.append(addr)

        # All writes finish before the first delete.
        if writes and deletes:
            if _APPLY_BARRIER in ops:
                raise ValueError(f"Barrier operation key conflicts with plan: {_APPLY_BARRIER}")
            ops[_APPLY_BARRIER] = BarrierOperation(key=_APPLY_BARRIER, deps=sorted(writes))
            for addr in deletes:
                ops[addr].deps.append(_APPLY_BARRIER)

        return ops

    @staticmethod
    def _check_plan_is_current(plan: Plan, state: State) -> None:
        checks = (
            ("lineage", state.lineage, plan.metadata.state_lineage),
            ("serial", state.serial, plan.metadata.state_serial),
            ("digest", compute_state_digest(state), plan.metadata.state_digest),
        )
        for what, current, planned in checks:
            if current != planned:
                raise StalePlanError(f"State {what} changed; re-run plan")

    def apply(self, plan: Plan, *, progress: ProgressCallback | None = None) -> ApplyResult:
        with self._lock():
            state = self._load_state_for_apply(plan)
            if state.organization != self._organization:
                raise StateOrganizationMismatchError(self._organization, state.organization)
            self._check_plan_is_current(plan, state)

            ctx = self._ctx()
            applied: list[ResourceChange] = []
            ordered_ops = self._operation_order(plan, state)
            logger.info("Applying %d operations", len(ordered_ops))

            try:
                for op in ordered_ops:
                    logger.debug("Applying %s: %s", op.key, type(op).__name__)
                    if progress and op.change is not None:
                        progress(op.change, "start")
                    did_change = op.run(ctx=ctx, state=state, registry=self._registry)
                    if not did_change:
                        continue

                    assert op.change is not None
                    if progress:
                        progress(op.change, "done")

                    state.serial += 1
                    state.save(self._state_path)
                    applied.append(op.change)
            except KeyboardInterrupt as e:  # pragma: no cover
                raise ApplyCanceled("Apply canceled") from e
            except Exception as e:
                raise ApplyError(applied=applied, address=op.key, message=str(e)) from e

            return ApplyResult(applied=applied)

    def _addresses_for(self, reg: ResourceTypeRegistration, attrs: dict[str, Any]) -> set[str]:
        """Addresses a config could give the imported object.

        A resource in the provider organization may omit ``organization``.
        """
        fields = {k: v for k, v in attrs.items() if k in reg.model.model_fields}
        variants = [fields]
        if fields.get("organization") == self._organization:
            variants.append({k: v for k, v in fields.items() if k != "organization"})
        try:
            return {reg.model.model_validate(f).address for f in variants}
        except PydanticValidationError as exc:
            raise ResourceImportError(
                f"Imported attributes do not describe a {reg.resource_type}: {exc}"
            ) from exc

    def import_resource(self, address: str, import_id: str) -> ResourceInstance:
        """Bring an existing remote object under management at *address*."""
        resource_type, sep, key = address.partition(".")
        if not sep or not key:
            raise ResourceImportError(
                f"Invalid resource address '{address}': expected <resource_type>.<name>"
            )
        reg = self._registry.get(resource_type)

        with self._lock():
            state = self._load_state()
            if address in state.resources:
                raise ResourceImportError(f"Resource already managed: {address}")

            logger.info("Importing %s from %s", address, import_id)
            attrs = reg.handler.import_resource(self._ctx(), import_id)
            derived = self._addresses_for(reg, attrs)
            if address not in derived:
                choices = " or ".join(sorted(derived))
                raise ResourceImportError(
                    f"Import id '{import_id}' identifies {choices}, not {address}"
                )

            now = datetime.now(UTC)
            inst = ResourceInstance(
                address=address,
                resource_type=resource_type,
                name=attrs["name"],
                schema_version=reg.schema_version,
                attributes=attrs,
                attributes_hash=compute_attributes_hash(attrs),
                created_at=now,
                updated_at=now,
            )
            state.resources[address] = inst
            state.serial += 1
            state.save(self._state_path)
            return inst
