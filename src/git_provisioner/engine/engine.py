"""Plan/apply engine."""

from __future__ import annotations

import contextlib
import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, Literal

from git_provisioner import __version__
from git_provisioner.core.state import (
    ResourceInstance,
    State,
    compute_attributes_hash,
    compute_state_digest,
)
from git_provisioner.engine.errors import (
    ApplyCanceled,
    ApplyError,
    DuplicateAddressError,
    StalePlanError,
    StateRepositoryMismatchError,
    ValidationError,
)
from git_provisioner.engine.handlers import EngineContext
from git_provisioner.engine.lock import StateLock
from git_provisioner.engine.operations import (
    CreateOperation,
    DeleteOperation,
    ReplaceOperation,
    UpdateOperation,
)
from git_provisioner.engine.plan_modifiers import (
    ignore_updates_from_private,
    use_state_if_updates_ignored,
)
from git_provisioner.engine.types import Action, ApplyResult, Plan, PlanMetadata, ResourceChange

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ResourceChange, Literal["start", "done"]], None]

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

    from git_provisioner.core import GitProvider
    from git_provisioner.engine.operations import Operation
    from git_provisioner.engine.registry import ResourceTypeRegistry
    from git_provisioner.resources.base import Resource


class GitEngine:
    """Terraform-like plan/apply engine for resources in one git repository."""

    def __init__(
        self,
        *,
        provider: GitProvider,
        state_path: Path,
        registry: ResourceTypeRegistry,
        lock_timeout: float | None = None,
    ) -> None:
        self._provider = provider
        self._state_path = state_path
        self._registry = registry
        self._lock_timeout = lock_timeout

    @property
    def repository(self) -> str:
        return self._provider.url

    @property
    def state_path(self) -> Path:
        return self._state_path

    def _ctx(self) -> EngineContext:
        return EngineContext(provider=self._provider)

    def _lock(self) -> StateLock:
        return StateLock(self._state_path, timeout=self._lock_timeout)

    def _load_state(self) -> State:
        state = State.load_or_create(self._state_path, repository=self.repository)
        if state.repository != self.repository:
            raise StateRepositoryMismatchError(self.repository, state.repository)
        logger.debug("State loaded: serial=%d, %d resources", state.serial, len(state.resources))
        return state

    def _load_state_for_apply(self, plan: Plan) -> State:
        if self._state_path.exists():
            return self._load_state()
        # No state yet: bootstrap from the plan metadata (saved-plan semantics).
        return State(
            repository=self.repository,
            lineage=plan.metadata.state_lineage,
            serial=plan.metadata.state_serial,
        )

    def _refresh_state_in_place(self, state: State) -> bool:
        logger.debug("Refreshing state from %s", self.repository)
        changed = False
        ctx = self._ctx()

        for address, inst in list(state.resources.items()):
            handler = self._registry.get(inst.resource_type).handler
            private_before = dict(inst.private)
            attrs = handler.read(ctx, inst)
            if attrs is None:
                logger.info("%s no longer exists; removing it from state", address)
                del state.resources[address]
                changed = True
                continue

            if inst.private != private_before:
                changed = True
            new_hash = compute_attributes_hash(attrs)
            if attrs != inst.attributes or new_hash != inst.attributes_hash:
                inst.attributes = attrs
                inst.attributes_hash = new_hash
                inst.updated_at = datetime.now(UTC)
                changed = True

        logger.debug("State refreshed, changed=%s", changed)
        return changed

    def refresh(self, *, persist: bool = False) -> tuple[State, State]:
        """Refresh state from the repository. Returns (pre_refresh, post_refresh)."""
        with self._lock():
            state = self._load_state()
            snapshot = state.model_copy(deep=True)
            changed = self._refresh_state_in_place(state)
            if changed and persist:
                state.serial += 1
                state.save(self._state_path)
            return snapshot, state

    def _classify_change(self, addr: str, resource: Resource, state: State) -> ResourceChange:
        """Classify a single resource as CREATE, UPDATE, REPLACE, or NOOP."""
        reg = self._registry.get(resource.resource_type)
        handler = reg.handler
        desired_dump = resource.model_dump(exclude_none=True, exclude={"address"})
        planned = handler.plan_attributes(self._ctx(), resource)

        prior_inst = state.resources.get(addr)
        if prior_inst is None:
            logger.debug("Classified %s as create", addr)
            return ResourceChange(
                address=addr,
                resource_type=resource.resource_type,
                action=Action.CREATE,
                desired=desired_dump,
                planned=planned,
            )

        prior = dict(prior_inst.attributes)
        ignore_updates = ignore_updates_from_private(prior_inst.private)
        for field in reg.frozen_fields:
            if field not in planned:
                continue
            planned[field] = use_state_if_updates_ignored(
                prior.get(field),
                planned[field],
                prior_is_null=prior.get(field) is None,
                proposed_is_unknown=False,
                ignore_updates=ignore_updates,
            )
            # Apply what was planned, not what was configured.
            desired_dump[field] = planned[field]

        diff = {
            k: {"from": prior.get(k), "to": v} for k, v in planned.items() if v != prior.get(k)
        }
        forcing = sorted(reg.replace_fields & diff.keys())
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
            replace_fields=forcing or None,
        )

    def _plan_deletes(self, state: State, addrs: set[str]) -> list[ResourceChange]:
        changes: list[ResourceChange] = []
        for addr in sorted(addrs):
            inst = state.resources[addr]
            self._registry.get(inst.resource_type)  # fail early if unknown
            changes.append(
                ResourceChange(
                    address=addr,
                    resource_type=inst.resource_type,
                    action=Action.DELETE,
                    prior=dict(inst.attributes),
                )
            )
        return changes

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
                ctx = self._ctx()
                errors: list[str] = []
                for r in desired_by_addr.values():
                    errors.extend(self._registry.get(r.resource_type).handler.validate(ctx, r))
                if errors:
                    raise ValidationError(errors)

            state_addrs = set(state.resources)
            if destroy:
                changes = self._plan_deletes(state, state_addrs)
            else:
                changes = [
                    self._classify_change(addr, desired_by_addr[addr], state)
                    for addr in sorted(desired_by_addr)
                ]
                changes.extend(self._plan_deletes(state, state_addrs - set(desired_by_addr)))

            metadata = PlanMetadata(
                repository=self.repository,
                created_at=datetime.now(UTC),
                destroy=destroy,
                refresh=refresh,
                state_lineage=state.lineage,
                state_serial=state.serial,
                state_digest=compute_state_digest(state),
                engine_version=__version__,
            )
            return Plan(metadata=metadata, changes=changes)

    @staticmethod
    def _operation(change: ResourceChange) -> Operation | None:
        match change.action:
            case Action.NOOP:
                return None
            case Action.CREATE:
                return CreateOperation(change=change)
            case Action.UPDATE:
                return UpdateOperation(change=change)
            case Action.REPLACE:
                return ReplaceOperation(change=change)
            case Action.DELETE:
                return DeleteOperation(change=change)
            case _:
                raise ValueError(f"Unknown action: {change.action}")

    def apply(self, plan: Plan, *, progress: ProgressCallback | None = None) -> ApplyResult:
        with self._lock():
            state = self._load_state_for_apply(plan)

            if state.lineage != plan.metadata.state_lineage:
                raise StalePlanError("State lineage changed; re-run plan")
            if state.serial != plan.metadata.state_serial:
                raise StalePlanError("State serial changed; re-run plan")
            if compute_state_digest(state) != plan.metadata.state_digest:
                raise StalePlanError("State digest changed; re-run plan")

            ctx = self._ctx()
            applied: list[ResourceChange] = []
            ops = [op for c in plan.changes if (op := self._operation(c)) is not None]
            logger.info("Applying %d operations", len(ops))
            saved_digest = compute_state_digest(state)

            for op in ops:
                logger.debug("Applying %s: %s", op.change.address, type(op).__name__)
                if progress:
                    progress(op.change, "start")
                try:
                    op.run(ctx=ctx, state=state, registry=self._registry)
                except KeyboardInterrupt as e:  # pragma: no cover
                    raise ApplyCanceled("Apply canceled") from e
                except Exception as e:
                    # A replace may have deleted the old file before failing.
                    if compute_state_digest(state) != saved_digest:
                        state.serial += 1
                        state.save(self._state_path)
                    raise ApplyError(
                        applied=applied, address=op.change.address, message=str(e)
                    ) from e
                if progress:
                    progress(op.change, "done")

                state.serial += 1
                state.save(self._state_path)
                saved_digest = compute_state_digest(state)
                applied.append(op.change)

            return ApplyResult(applied=applied)

    def import_resource(self, resource_type: str, name: str, import_id: str) -> ResourceInstance:
        """Adopt an existing resource into state under ``<resource_type>.<name>``."""
        reg = self._registry.get(resource_type)
        address = reg.address(name)
        with self._lock():
            state = self._load_state()
            if address in state.resources:
                raise DuplicateAddressError(address)

            attrs: dict[str, Any] = reg.handler.import_state(self._ctx(), import_id)
            attrs["name"] = name
            now = datetime.now(UTC)
            inst = ResourceInstance(
                address=address,
                resource_type=resource_type,
                name=name,
                attributes=attrs,
                attributes_hash=compute_attributes_hash(attrs),
                created_at=now,
                updated_at=now,
            )
            state.resources[address] = inst
            state.serial += 1
            state.save(self._state_path)
            logger.info("Imported %s from %s", address, import_id)
            return inst
