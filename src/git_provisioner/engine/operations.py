"""Apply operations.

Each planned change becomes one operation that knows how to apply itself
through the registered handler and record the outcome in state.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, Protocol

from git_provisioner.core.state import ResourceInstance, State, compute_attributes_hash

if TYPE_CHECKING:
    from git_provisioner.engine.handlers import EngineContext
    from git_provisioner.engine.registry import ResourceTypeRegistration, ResourceTypeRegistry
    from git_provisioner.engine.types import ResourceChange


class Operation(Protocol):
    change: ResourceChange

    def run(self, *, ctx: EngineContext, state: State, registry: ResourceTypeRegistry) -> None:
        """Execute this operation and update *state* in place."""


def _desired_object(change: ResourceChange, reg: ResourceTypeRegistration, *, action: str) -> Any:
    if change.desired is None:
        raise ValueError(f"Missing desired config for {action}: {change.address}")

    desired_obj = reg.model.model_validate(change.desired)
    if desired_obj.address != change.address:
        raise ValueError(
            f"Desired address mismatch for {action}: {change.address} != {desired_obj.address}"
        )
    return desired_obj


def _record(
    state: State,
    change: ResourceChange,
    name: str,
    attrs: dict[str, Any],
    private: dict[str, str] | None = None,
) -> None:
    now = datetime.now(UTC)
    inst = state.resources.get(change.address)
    if inst is None:
        state.resources[change.address] = ResourceInstance(
            address=change.address,
            resource_type=change.resource_type,
            name=name,
            attributes=attrs,
            attributes_hash=compute_attributes_hash(attrs),
            private=dict(private or {}),
            created_at=now,
            updated_at=now,
        )
        return
    inst.attributes = attrs
    inst.attributes_hash = compute_attributes_hash(attrs)
    inst.updated_at = now


@dataclass
class CreateOperation:
    change: ResourceChange

    def run(self, *, ctx: EngineContext, state: State, registry: ResourceTypeRegistry) -> None:
        reg = registry.get(self.change.resource_type)
        desired_obj = _desired_object(self.change, reg, action="create")
        attrs = reg.handler.create(ctx, desired_obj)
        _record(state, self.change, desired_obj.name, attrs)


@dataclass
class UpdateOperation:
    change: ResourceChange

    def run(self, *, ctx: EngineContext, state: State, registry: ResourceTypeRegistry) -> None:
        reg = registry.get(self.change.resource_type)
        desired_obj = _desired_object(self.change, reg, action="update")
        prior_inst = state.resources[self.change.address]
        attrs = reg.handler.update(ctx, desired_obj, prior_inst)
        _record(state, self.change, desired_obj.name, attrs)


@dataclass
class ReplaceOperation:
    """Delete the prior instance, then create the desired one."""

    change: ResourceChange

    def run(self, *, ctx: EngineContext, state: State, registry: ResourceTypeRegistry) -> None:
        reg = registry.get(self.change.resource_type)
        desired_obj = _desired_object(self.change, reg, action="replace")
        prior_inst = state.resources[self.change.address]
        reg.handler.delete(ctx, prior_inst)
        # The old file is gone; keep state honest if the create below fails.
        del state.resources[self.change.address]
        attrs = reg.handler.create(ctx, desired_obj)
        _record(state, self.change, desired_obj.name, attrs, prior_inst.private)


@dataclass
class DeleteOperation:
    change: ResourceChange

    def run(self, *, ctx: EngineContext, state: State, registry: ResourceTypeRegistry) -> None:
        reg = registry.get(self.change.resource_type)
        prior_inst = state.resources[self.change.address]
        reg.handler.delete(ctx, prior_inst)
        del state.resources[self.change.address]
