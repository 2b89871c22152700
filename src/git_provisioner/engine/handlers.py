"""Engine-facing handler interfaces."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from git_provisioner.resources.base import Resource

if TYPE_CHECKING:
    from git_provisioner.core import GitProvider
    from git_provisioner.core.state import ResourceInstance

R = TypeVar("R", bound=Resource)


@dataclass(frozen=True)
class EngineContext:
    """Context passed to handlers."""

    provider: GitProvider


class ResourceHandler(Generic[R]):
    """Base class for resource handlers.

    Handlers are responsible for translating resources into repository
    operations. Subclass and override the CRUD methods. Validation and
    import are optional.
    """

    def validate(self, ctx: EngineContext, desired: R) -> list[str]:
        """Single-resource validation.

        Return list of error messages (empty = valid).
        """
        _ = ctx, desired
        return []

    def plan_attributes(self, ctx: EngineContext, desired: R) -> dict[str, Any]:
        """Attributes *desired* would be stored with, used for diffing against state."""
        _ = ctx
        return desired.model_dump(exclude_none=True, exclude={"address"})

    def read(self, ctx: EngineContext, prior: ResourceInstance) -> dict[str, Any] | None:
        """Read the live resource. Return None if it no longer exists.

        Handlers may record data in ``prior.private``.
        """
        raise NotImplementedError

    def create(self, ctx: EngineContext, desired: R) -> dict[str, Any]:
        """Create the resource. Return stored attributes."""
        raise NotImplementedError

    def update(self, ctx: EngineContext, desired: R, prior: ResourceInstance) -> dict[str, Any]:
        """Update the resource. Return stored attributes."""
        raise NotImplementedError

    def delete(self, ctx: EngineContext, prior: ResourceInstance) -> None:
        """Delete the resource."""
        raise NotImplementedError

    def import_state(self, ctx: EngineContext, import_id: str) -> dict[str, Any]:
        """Read an existing resource identified by *import_id*. Return stored attributes."""
        raise NotImplementedError(f"{type(self).__name__} does not support import")
