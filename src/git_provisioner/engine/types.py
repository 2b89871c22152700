"""Engine types (plan, changes, metadata)."""

from __future__ import annotations

import json
from collections import Counter
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field

from git_provisioner.engine.errors import ConfigError

if TYPE_CHECKING:
    from collections.abc import Iterable


class Action(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    REPLACE = "replace"
    DELETE = "delete"
    NOOP = "no-op"


def count_actions(changes: Iterable[ResourceChange]) -> dict[str, int]:
    """Count *changes* per action value; every action is present, NOOP included."""
    counts = Counter(c.action.value for c in changes)
    return {a.value: counts[a.value] for a in Action}


class PlanMetadata(BaseModel):
    """Where a plan came from, checked against state before it is applied."""

    repository: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    destroy: bool
    refresh: bool
    state_lineage: str
    state_serial: int
    state_digest: str
    engine_version: str


class ResourceChange(BaseModel):
    """One planned action for one address.

    ``planned`` holds the attributes the file will be stored with and ``diff``
    the ``{"from", "to"}`` pairs that differ from state. For a REPLACE,
    ``replace_fields`` names the changed fields that cannot change in place.
    """

    address: str
    resource_type: str
    action: Action
    desired: dict[str, Any] | None = None
    prior: dict[str, Any] | None = None
    planned: dict[str, Any] | None = None
    diff: dict[str, Any] | None = None
    replace_fields: list[str] | None = None


class Plan(BaseModel):
    metadata: PlanMetadata
    changes: list[ResourceChange]

    @property
    def has_changes(self) -> bool:
        return any(c.action != Action.NOOP for c in self.changes)

    def summary(self) -> dict[str, int]:
        return count_actions(self.changes)

    def save(self, path: Path) -> None:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        data = self.model_dump(mode="json")
        path.write_text(json.dumps(data, indent=2, sort_keys=True) + "\n", encoding="utf-8")

    @classmethod
    def load(cls, path: Path) -> Plan:
        """Load a saved plan.

        Raises:
            ConfigError: the file cannot be read or is not a saved plan.
        """
        path = Path(path)
        try:
            return cls.model_validate_json(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise ConfigError(f"cannot load plan file {path}: {e}") from e


class ApplyResult(BaseModel):
    applied: list[ResourceChange] = Field(default_factory=list)

    def summary(self) -> dict[str, int]:
        return count_actions(self.applied)
