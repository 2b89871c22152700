"""Declarative field markers for resource models.

Markers attach to Pydantic fields via ``Annotated`` and tell the engine how to
plan the field:

- ``RequiresReplace``        : a changed value is planned as delete + create
- ``FreezeOnIgnoreUpdates``  : the stored value wins once ignore-updates is set
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, TypeVar

if TYPE_CHECKING:
    from pydantic.fields import FieldInfo

M = TypeVar("M")


@dataclass(frozen=True, slots=True)
class RequiresReplace:
    """Changing this field cannot be done in place."""


@dataclass(frozen=True, slots=True)
class FreezeOnIgnoreUpdates:
    """Plan the stored value instead of the configured one when updates are ignored."""


def _find_marker(field_info: FieldInfo, marker_type: type[M]) -> M | None:
    """Return the first marker of *marker_type* on a field, or ``None``."""
    return next((m for m in field_info.metadata if isinstance(m, marker_type)), None)


def _marked_fields(model_or_cls: Any, marker_type: type[Any]) -> set[str]:
    cls = model_or_cls if isinstance(model_or_cls, type) else type(model_or_cls)
    return {
        name
        for name, fi in cls.model_fields.items()
        if _find_marker(fi, marker_type) is not None
    }


def collect_replace_fields(resource_or_cls: Any) -> set[str]:
    """Names of fields whose change forces replacement."""
    return _marked_fields(resource_or_cls, RequiresReplace)


def collect_frozen_fields(resource_or_cls: Any) -> set[str]:
    """Names of fields frozen by the ignore-updates flag."""
    return _marked_fields(resource_or_cls, FreezeOnIgnoreUpdates)
