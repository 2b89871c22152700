"""Repository file resource model."""

from __future__ import annotations

import re
from pathlib import PurePosixPath
from typing import Annotated, Any, ClassVar

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, field_validator

from git_provisioner.resources.base import Resource
from git_provisioner.resources.markers import FreezeOnIgnoreUpdates, RequiresReplace

DEFAULT_TIMEOUT = 600.0
DEFAULT_AUTHOR_NAME = "Git Provisioner"
DEFAULT_MESSAGE = "Write file with Git Provisioner."

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|s|m|h)")
_UNIT_SECONDS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}


def parse_duration(value: Any) -> Any:
    """Accept seconds or Go-style durations such as ``"90s"``, ``"10m"`` or ``"1h30m"``."""
    if not isinstance(value, str):
        return value
    text = value.strip()
    try:
        return float(text)
    except ValueError:
        pass
    pos = 0
    total = 0.0
    for m in _DURATION_PART.finditer(text):
        if m.start() != pos:
            break
        total += float(m.group(1)) * _UNIT_SECONDS[m.group(2)]
        pos = m.end()
    if pos != len(text) or not text:
        raise ValueError(f"invalid duration {value!r}")
    return total


Duration = Annotated[float, BeforeValidator(parse_duration), Field(gt=0)]


class Timeouts(BaseModel):
    """Per-operation deadlines, in seconds."""

    model_config = ConfigDict(extra="forbid")

    create: Duration = DEFAULT_TIMEOUT
    read: Duration = DEFAULT_TIMEOUT
    update: Duration = DEFAULT_TIMEOUT
    delete: Duration = DEFAULT_TIMEOUT


class RepositoryFileResource(Resource):
    """A single file committed to the provider's repository.

    ``path`` and ``branch`` cannot change in place; a new value replaces the
    file. Commit metadata left unset falls back to the provider ``commits``
    block and then to built-in defaults.
    """

    resource_type: ClassVar[str] = "git_repository_file"

    path: Annotated[str, RequiresReplace()] = Field(min_length=1)
    branch: Annotated[str | None, RequiresReplace()] = None
    content: Annotated[str, FreezeOnIgnoreUpdates()]
    override_on_create: bool = False
    author_name: str | None = None
    author_email: str | None = None
    message: str | None = None
    timeouts: Timeouts = Field(default_factory=Timeouts)

    @field_validator("path")
    @classmethod
    def _relative_path(cls, v: str) -> str:
        p = PurePosixPath(v)
        if p.is_absolute() or ".." in p.parts or v.endswith("/"):
            raise ValueError("path must be a relative file path inside the repository")
        return p.as_posix()
