"""Configuration models for YAML-based provisioning."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict

from git_provisioner.core.provider import (  # noqa: TC001 - Pydantic needs these at runtime
    Commits,
    HttpAuth,
    SshAuth,
)
from git_provisioner.resources.base import Resource  # noqa: TC001 - Pydantic needs this at runtime
from git_provisioner.resources.repository_file import (
    RepositoryFileResource,  # noqa: TC001 - Pydantic needs this at runtime
)


class ProviderConfig(BaseSettings):
    """Git provider connection settings.

    Fields can be set via YAML (constructor kwargs) or environment variables
    with the ``GIT_PROVISIONER_`` prefix.  Constructor kwargs take precedence.

    Passwords and private keys are typically provided via environment
    variables (``GIT_PROVISIONER_HTTP_PASSWORD``, ``GIT_PROVISIONER_SSH_PRIVATE_KEY``)
    rather than YAML to avoid committing secrets to version control.
    """

    model_config = SettingsConfigDict(env_prefix="GIT_PROVISIONER_")

    url: str | None = None
    branch: str | None = None
    ignore_updates: bool = False
    ssh: SshAuth | None = None
    http: HttpAuth | None = None
    commits: Commits | None = None


def _none_to_list(v: Any) -> Any:
    return v if v is not None else []


class Config(BaseModel):
    """Provisioning configuration - validates YAML structure directly."""

    provider: ProviderConfig
    state_path: Path = Path(".git-provisioner-state.json")
    files: Annotated[list[RepositoryFileResource], BeforeValidator(_none_to_list)] = []
    config_dir: Path = Path()

    @computed_field  # type: ignore[prop-decorator]
    @property
    def resources(self) -> list[Resource]:
        """All declared resources - ordering is not significant."""
        return [*self.files]
