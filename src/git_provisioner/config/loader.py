"""YAML configuration file loader."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

from dotenv import dotenv_values
from pydantic import ValidationError
from ruamel.yaml import YAML
from ruamel.yaml.constructor import SafeConstructor

from git_provisioner.config.schema import Config
from git_provisioner.engine.errors import ConfigError
from git_provisioner.engine.session import DEFAULT_BRANCH
from git_provisioner.resources.repository_file import RepositoryFileResource

logger = logging.getLogger(__name__)

# Field name -> environment variable.
_PROVIDER_ENV_MAP: dict[str, str] = {
    "url": "GIT_PROVISIONER_URL",
    "branch": "GIT_PROVISIONER_BRANCH",
    "ignore_updates": "GIT_PROVISIONER_IGNORE_UPDATES",
}

# (auth block, field) -> environment variable.
_AUTH_ENV_MAP: dict[tuple[str, str], str] = {
    ("http", "username"): "GIT_PROVISIONER_HTTP_USERNAME",
    ("http", "password"): "GIT_PROVISIONER_HTTP_PASSWORD",
    ("ssh", "username"): "GIT_PROVISIONER_SSH_USERNAME",
    ("ssh", "private_key"): "GIT_PROVISIONER_SSH_PRIVATE_KEY",
    ("ssh", "password"): "GIT_PROVISIONER_SSH_PASSWORD",
}

_PROVIDER_BOOL_FIELDS: frozenset[str] = frozenset({"ignore_updates"})


def _lookup(env_key: str, dotenv_vals: dict[str, str | None]) -> str | None:
    val = os.environ.get(env_key)
    if val is None:
        val = dotenv_vals.get(env_key)
    return val


def _resolve_provider(raw_provider: dict[str, Any], config_dir: Path) -> dict[str, Any]:
    """Resolve provider fields from YAML, env vars, and ``.env`` file.

    Priority (highest wins): YAML value > env var > ``.env`` file.
    """
    env_file = config_dir / ".env"
    dotenv_vals = dotenv_values(env_file, encoding="utf-8-sig") if env_file.is_file() else {}

    resolved: dict[str, Any] = dict(raw_provider)
    for field, env_key in _PROVIDER_ENV_MAP.items():
        val = raw_provider.get(field)
        if val is None:
            val = _lookup(env_key, dotenv_vals)
        if val is not None:
            if field in _PROVIDER_BOOL_FIELDS and isinstance(val, str):
                if val.lower() not in SafeConstructor.bool_values:
                    raise ConfigError(f"Invalid boolean for {env_key}: {val!r}")
                val = SafeConstructor.bool_values[val.lower()]
            resolved[field] = val

    for (block, field), env_key in _AUTH_ENV_MAP.items():
        section = resolved.get(block)
        if section is not None and not isinstance(section, dict):
            continue
        if section is not None and section.get(field) is not None:
            continue
        val = _lookup(env_key, dotenv_vals)
        if val is None:
            continue
        section = dict(section or {})
        section[field] = val
        resolved[block] = section

    return resolved


def _validate_unique_paths(files: list[RepositoryFileResource], default_branch: str) -> list[str]:
    """Check that no two files target the same path on the same branch."""
    seen: dict[tuple[str, str], str] = {}
    errors: list[str] = []
    for f in files:
        key = (f.branch or default_branch, f.path)
        if key in seen:
            errors.append(
                f"Duplicate file '{f.path}' on branch '{key[0]}': "
                f"found in both {seen[key]} and {f.address}"
            )
        else:
            seen[key] = f.address
    return errors


def load_config(path: Path | str) -> Config:
    """Load a YAML configuration file and return a ``Config`` object.

    Raises:
        ConfigError: On YAML parse errors, missing sections, or validation failures.
    """
    path = Path(path)

    try:
        raw = YAML(typ="safe").load(path)
    except Exception as exc:
        raise ConfigError(f"Failed to read {path}: {exc}") from exc

    if not isinstance(raw, dict):
        raise ConfigError(f"{path}: expected a mapping at the top level")

    try:
        raw["provider"] = _resolve_provider(raw.get("provider") or {}, path.parent)
        config = Config.model_validate(raw)
    except ValidationError as exc:
        raise ConfigError(str(exc)) from exc

    config.config_dir = path.parent

    errors = _validate_unique_paths(config.files, config.provider.branch or DEFAULT_BRANCH)
    if errors:
        raise ConfigError("\n".join(errors))

    logger.info("Loaded config from %s (%d resources)", path, len(config.resources))
    return config
