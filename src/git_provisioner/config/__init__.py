"""YAML configuration loading and convenience plan/apply API."""

from __future__ import annotations

from typing import TYPE_CHECKING

from git_provisioner.config.loader import load_config
from git_provisioner.config.registry import default_registry
from git_provisioner.config.schema import Config, ProviderConfig
from git_provisioner.core.provider import GitProvider
from git_provisioner.core.state import ResourceInstance, State
from git_provisioner.engine.engine import GitEngine, ProgressCallback
from git_provisioner.engine.errors import ConfigError
from git_provisioner.engine.lock import StateLock
from git_provisioner.engine.types import Action, ResourceChange
from git_provisioner.resources.repository_file import RepositoryFileResource

if TYPE_CHECKING:
    from pathlib import Path

    from git_provisioner.engine.types import ApplyResult, Plan

__all__ = [
    "Config",
    "ConfigError",
    "ProviderConfig",
    "State",
    "apply",
    "drift",
    "import_file",
    "load",
    "load_config",
    "plan",
    "plan_and_apply",
    "refresh",
    "save_state",
]


def load(path: Path | str) -> Config:
    """Load a YAML configuration file."""
    return load_config(path)


def _engine_from_config(config: Config) -> GitEngine:
    """Build a ``GitEngine`` from a ``Config`` instance."""
    if not config.provider.url:
        raise ConfigError("provider.url is required (set in YAML or GIT_PROVISIONER_URL env var)")
    provider = GitProvider(
        url=config.provider.url,
        branch=config.provider.branch,
        ssh=config.provider.ssh,
        http=config.provider.http,
        commits=config.provider.commits,
        ignore_updates=config.provider.ignore_updates,
    )
    return GitEngine(
        provider=provider,
        state_path=config.state_path,
        registry=default_registry(),
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


def refresh(config: Config) -> tuple[list[ResourceChange], State]:
    """Refresh state from the remote repository (not persisted).

    Returns the list of drift changes and the new state. Call
    :func:`save_state` to persist the returned state to disk.
    """
    engine = _engine_from_config(config)
    old_state, new_state = engine.refresh()
    return _build_drift_changes(old_state, new_state), new_state


def save_state(config: Config, state: State) -> None:
    """Persist state to disk."""
    with StateLock(config.state_path):
        state.serial += 1
        state.save(config.state_path)


def drift(config: Config) -> list[ResourceChange]:
    """Detect drift between the state file and the remote repository."""
    changes, _ = refresh(config)
    return changes


def import_file(config: Config, name: str, import_id: str) -> ResourceInstance:
    """Adopt an existing ``<branch>:<path>`` file into state as ``git_repository_file.<name>``."""
    engine = _engine_from_config(config)
    return engine.import_resource(RepositoryFileResource.resource_type, name, import_id)


def _build_drift_changes(old_state: State, new_state: State) -> list[ResourceChange]:
    """Compare old vs new state and return a list of drift changes."""
    changes: list[ResourceChange] = []
    for addr, inst in sorted(new_state.resources.items()):
        old_inst = old_state.resources.get(addr)
        if old_inst is None or old_inst.attributes == inst.attributes:
            continue
        old = old_inst.attributes
        all_keys = set(old) | set(inst.attributes)
        diff = {
            k: {"from": old.get(k), "to": inst.attributes.get(k)}
            for k in sorted(all_keys)
            if old.get(k) != inst.attributes.get(k)
        }
        changes.append(
            ResourceChange(
                address=addr,
                resource_type=inst.resource_type,
                action=Action.UPDATE,
                prior=dict(old),
                planned=dict(inst.attributes),
                diff=diff,
            )
        )
    for addr in sorted(set(old_state.resources) - set(new_state.resources)):
        old_inst = old_state.resources[addr]
        changes.append(
            ResourceChange(
                address=addr,
                resource_type=old_inst.resource_type,
                action=Action.DELETE,
                prior=dict(old_inst.attributes),
            )
        )
    return changes
