"""Default resource type registry factory."""

from __future__ import annotations

from git_provisioner.engine.registry import ResourceTypeRegistry
from git_provisioner.engine.repository_file_handler import RepositoryFileHandler
from git_provisioner.resources.repository_file import RepositoryFileResource


def default_registry() -> ResourceTypeRegistry:
    """Create a fresh registry with all built-in resource types and handlers."""
    registry = ResourceTypeRegistry()
    registry.register(RepositoryFileResource, RepositoryFileHandler())
    return registry
