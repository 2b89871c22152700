"""Resource models."""

from git_provisioner.resources.base import Resource
from git_provisioner.resources.repository_file import RepositoryFileResource, Timeouts

__all__ = ["RepositoryFileResource", "Resource", "Timeouts"]
