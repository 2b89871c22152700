"""Core infrastructure components for git-provisioner."""

from git_provisioner.core.provider import Commits, GitProvider, HttpAuth, SshAuth
from git_provisioner.core.state import ResourceInstance, State

__all__ = ["Commits", "GitProvider", "HttpAuth", "ResourceInstance", "SshAuth", "State"]
