"""Single-operation git sessions: a fresh clone in a private temporary workspace.

A ``Session`` owns its workspace directory (the clone plus any credential
files written for the git binary) and removes it on ``close()``. Sessions are
never cached or shared; every call to :func:`open_session` performs a full
clone.
"""

from __future__ import annotations

import logging
import os
import shlex
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING

from git import Actor, Git, PushInfo, Repo
from git.exc import GitCommandError

from git_provisioner.engine.auth import HTTPCredentials, SSHCredentials
from git_provisioner.engine.errors import (
    ConfigError,
    NotARegularFileError,
    PushError,
    TransientError,
)

if TYPE_CHECKING:
    from types import TracebackType

    from git_provisioner.engine.auth import Credentials

logger = logging.getLogger(__name__)

DEFAULT_BRANCH = "main"

_PUSH_FAILED = (
    PushInfo.ERROR | PushInfo.REJECTED | PushInfo.REMOTE_REJECTED | PushInfo.REMOTE_FAILURE
)

_USERNAME_VAR = "GIT_PROVISIONER_ASKPASS_USERNAME"
_PASSWORD_VAR = "GIT_PROVISIONER_ASKPASS_PASSWORD"

_ASKPASS_SCRIPT = f"""#!/bin/sh
case "$1" in
  Username*) printf '%s\\n' "${_USERNAME_VAR}" ;;
  *) printf '%s\\n' "${_PASSWORD_VAR}" ;;
esac
"""


@dataclass(frozen=True)
class RemoteTarget:
    url: str
    branch: str = DEFAULT_BRANCH


def _write_private(path: Path, content: str, mode: int = 0o600) -> Path:
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, mode)
    with os.fdopen(fd, "w", encoding="utf-8") as f:
        f.write(content)
    return path


def _credential_env(
    workspace: Path,
    credentials: Credentials | None,
    *,
    insecure_http_allowed: bool,
) -> dict[str, str]:
    """Build the environment that hands *credentials* to the git binary."""
    # Fail fast instead of prompting on a terminal nobody is watching.
    env = {"GIT_TERMINAL_PROMPT": "0", "GCM_INTERACTIVE": "never"}
    if credentials is None:
        return env

    if isinstance(credentials, HTTPCredentials):
        has_secret = bool(credentials.username or credentials.password)
        insecure_ok = insecure_http_allowed or credentials.allow_insecure
        if credentials.transport == "http" and has_secret and not insecure_ok:
            raise ConfigError(
                "sending credentials over plain http requires http.allow_insecure_http"
            )
        if has_secret:
            askpass = _write_private(workspace / "askpass.sh", _ASKPASS_SCRIPT, 0o700)
            env["GIT_ASKPASS"] = str(askpass)
            env[_USERNAME_VAR] = credentials.username
            env[_PASSWORD_VAR] = credentials.password
        if credentials.ca_certificate:
            ca_file = _write_private(workspace / "ca.pem", credentials.ca_certificate)
            env["GIT_SSL_CAINFO"] = str(ca_file)
        return env

    assert isinstance(credentials, SSHCredentials)
    key = credentials.private_key
    identity = _write_private(workspace / "identity", key if key.endswith("\n") else key + "\n")
    known_hosts = _write_private(workspace / "known_hosts", credentials.known_hosts)
    ssh_cmd = [
        "ssh",
        "-i",
        shlex.quote(str(identity)),
        "-o",
        "IdentitiesOnly=yes",
        "-o",
        shlex.quote(f"UserKnownHostsFile={known_hosts}"),
        "-o",
        "StrictHostKeyChecking=yes",
    ]
    if credentials.username:
        ssh_cmd += ["-l", shlex.quote(credentials.username)]
    if credentials.password:
        askpass = _write_private(workspace / "askpass.sh", _ASKPASS_SCRIPT, 0o700)
        env["SSH_ASKPASS"] = str(askpass)
        env["SSH_ASKPASS_REQUIRE"] = "force"
        env[_PASSWORD_VAR] = credentials.password
    else:
        ssh_cmd += ["-o", "BatchMode=yes"]
    env["GIT_SSH_COMMAND"] = " ".join(ssh_cmd)
    return env


class Session:
    """An authenticated clone of one branch, valid for a single operation."""

    def __init__(self, workspace: Path, repo: Repo, branch: str) -> None:
        self._workspace = workspace
        self._repo = repo
        self._branch = branch
        self._closed = False

    @classmethod
    def clone(
        cls,
        url: str,
        *,
        branch: str | None = None,
        credentials: Credentials | None = None,
        insecure_http_allowed: bool = False,
        timeout: float | None = None,
    ) -> Session:
        """Clone *url* at *branch* into a new temporary workspace.

        A clone still running after *timeout* seconds is killed.

        Raises:
            ConfigError: the credentials cannot be used with this URL.
            TransientError: the clone failed (network, auth, missing branch).
        """
        branch = branch or DEFAULT_BRANCH
        workspace = Path(tempfile.mkdtemp(prefix="git-provisioner-"))
        try:
            env = _credential_env(
                workspace, credentials, insecure_http_allowed=insecure_http_allowed
            )
            logger.debug("Cloning %s (branch %s) into %s", url, branch, workspace)
            clone_dir = workspace / "repo"
            git = Git(str(workspace))
            git.update_environment(**env)
            git.execute(
                ["git", "clone", "--branch", branch, "--", url, str(clone_dir)],
                kill_after_timeout=timeout,
            )
            repo = Repo(clone_dir)
            repo.git.update_environment(**env)
        except GitCommandError as e:
            shutil.rmtree(workspace, ignore_errors=True)
            raise TransientError(f"could not clone {url} at branch {branch}: {e}") from e
        except BaseException:
            shutil.rmtree(workspace, ignore_errors=True)
            raise
        return cls(workspace, repo, branch)

    @property
    def branch(self) -> str:
        return self._branch

    @property
    def workspace(self) -> Path:
        return self._workspace

    @property
    def path(self) -> Path:
        """Root of the checked-out working tree."""
        return Path(self._repo.working_tree_dir or self._workspace / "repo")

    def file_path(self, rel: str) -> Path:
        """Absolute path of *rel* inside the working tree.

        The last component is returned as is, so a symlink there is left for the
        caller to detect. Directories above it must stay inside the tree.

        Raises:
            ConfigError: *rel* is empty, absolute, or escapes the working tree.
        """
        pure = PurePosixPath(rel)
        if not rel or pure.is_absolute() or ".." in pure.parts or pure.parts[:1] == (".git",):
            raise ConfigError(f"invalid repository path {rel!r}")
        target = self.path.joinpath(*pure.parts)
        if not target.parent.resolve().is_relative_to(self.path.resolve()):
            raise ConfigError(f"{rel}: path leaves the repository through a symlink")
        return target

    def _unlinked(self, rel: str) -> Path:
        target = self.file_path(rel)
        if target.is_symlink():
            raise NotARegularFileError(rel)
        return target

    def read(self, rel: str) -> str:
        return self._unlinked(rel).read_bytes().decode("utf-8")

    def write(self, rel: str, content: str) -> None:
        target = self._unlinked(rel)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(content.encode("utf-8"))
        self._repo.index.add([PurePosixPath(rel).as_posix()])

    def remove(self, rel: str) -> None:
        self.file_path(rel)
        self._repo.index.remove([PurePosixPath(rel).as_posix()], working_tree=True)

    def commit(self, message: str, author_name: str, author_email: str = "") -> str:
        """Commit the staged changes and return the new revision id."""
        actor = Actor(author_name, author_email)
        commit = self._repo.index.commit(message, author=actor, committer=actor)
        logger.debug("Committed %s on %s: %s", commit.hexsha[:12], self._branch, message)
        return commit.hexsha

    def push(self, timeout: float | None = None) -> None:
        """Push HEAD to the session branch on ``origin``.

        Raises:
            PushError: the remote rejected the push or could not be reached.
        """
        refspec = f"HEAD:refs/heads/{self._branch}"
        try:
            infos = self._repo.remote("origin").push(refspec=refspec, kill_after_timeout=timeout)
        except GitCommandError as e:
            raise PushError(f"push to {self._branch} failed: {e}") from e
        failed = [i for i in infos if i.flags & _PUSH_FAILED]
        if failed or not infos:
            summary = "; ".join(i.summary.strip() for i in failed) or "no push result"
            raise PushError(f"push to {self._branch} failed: {summary}")
        logger.debug("Pushed %s", refspec)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._repo.close()
        try:
            shutil.rmtree(self._workspace)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning("Could not remove workspace %s: %s", self._workspace, e)

    def __enter__(self) -> Session:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()


def open_session(
    target: RemoteTarget,
    credentials: Credentials | None,
    insecure_http_allowed: bool = False,
    *,
    timeout: float | None = None,
) -> Session:
    """Clone *target* with *credentials* and return the ready session."""
    return Session.clone(
        target.url,
        branch=target.branch,
        credentials=credentials,
        insecure_http_allowed=insecure_http_allowed,
        timeout=timeout,
    )

