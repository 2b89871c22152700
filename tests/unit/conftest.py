"""Shared fixtures for unit tests."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from git import Actor, Repo

from git_provisioner.config import load
from git_provisioner.core import GitProvider
from git_provisioner.engine.session import Session

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

    from git_provisioner.config.schema import Config

_GIT_PROVISIONER_ENV_VARS = (
    "GIT_PROVISIONER_URL",
    "GIT_PROVISIONER_BRANCH",
    "GIT_PROVISIONER_IGNORE_UPDATES",
    "GIT_PROVISIONER_HTTP_USERNAME",
    "GIT_PROVISIONER_HTTP_PASSWORD",
    "GIT_PROVISIONER_SSH_USERNAME",
    "GIT_PROVISIONER_SSH_PRIVATE_KEY",
    "GIT_PROVISIONER_SSH_PASSWORD",
    "GIT_PROVISIONER_SSH",
    "GIT_PROVISIONER_HTTP",
    "GIT_PROVISIONER_COMMITS",
    "GIT_PROVISIONER_LOG",
)

SEED_AUTHOR = Actor("Seeder", "seed@example.com")


@pytest.fixture(autouse=True)
def _clean_git_provisioner_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove GIT_PROVISIONER_* env vars so unit tests don't leak host config."""
    for var in _GIT_PROVISIONER_ENV_VARS:
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def make_config(tmp_path: Path) -> Callable[..., Config]:
    """Factory fixture: write YAML + optional .env, return loaded Config."""

    def _make(yaml_str: str, *, dotenv: str | None = None) -> Config:
        (tmp_path / "config.yaml").write_text(yaml_str)
        if dotenv is not None:
            (tmp_path / ".env").write_text(dotenv)
        return load(tmp_path / "config.yaml")

    return _make


class RemoteRepo:
    """A local bare repository standing in for the remote, plus helpers to inspect it."""

    def __init__(self, bare: Path) -> None:
        self.bare = bare
        self.url = str(bare)

    def _repo(self) -> Repo:
        return Repo(self.bare)

    def read(self, path: str, branch: str = "main") -> str | None:
        repo = self._repo()
        try:
            blob = repo.commit(branch).tree / path
        except KeyError:
            return None
        finally:
            repo.close()
        return blob.data_stream.read().decode("utf-8")

    def head(self, branch: str = "main") -> str:
        repo = self._repo()
        try:
            return repo.commit(branch).hexsha
        finally:
            repo.close()

    def commit_count(self, branch: str = "main") -> int:
        repo = self._repo()
        try:
            return sum(1 for _ in repo.iter_commits(branch))
        finally:
            repo.close()

    def last_commit(self, branch: str = "main") -> tuple[str, str, str]:
        """(message, author name, author email) of the branch tip."""
        repo = self._repo()
        try:
            c = repo.commit(branch)
            return str(c.message), c.author.name or "", c.author.email or ""
        finally:
            repo.close()

    def push_file(self, path: str, content: str, branch: str = "main") -> None:
        """Commit *content* to *path* out of band, like another user would."""
        with Session.clone(self.url, branch=branch) as session:
            session.write(path, content)
            session.commit("out-of-band change", SEED_AUTHOR.name or "", SEED_AUTHOR.email or "")
            session.push()

    def push_symlink(self, path: str, target: str, branch: str = "main") -> None:
        """Commit a symlink at *path* pointing to *target*."""
        with Session.clone(self.url, branch=branch) as session:
            (session.path / path).symlink_to(target)
            repo = Repo(session.path)
            try:
                repo.git.add(path)
            finally:
                repo.close()
            session.commit("add symlink", SEED_AUTHOR.name or "", SEED_AUTHOR.email or "")
            session.push()


@pytest.fixture
def remote(tmp_path: Path) -> RemoteRepo:
    """A bare repository with ``main`` and ``dev`` branches and a seeded README.md."""
    seed_dir = tmp_path / "seed"
    seed = Repo.init(seed_dir, initial_branch="main")
    (seed_dir / "README.md").write_text("# seed\n")
    (seed_dir / "docs").mkdir()
    (seed_dir / "docs" / "index.md").write_text("docs\n")
    seed.index.add(["README.md", "docs/index.md"])
    seed.index.commit("seed", author=SEED_AUTHOR, committer=SEED_AUTHOR)
    seed.create_head("dev")

    bare_dir = tmp_path / "remote.git"
    seed.clone(str(bare_dir), bare=True).close()
    seed.close()
    return RemoteRepo(bare_dir)


@pytest.fixture
def local_provider(remote: RemoteRepo) -> GitProvider:
    """Provider whose sessions clone the local bare repository without credentials."""
    return GitProvider.from_session_factory(
        lambda branch: Session.clone(remote.url, branch=branch),
        url=remote.url,
    )
