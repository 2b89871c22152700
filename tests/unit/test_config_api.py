"""Tests for the convenience plan/apply API driven by YAML configuration."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import pytest

import git_provisioner.config as api
from git_provisioner.core.state import State
from git_provisioner.engine.errors import ConfigError
from git_provisioner.engine.session import Session
from git_provisioner.engine.types import Action

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

    from git_provisioner.config.schema import Config
    from tests.unit.conftest import RemoteRepo

_YAML = """\
provider:
  url: https://git.example.com/org/config.git
  http:
    username: bot
    password: token
  commits:
    author_name: Config Bot
state_path: {state_path}
files:
  - name: app
    path: conf/app.yaml
    content: "{content}"
"""


@pytest.fixture
def cloned_from(remote: RemoteRepo, monkeypatch: pytest.MonkeyPatch) -> list[Any]:
    """Route provider clones to the local bare repository, recording the credentials used."""
    seen: list[Any] = []

    def fake_open_session(target, credentials, insecure_http_allowed=False, *, timeout=None):
        seen.append(credentials)
        return Session.clone(remote.url, branch=target.branch)

    monkeypatch.setattr("git_provisioner.core.provider.open_session", fake_open_session)
    return seen


@pytest.fixture
def config_for(
    make_config: Callable[..., Config], tmp_path: Path
) -> Callable[[str], Config]:
    def _make(content: str) -> Config:
        return make_config(_YAML.format(state_path=tmp_path / "state.json", content=content))

    return _make


def test_engine_requires_url(make_config: Callable[..., Config]) -> None:
    cfg = make_config("provider: {}\n")
    with pytest.raises(ConfigError, match="provider.url is required"):
        api.plan(cfg)


def test_plan_and_apply(
    config_for: Callable[[str], Config], remote: RemoteRepo, cloned_from: list[Any]
) -> None:
    cfg = config_for("v1")
    result = api.plan_and_apply(cfg)

    assert result.summary()["create"] == 1
    assert remote.read("conf/app.yaml") == "v1"
    assert remote.last_commit()[1] == "Config Bot"
    assert cloned_from[0].username == "bot"
    assert cloned_from[0].password == "token"

    plan = api.plan(config_for("v2"))
    assert [c.action for c in plan.changes] == [Action.UPDATE]
    api.apply(plan, config_for("v2"))
    assert remote.read("conf/app.yaml") == "v2"


def test_drift_refresh_and_save_state(
    config_for: Callable[[str], Config], remote: RemoteRepo, cloned_from: list[Any]
) -> None:
    cfg = config_for("v1")
    api.plan_and_apply(cfg)
    assert api.drift(cfg) == []

    remote.push_file("conf/app.yaml", "edited")
    changes = api.drift(cfg)
    assert len(changes) == 1
    assert changes[0].action == Action.UPDATE
    assert changes[0].diff == {"content": {"from": "v1", "to": "edited"}}

    changes, state = api.refresh(cfg)
    assert State.load(cfg.state_path).resources["git_repository_file.app"].attributes[
        "content"
    ] == "v1"
    api.save_state(cfg, state)
    assert State.load(cfg.state_path).resources["git_repository_file.app"].attributes[
        "content"
    ] == "edited"


def test_drift_reports_deleted_files(
    config_for: Callable[[str], Config], remote: RemoteRepo, cloned_from: list[Any]
) -> None:
    cfg = config_for("v1")
    api.plan_and_apply(cfg)
    with Session.clone(remote.url) as session:
        session.remove("conf/app.yaml")
        session.commit("gone", "Someone")
        session.push()

    changes = api.drift(cfg)
    assert [(c.address, c.action) for c in changes] == [
        ("git_repository_file.app", Action.DELETE)
    ]


def test_import_file(
    config_for: Callable[[str], Config], remote: RemoteRepo, cloned_from: list[Any]
) -> None:
    cfg = config_for("# seed\\n")
    inst = api.import_file(cfg, "readme", "main:README.md")
    assert inst.address == "git_repository_file.readme"
    assert inst.attributes["content"] == "# seed\n"
    assert "git_repository_file.readme" in State.load(cfg.state_path).resources


def test_destroy(
    config_for: Callable[[str], Config], remote: RemoteRepo, cloned_from: list[Any]
) -> None:
    cfg = config_for("v1")
    api.plan_and_apply(cfg)
    result = api.plan_and_apply(cfg, destroy=True)
    assert result.summary()["delete"] == 1
    assert remote.read("conf/app.yaml") is None
