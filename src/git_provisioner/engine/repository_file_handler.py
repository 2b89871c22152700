"""Repository file handler: reconciles one tracked file against the remote repository.

Every operation works on its own fresh clone. Create, update and delete run
inside a deadline-bounded retry envelope in which only push failures are
retried; everything else (credentials, clone, preconditions, local file and
commit errors) aborts at once. The clone and push of each attempt are bounded
by what is left of the operation's one deadline.
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Any

from git_provisioner.engine.errors import ConfigError, PushError
from git_provisioner.engine.handlers import ResourceHandler
from git_provisioner.engine.plan_modifiers import IGNORE_UPDATES_KEY
from git_provisioner.engine.probe import require_regular_file
from git_provisioner.engine.retry import retry_until_deadline
from git_provisioner.resources.repository_file import (
    DEFAULT_AUTHOR_NAME,
    DEFAULT_MESSAGE,
    Timeouts,
)

if TYPE_CHECKING:
    from collections.abc import Callable

    from git_provisioner.core.state import ResourceInstance
    from git_provisioner.engine.handlers import EngineContext
    from git_provisioner.engine.session import Session
    from git_provisioner.resources.repository_file import RepositoryFileResource

logger = logging.getLogger(__name__)

IMPORT_ID_FORMAT_ERROR = "expected id to have format branch:path"


def _is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, PushError)


def parse_import_id(import_id: str) -> tuple[str, str]:
    """Split ``<branch>:<path>``.

    Raises:
        ConfigError: not exactly one colon, or an empty branch or path.
    """
    if import_id.count(":") != 1:
        raise ConfigError(IMPORT_ID_FORMAT_ERROR)
    branch, path = import_id.split(":")
    if not branch or not path:
        raise ConfigError(IMPORT_ID_FORMAT_ERROR)
    return branch, path


class RepositoryFileHandler(ResourceHandler["RepositoryFileResource"]):
    """CRUD and import for files in the provider's repository."""

    def __init__(
        self,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._clock = clock
        self._sleep = sleep

    def _retry(self, fn: Callable[[float], None], timeout: float) -> None:
        """Run *fn* with the operation's absolute deadline until it succeeds."""
        deadline = self._clock() + timeout
        retry_until_deadline(
            lambda: fn(deadline),
            timeout=timeout,
            deadline=deadline,
            is_retryable=_is_retryable,
            clock=self._clock,
            sleep=self._sleep,
        )

    def _remaining(self, deadline: float) -> float:
        return max(deadline - self._clock(), 0.0)

    def _push(self, session: Session, deadline: float) -> None:
        remaining = self._remaining(deadline)
        if remaining <= 0:
            raise PushError(f"no time left to push to {session.branch}")
        session.push(timeout=remaining)

    def plan_attributes(
        self, ctx: EngineContext, desired: RepositoryFileResource
    ) -> dict[str, Any]:
        commits = ctx.provider.commits
        author_name = desired.author_name or (commits and commits.author_name) or None
        author_email = desired.author_email or (commits and commits.author_email) or None
        message = desired.message or (commits and commits.message) or None
        return {
            "name": desired.name,
            "branch": ctx.provider.resolve_branch(desired.branch),
            "path": desired.path,
            "content": desired.content,
            "override_on_create": desired.override_on_create,
            "author_name": author_name or DEFAULT_AUTHOR_NAME,
            "author_email": author_email,
            "message": message or DEFAULT_MESSAGE,
            "timeouts": desired.timeouts.model_dump(),
        }

    def _stored_attributes(
        self, ctx: EngineContext, desired: RepositoryFileResource
    ) -> dict[str, Any]:
        attrs = self.plan_attributes(ctx, desired)
        attrs["id"] = desired.path
        return attrs

    def _write_commit_push(
        self,
        session: Session,
        desired: RepositoryFileResource,
        attrs: dict[str, Any],
        *,
        exists: bool,
        deadline: float,
    ) -> None:
        path = desired.path
        if exists and session.read(path) == desired.content:
            logger.debug("%s already has the desired content on %s", path, session.branch)
            return
        session.write(path, desired.content)
        session.commit(attrs["message"], attrs["author_name"], attrs["author_email"] or "")
        self._push(session, deadline)

    def create(self, ctx: EngineContext, desired: RepositoryFileResource) -> dict[str, Any]:
        attrs = self._stored_attributes(ctx, desired)

        def attempt(deadline: float) -> None:
            budget = self._remaining(deadline)
            with ctx.provider.open_session(attrs["branch"], timeout=budget) as session:
                exists = require_regular_file(session.file_path(desired.path), display=desired.path)
                if exists and not desired.override_on_create:
                    raise ConfigError("cannot override existing file")
                self._write_commit_push(session, desired, attrs, exists=exists, deadline=deadline)

        self._retry(attempt, desired.timeouts.create)
        logger.info("Created %s on %s", desired.path, attrs["branch"])
        return attrs

    def _read_content(
        self, ctx: EngineContext, branch: str | None, path: str, timeout: float
    ) -> str | None:
        """Content of *path* on *branch*, or None if the file does not exist."""
        with ctx.provider.open_session(branch, timeout=timeout) as session:
            if not require_regular_file(session.file_path(path), display=path):
                return None
            return session.read(path)

    def read(self, ctx: EngineContext, prior: ResourceInstance) -> dict[str, Any] | None:
        if ctx.provider.ignore_updates:
            logger.debug(
                "Provider is configured to ignore updates; %s will not be read", prior.address
            )
            prior.private[IGNORE_UPDATES_KEY] = "true"
            return dict(prior.attributes)
        prior.private[IGNORE_UPDATES_KEY] = "false"

        attrs = dict(prior.attributes)
        path = attrs.get("id") or attrs["path"]
        timeouts = Timeouts.model_validate(attrs.get("timeouts") or {})
        content = self._read_content(ctx, attrs.get("branch"), path, timeouts.read)
        if content is None:
            logger.info("%s no longer exists on %s", path, attrs.get("branch"))
            return None
        attrs["path"] = path
        attrs["content"] = content
        return attrs

    def update(
        self, ctx: EngineContext, desired: RepositoryFileResource, prior: ResourceInstance
    ) -> dict[str, Any]:
        _ = prior
        attrs = self._stored_attributes(ctx, desired)

        def attempt(deadline: float) -> None:
            budget = self._remaining(deadline)
            with ctx.provider.open_session(attrs["branch"], timeout=budget) as session:
                if not require_regular_file(session.file_path(desired.path), display=desired.path):
                    raise ConfigError("file doesn't exist")
                self._write_commit_push(session, desired, attrs, exists=True, deadline=deadline)

        self._retry(attempt, desired.timeouts.update)
        logger.info("Updated %s on %s", desired.path, attrs["branch"])
        return attrs

    def delete(self, ctx: EngineContext, prior: ResourceInstance) -> None:
        attrs = prior.attributes
        path = attrs.get("id") or attrs["path"]
        timeout = Timeouts.model_validate(attrs.get("timeouts") or {}).delete
        message = attrs.get("message") or DEFAULT_MESSAGE
        author_name = attrs.get("author_name") or DEFAULT_AUTHOR_NAME

        def attempt(deadline: float) -> None:
            budget = self._remaining(deadline)
            with ctx.provider.open_session(attrs.get("branch"), timeout=budget) as session:
                if not require_regular_file(session.file_path(path), display=path):
                    logger.debug("Skipping removal of %s as the file doesn't exist", path)
                    return
                session.remove(path)
                session.commit(message, author_name, attrs.get("author_email") or "")
                self._push(session, deadline)

        self._retry(attempt, timeout)
        logger.info("Deleted %s from %s", path, attrs.get("branch"))

    def import_state(self, ctx: EngineContext, import_id: str) -> dict[str, Any]:
        branch, path = parse_import_id(import_id)
        timeouts = Timeouts()
        content = self._read_content(ctx, branch, path, timeouts.read)
        if content is None:
            raise ConfigError(f"file doesn't exist: {path} on branch {branch}")
        return {
            "id": path,
            "branch": branch,
            "path": path,
            "content": content,
            "override_on_create": True,
            "author_name": DEFAULT_AUTHOR_NAME,
            "author_email": None,
            "message": DEFAULT_MESSAGE,
            "timeouts": timeouts.model_dump(),
        }
