"""Git provider - connection and commit configuration for one remote repository."""

from collections.abc import Callable
from typing import Self

from pydantic import BaseModel, ConfigDict, SecretStr

from git_provisioner.engine.auth import Credentials, resolve_credentials
from git_provisioner.engine.session import DEFAULT_BRANCH, RemoteTarget, Session, open_session

SessionFactory = Callable[[str], Session]


class SshAuth(BaseModel):
    """Private-key authentication for ``ssh://`` remotes."""

    model_config = ConfigDict(extra="forbid")

    username: str = ""
    password: SecretStr | None = None
    private_key: SecretStr | None = None


class HttpAuth(BaseModel):
    """Basic authentication for ``http://`` and ``https://`` remotes."""

    model_config = ConfigDict(extra="forbid")

    username: str = ""
    password: SecretStr | None = None
    allow_insecure_http: bool = False
    certificate_authority: str = ""


class Commits(BaseModel):
    """Provider-wide commit metadata defaults."""

    model_config = ConfigDict(extra="forbid")

    author_name: str | None = None
    author_email: str | None = None
    message: str | None = None


class GitProvider(BaseModel):
    """Connection configuration for a remote git repository.

    Every call to :meth:`open_session` resolves credentials and performs a
    fresh clone. Tests (and callers with their own transport) can inject a
    session factory with :meth:`from_session_factory`.

    Examples:
        provider = GitProvider(
            url="https://git.example.com/org/config.git",
            http=HttpAuth(username="bot", password=SecretStr("token")),
        )
        with provider.open_session("main") as session:
            print(session.read("README.md"))
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    url: str
    branch: str | None = None
    ssh: SshAuth | None = None
    http: HttpAuth | None = None
    commits: Commits | None = None
    ignore_updates: bool = False

    _session_factory: SessionFactory | None = None

    @classmethod
    def from_session_factory(
        cls,
        factory: SessionFactory,
        *,
        url: str = "",
        branch: str | None = None,
        commits: Commits | None = None,
        ignore_updates: bool = False,
    ) -> Self:
        """Create a provider whose sessions come from *factory* (called with the branch)."""
        provider = cls.model_construct(
            url=url,
            branch=branch,
            ssh=None,
            http=None,
            commits=commits,
            ignore_updates=ignore_updates,
        )
        provider._session_factory = factory
        return provider

    def resolve_branch(self, branch: str | None) -> str:
        """Branch a resource operates on: its own, else the provider's, else ``main``."""
        return branch or self.branch or DEFAULT_BRANCH

    def credentials(self) -> Credentials:
        return resolve_credentials(self.url, http=self.http, ssh=self.ssh)

    def open_session(self, branch: str | None = None, *, timeout: float | None = None) -> Session:
        """Clone the repository at *branch* and return the owned session."""
        resolved = self.resolve_branch(branch)
        if self._session_factory is not None:
            return self._session_factory(resolved)
        return open_session(
            RemoteTarget(url=self.url, branch=resolved),
            self.credentials(),
            insecure_http_allowed=bool(self.http and self.http.allow_insecure_http),
            timeout=timeout,
        )
