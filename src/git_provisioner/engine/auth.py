"""Resolve transport credentials for a remote repository URL."""

from __future__ import annotations

import logging
import re
import subprocess
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, TypeAlias
from urllib.parse import urlsplit

from git_provisioner.engine.errors import ConfigError, TransientError

if TYPE_CHECKING:
    from collections.abc import Callable

    from git_provisioner.core.provider import HttpAuth, SshAuth

logger = logging.getLogger(__name__)

# user@host:path, as accepted by the git binary for ssh remotes.
_SCP_LIKE = re.compile(r"^(?:(?P<user>[^@/]+)@)?(?P<host>[^:/]+):(?P<path>[^/].*)$")

_KEYSCAN_TIMEOUT = 30


@dataclass(frozen=True)
class RemoteURL:
    scheme: str
    host: str
    port: int | None = None
    username: str | None = None


@dataclass(frozen=True)
class HTTPCredentials:
    username: str = ""
    password: str = field(default="", repr=False)
    allow_insecure: bool = False
    ca_certificate: str = ""
    transport: str = "https"


@dataclass(frozen=True)
class SSHCredentials:
    private_key: str = field(repr=False)
    known_hosts: str
    username: str = ""
    password: str = field(default="", repr=False)


Credentials: TypeAlias = HTTPCredentials | SSHCredentials


def parse_remote_url(url: str) -> RemoteURL:
    """Split a remote URL into scheme/host/port/user.

    scp-like ``git@host:org/repo.git`` remotes are reported as ``ssh``.
    """
    if "://" not in url:
        m = _SCP_LIKE.match(url)
        if m is not None:
            return RemoteURL(scheme="ssh", host=m["host"], username=m["user"])
        return RemoteURL(scheme="", host="")
    parts = urlsplit(url)
    try:
        port = parts.port
    except ValueError as e:
        raise ConfigError(f"invalid port in url {url!r}") from e
    return RemoteURL(
        scheme=parts.scheme.lower(),
        host=parts.hostname or "",
        port=port,
        username=parts.username,
    )


def scan_host_key(host: str, port: int | None = None) -> str:
    """Return known_hosts lines for *host* using ``ssh-keyscan``."""
    cmd = ["ssh-keyscan", "-T", "10"]
    if port is not None:
        cmd += ["-p", str(port)]
    cmd.append(host)
    logger.debug("Scanning host keys: %s", " ".join(cmd))
    try:
        completed = subprocess.run(
            cmd,
            check=True,
            capture_output=True,
            text=True,
            timeout=_KEYSCAN_TIMEOUT,
        )
    except FileNotFoundError as e:
        raise ConfigError("ssh-keyscan is required for ssh remotes but was not found") from e
    except (subprocess.CalledProcessError, subprocess.TimeoutExpired) as e:
        raise TransientError(f"host key scan for {host} failed: {e}") from e

    lines = [ln for ln in completed.stdout.splitlines() if ln and not ln.startswith("#")]
    if not lines:
        raise TransientError(f"host key scan for {host} returned no keys")
    return "\n".join(lines) + "\n"


def resolve_credentials(
    url: str,
    http: HttpAuth | None = None,
    ssh: SshAuth | None = None,
    *,
    scan: Callable[[str, int | None], str] = scan_host_key,
) -> Credentials:
    """Pick the credential variant for *url* from the declared blocks.

    Raises:
        ConfigError: unsupported scheme, missing block, or ssh without private key.
        TransientError: the ssh host key scan failed.
    """
    remote = parse_remote_url(url)
    match remote.scheme:
        case "http" | "https":
            if http is None:
                raise ConfigError(f"{remote.scheme} scheme requires an http block")
            return HTTPCredentials(
                username=http.username,
                password=http.password.get_secret_value() if http.password else "",
                allow_insecure=http.allow_insecure_http,
                ca_certificate=http.certificate_authority if remote.scheme == "https" else "",
                transport=remote.scheme,
            )
        case "ssh":
            private_key = ssh.private_key.get_secret_value() if ssh and ssh.private_key else ""
            if ssh is None or not private_key:
                raise ConfigError("ssh scheme cannot be used without private key")
            known_hosts = scan(remote.host, remote.port)
            return SSHCredentials(
                private_key=private_key,
                known_hosts=known_hosts,
                username=ssh.username,
                password=ssh.password.get_secret_value() if ssh.password else "",
            )
        case _:
            raise ConfigError(f"scheme {remote.scheme!r} is not supported")
