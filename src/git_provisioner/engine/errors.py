"""Engine error types.

Errors are classified once, where they are raised: ``PermanentError`` subclasses
are never retried, ``TransientError`` subclasses may be retried by the caller.
"""

from __future__ import annotations

from typing import Any


class EngineError(Exception):
    """Base exception for engine errors."""


class PermanentError(EngineError):
    """An error that retrying cannot fix."""


class TransientError(EngineError):
    """A network or remote-state failure that may succeed on a later attempt."""


class ConfigError(PermanentError):
    """Raised for invalid configuration, credentials, identifiers, or file preconditions."""


class NotARegularFileError(PermanentError):
    """Raised when a tracked path exists in the repository but is not a regular file."""

    def __init__(self, path: str) -> None:
        super().__init__(f"{path}: file is a directory or not a regular file")
        self.path = path


class PushError(TransientError):
    """Raised when pushing a commit to the remote fails."""


class RetryTimeoutError(PermanentError):
    """Raised when retries are abandoned because the deadline elapsed.

    The last observed error is kept on ``last_error`` and chained via
    ``__cause__``.
    """

    def __init__(self, timeout: float, last_error: BaseException) -> None:
        super().__init__(f"timeout after {timeout:g}s: {last_error}")
        self.timeout = timeout
        self.last_error = last_error


class UnknownResourceTypeError(EngineError):
    """Raised when a resource type has no registration/handler."""

    def __init__(self, resource_type: str) -> None:
        super().__init__(f"Unknown resource type: {resource_type}")
        self.resource_type = resource_type


class DuplicateAddressError(EngineError):
    """Raised when multiple desired resources share the same address."""

    def __init__(self, address: str) -> None:
        super().__init__(f"Duplicate resource address: {address}")
        self.address = address


class StateRepositoryMismatchError(EngineError):
    """Raised when the on-disk state belongs to a different repository URL."""

    def __init__(self, expected: str, got: str) -> None:
        super().__init__(f"State repository mismatch: expected {expected}, got {got}")
        self.expected = expected
        self.got = got


class StalePlanError(EngineError):
    """Raised when applying a plan against a different state than planned."""


class StateLockError(EngineError):
    """Raised when the state lock cannot be acquired or released."""


class ValidationError(EngineError):
    """One or more resources failed plan validation."""

    def __init__(self, errors: list[str]) -> None:
        self.errors = errors
        msg = "Validation failed:\n" + "\n".join(f"  - {e}" for e in errors)
        super().__init__(msg)


class ApplyError(EngineError):
    """Raised when an apply fails mid-way through.

    Carries the partial result (what was applied before the failure) so
    callers can inspect progress.  The underlying exception is chained via
    ``__cause__``.
    """

    def __init__(self, *, applied: list[Any], address: str, message: str) -> None:
        from git_provisioner.engine.types import ApplyResult

        self.result = ApplyResult(applied=applied)
        self.address = address
        super().__init__(f"Apply failed on {address}: {message}")


class ApplyCanceled(EngineError):
    """Raised when an apply is canceled (e.g., Ctrl-C)."""
