"""Plan and apply engine for repository resources."""

from git_provisioner.engine.engine import GitEngine
from git_provisioner.engine.errors import (
    ApplyCanceled,
    ApplyError,
    ConfigError,
    DuplicateAddressError,
    EngineError,
    NotARegularFileError,
    PermanentError,
    PushError,
    RetryTimeoutError,
    StalePlanError,
    StateLockError,
    StateRepositoryMismatchError,
    TransientError,
    UnknownResourceTypeError,
    ValidationError,
)
from git_provisioner.engine.handlers import EngineContext, ResourceHandler
from git_provisioner.engine.registry import ResourceTypeRegistration, ResourceTypeRegistry
from git_provisioner.engine.types import Action, ApplyResult, Plan, PlanMetadata, ResourceChange

__all__ = [
    "Action",
    "ApplyCanceled",
    "ApplyError",
    "ApplyResult",
    "ConfigError",
    "DuplicateAddressError",
    "EngineContext",
    "EngineError",
    "GitEngine",
    "NotARegularFileError",
    "PermanentError",
    "Plan",
    "PlanMetadata",
    "PushError",
    "ResourceChange",
    "ResourceHandler",
    "ResourceTypeRegistration",
    "ResourceTypeRegistry",
    "RetryTimeoutError",
    "StalePlanError",
    "StateLockError",
    "StateRepositoryMismatchError",
    "TransientError",
    "UnknownResourceTypeError",
    "ValidationError",
]
