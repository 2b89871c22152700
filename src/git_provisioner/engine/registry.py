"""Resource types an engine can plan, with their handlers and planning markers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from git_provisioner.engine.errors import ConfigError, UnknownResourceTypeError
from git_provisioner.resources.markers import collect_frozen_fields, collect_replace_fields

if TYPE_CHECKING:
    from git_provisioner.engine.handlers import ResourceHandler
    from git_provisioner.resources.base import Resource


@dataclass(frozen=True)
class ResourceTypeRegistration:
    """One resource type: its model, its handler and the fields that steer planning.

    ``replace_fields`` turn a change into delete + create; ``frozen_fields``
    keep their stored value once ignore-updates is recorded for an instance.
    """

    resource_type: str
    model: type[Resource]
    handler: ResourceHandler[Any]
    replace_fields: frozenset[str] = frozenset()
    frozen_fields: frozenset[str] = frozenset()

    def address(self, name: str) -> str:
        return f"{self.resource_type}.{name}"


class ResourceTypeRegistry:
    """Resource types keyed by ``resource_type``.

    Field markers are read from the model once, at registration.
    """

    def __init__(self) -> None:
        self._registrations: dict[str, ResourceTypeRegistration] = {}

    def register(
        self, model: type[Resource], handler: ResourceHandler[Any]
    ) -> ResourceTypeRegistration:
        resource_type = getattr(model, "resource_type", None)
        if not isinstance(resource_type, str) or not resource_type:
            raise ValueError(f"{model.__name__} must define a non-empty classvar `resource_type`")
        if "." in resource_type:
            raise ValueError(f"Resource type must not contain '.': {resource_type}")
        if resource_type in self._registrations:
            raise ValueError(f"Resource type already registered: {resource_type}")

        reg = ResourceTypeRegistration(
            resource_type=resource_type,
            model=model,
            handler=handler,
            replace_fields=frozenset(collect_replace_fields(model)),
            frozen_fields=frozenset(collect_frozen_fields(model)),
        )
        self._registrations[resource_type] = reg
        return reg

    def get(self, resource_type: str) -> ResourceTypeRegistration:
        try:
            return self._registrations[resource_type]
        except KeyError as e:
            raise UnknownResourceTypeError(resource_type) from e

    @property
    def resource_types(self) -> list[str]:
        return sorted(self._registrations)

    def parse_address(
        self, address: str, *, default_type: str | None = None
    ) -> tuple[ResourceTypeRegistration, str]:
        """Split ``<resource_type>.<name>`` into its registration and the name.

        A bare ``<name>`` is looked up under *default_type*.

        Raises:
            ConfigError: the address is malformed or names an unregistered type.
        """
        resource_type, sep, name = address.partition(".")
        if not sep:
            resource_type, name = default_type or "", address
        if not resource_type or not name:
            raise ConfigError(f"invalid resource address: {address!r}")
        reg = self._registrations.get(resource_type)
        if reg is None:
            raise ConfigError(
                f"cannot use {address}: unknown resource type {resource_type!r}; "
                f"supported: {', '.join(self.resource_types)}"
            )
        return reg, name
