from typing import Annotated, ClassVar

import pytest

from git_provisioner.config.registry import default_registry
from git_provisioner.engine.errors import ConfigError, UnknownResourceTypeError
from git_provisioner.engine.handlers import ResourceHandler
from git_provisioner.engine.registry import ResourceTypeRegistry
from git_provisioner.engine.repository_file_handler import RepositoryFileHandler
from git_provisioner.resources.base import Resource
from git_provisioner.resources.markers import FreezeOnIgnoreUpdates, RequiresReplace
from git_provisioner.resources.repository_file import RepositoryFileResource


class DummyResource(Resource):
    resource_type: ClassVar[str] = "dummy"
    value: int


class MarkedResource(Resource):
    resource_type: ClassVar[str] = "marked"
    key: Annotated[str, RequiresReplace()]
    body: Annotated[str, FreezeOnIgnoreUpdates()] = ""
    note: str = ""


class DottedResource(Resource):
    resource_type: ClassVar[str] = "bad.type"


class DummyHandler(ResourceHandler["DummyResource"]):
    pass


def test_registry_register_and_get() -> None:
    registry = ResourceTypeRegistry()
    handler = DummyHandler()

    returned = registry.register(DummyResource, handler)
    reg = registry.get("dummy")

    assert reg is returned
    assert reg.resource_type == "dummy"
    assert reg.model is DummyResource
    assert reg.handler is handler
    assert reg.replace_fields == frozenset()
    assert reg.frozen_fields == frozenset()


def test_registration_collects_markers() -> None:
    reg = ResourceTypeRegistry().register(MarkedResource, DummyHandler())
    assert reg.replace_fields == {"key"}
    assert reg.frozen_fields == {"body"}
    assert reg.address("x") == "marked.x"


def test_registry_duplicate_registration() -> None:
    registry = ResourceTypeRegistry()
    handler = DummyHandler()

    registry.register(DummyResource, handler)
    with pytest.raises(ValueError, match="already registered"):
        registry.register(DummyResource, handler)


def test_registry_rejects_dotted_type() -> None:
    with pytest.raises(ValueError, match="must not contain"):
        ResourceTypeRegistry().register(DottedResource, DummyHandler())


def test_registry_unknown_type() -> None:
    registry = ResourceTypeRegistry()
    with pytest.raises(UnknownResourceTypeError, match="Unknown resource type: missing"):
        registry.get("missing")


class TestParseAddress:
    @pytest.fixture
    def registry(self) -> ResourceTypeRegistry:
        registry = ResourceTypeRegistry()
        registry.register(DummyResource, DummyHandler())
        registry.register(MarkedResource, DummyHandler())
        return registry

    def test_full_address(self, registry: ResourceTypeRegistry) -> None:
        reg, name = registry.parse_address("marked.readme")
        assert reg.resource_type == "marked"
        assert name == "readme"

    def test_bare_name_uses_default(self, registry: ResourceTypeRegistry) -> None:
        reg, name = registry.parse_address("readme", default_type="dummy")
        assert reg.resource_type == "dummy"
        assert name == "readme"

    @pytest.mark.parametrize("address", ["readme", "dummy.", ".readme", ""])
    def test_invalid(self, registry: ResourceTypeRegistry, address: str) -> None:
        with pytest.raises(ConfigError, match="invalid resource address"):
            registry.parse_address(address)

    def test_unknown_type_lists_supported(self, registry: ResourceTypeRegistry) -> None:
        with pytest.raises(ConfigError, match="supported: dummy, marked"):
            registry.parse_address("other.readme")


def test_default_registry_has_repository_files() -> None:
    registry = default_registry()
    reg = registry.get("git_repository_file")
    assert reg.model is RepositoryFileResource
    assert isinstance(reg.handler, RepositoryFileHandler)
    assert reg.replace_fields == {"path", "branch"}
    assert reg.frozen_fields == {"content"}
    assert registry.resource_types == ["git_repository_file"]


def test_handler_import_unsupported_by_default() -> None:
    with pytest.raises(NotImplementedError, match="DummyHandler does not support import"):
        DummyHandler().import_state(None, "x")  # type: ignore[arg-type]
