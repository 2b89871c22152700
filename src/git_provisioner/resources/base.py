"""Base resource class."""

from typing import ClassVar

from pydantic import BaseModel, ConfigDict, Field, computed_field


class Resource(BaseModel):
    """Base class for all resources.

    Resources are pure data - they define the desired state.
    Handlers know how to CRUD resources.
    """

    model_config = ConfigDict(extra="forbid")

    resource_type: ClassVar[str]

    name: str = Field(pattern=r"^[a-zA-Z0-9_-]+$")

    @computed_field
    @property
    def address(self) -> str:
        """Unique address for this resource (e.g., 'git_repository_file.readme')."""
        return f"{self.resource_type}.{self.name}"
