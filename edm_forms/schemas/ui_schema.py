"""
Pydantic models for UI schema representation.

These models define the renderer-agnostic structure of the form fields
compiled from an entity descriptor.
"""

from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field


class FieldKind(str, Enum):
    """Abstract field kinds a renderer can be registered for."""

    TEXT = "text"
    TEXTAREA = "textarea"
    NUMBER = "number"
    CHECKBOX = "checkbox"
    DATE = "date"
    SELECT = "select"
    EMAIL = "email"
    PASSWORD = "password"
    TEL = "tel"
    URL = "url"
    FILE = "file"


class SelectOption(BaseModel):
    """A selectable value of a select field."""

    value: Any
    label: str


class NavigationReference(BaseModel):
    """Back-reference from a foreign-key select field to its navigation."""

    targetEntity: str
    entitySet: str | None = None
    isCollection: bool = False
    originalName: str


class FieldProps(BaseModel):
    """Rendering properties of a field."""

    label: str
    helpText: str | None = None
    placeholder: str | None = None
    required: bool = False
    maxLength: int | None = None
    step: str | None = None
    inputType: str | None = None

    # Select-specific fields
    options: list[SelectOption] | None = None
    navigationProperty: NavigationReference | None = None

    model_config = {"extra": "allow"}


class FieldSchema(BaseModel):
    """Schema for one form field."""

    key: str
    kind: FieldKind
    props: FieldProps


class OptionSource(BaseModel):
    """A pending option lookup for a select field."""

    fieldKey: str
    collection: str
    navigation: str


class CompiledSchema(BaseModel):
    """
    Complete form schema for an entity.

    This is the top-level structure returned by the compiler. ``fields`` keeps
    the declaration order of the entity's properties followed by the
    navigation-derived select fields.
    """

    entity: str
    fields: dict[str, FieldSchema] = Field(default_factory=dict)
    defaults: dict[str, Any] = Field(default_factory=dict)
    optionSources: list[OptionSource] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


class HealthResponse(BaseModel):
    """Health check response."""

    status: Literal["healthy", "unhealthy"]
    version: str
    details: dict[str, Any] | None = None
