"""
Pydantic models for form submission data.

These models define the structure of data submitted from the frontend
when creating or updating an entity instance.
"""

from typing import Any

from pydantic import BaseModel, Field, field_validator


class RecordFormData(BaseModel):
    """Field values submitted for one entity instance."""

    values: dict[str, Any] = Field(default_factory=dict)

    @field_validator("values", mode="before")
    @classmethod
    def ensure_values_dict(cls, v):
        if v is None:
            return {}
        return v


class SubmitResponse(BaseModel):
    """Response after submitting a form."""

    success: bool
    record: dict[str, Any] | None = None
    errors: dict[str, str] = Field(default_factory=dict)


class CollectionResponse(BaseModel):
    """Response for a collection listing."""

    value: list[dict[str, Any]]
    count: int | None = None


class RenderedForm(BaseModel):
    """Widget descriptions for every field of an entity form."""

    entity: str
    widgets: list[Any]
    values: dict[str, Any] = Field(default_factory=dict)
