"""
Pydantic models describing entity types parsed from a metadata document.

Descriptors are immutable value objects: they are produced once per
(endpoint, entity) pair and shared between callers of the metadata cache.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class EdmType(str, Enum):
    """Abstract primitive types recognised by the schema compiler."""

    STRING = "string"
    INT32 = "int32"
    INT64 = "int64"
    DECIMAL = "decimal"
    DOUBLE = "double"
    BOOLEAN = "boolean"
    DATETIME = "datetime"
    GUID = "guid"
    BINARY = "binary"


class PropertyDescriptor(BaseModel):
    """A structural property of an entity type."""

    name: str
    abstract_type: EdmType = EdmType.STRING
    edm_type: str = "Edm.String"
    nullable: bool = True
    max_length: int | None = None
    is_key: bool = False
    display_name: str | None = None
    description: str | None = None
    placeholder: str | None = None

    model_config = {"frozen": True}


class NavigationPropertyDescriptor(BaseModel):
    """A relationship from one entity type to another."""

    name: str
    target_entity_name: str
    target_entity_set: str | None = None
    nullable: bool = True
    is_collection: bool = False
    partner: str | None = None

    model_config = {"frozen": True}

    @property
    def collection_name(self) -> str:
        """Name of the collection the target instances are listed from."""
        return self.target_entity_set or self.target_entity_name


class EntityDescriptor(BaseModel):
    """Fully resolved description of one entity type."""

    name: str
    namespace: str | None = None
    entity_set: str | None = None
    properties: tuple[PropertyDescriptor, ...] = ()
    navigation_properties: tuple[NavigationPropertyDescriptor, ...] = ()
    key_names: tuple[str, ...] = ()

    model_config = {"frozen": True}

    def get_property(self, name: str) -> PropertyDescriptor | None:
        for prop in self.properties:
            if prop.name == name:
                return prop
        return None

    def has_property(self, name: str) -> bool:
        return self.get_property(name) is not None


class CacheRecord(BaseModel):
    """A cached descriptor together with its validity window."""

    data: EntityDescriptor
    fetched_at: datetime
    expires_at: datetime

    model_config = {"frozen": True}

    def is_valid(self, now: datetime) -> bool:
        return now < self.expires_at


class EntityCollection(BaseModel):
    """One page of entities returned by a collection query."""

    value: list[dict] = Field(default_factory=list)
    count: int | None = None
