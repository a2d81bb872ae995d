"""
Pydantic schemas for descriptors, compiled forms and API request/response models.
"""

from edm_forms.schemas.entity import (
    CacheRecord,
    EdmType,
    EntityCollection,
    EntityDescriptor,
    NavigationPropertyDescriptor,
    PropertyDescriptor,
)
from edm_forms.schemas.form_data import (
    CollectionResponse,
    RecordFormData,
    RenderedForm,
    SubmitResponse,
)
from edm_forms.schemas.ui_schema import (
    CompiledSchema,
    FieldKind,
    FieldProps,
    FieldSchema,
    NavigationReference,
    OptionSource,
    SelectOption,
)

__all__ = [
    "CacheRecord",
    "EdmType",
    "EntityCollection",
    "EntityDescriptor",
    "NavigationPropertyDescriptor",
    "PropertyDescriptor",
    "CollectionResponse",
    "RecordFormData",
    "RenderedForm",
    "SubmitResponse",
    "CompiledSchema",
    "FieldKind",
    "FieldProps",
    "FieldSchema",
    "NavigationReference",
    "OptionSource",
    "SelectOption",
]
