"""
Services of the form compilation pipeline.

Pipeline architecture:
- Metadata cache: metadata download, caching and request coalescing
- Parser: metadata-to-descriptor transformation
- Compiler: descriptor-to-form-schema transformation
- Registry: field definitions and renderer resolution
- Form state: values and errors of one form instance
- CRUD: entity persistence and error normalization
"""

from edm_forms.services.compiler import SchemaCompiler
from edm_forms.services.crud import CrudClient
from edm_forms.services.form_state import (
    FormState,
    coerce_values,
    presence_validator,
)
from edm_forms.services.forms import FormInstance, FormService
from edm_forms.services.metadata_cache import MetadataCache
from edm_forms.services.parser import EntityDescriptorParser
from edm_forms.services.registry import (
    FieldRegistry,
    FieldResolver,
    FormRenderer,
    RendererConfig,
)

__all__ = [
    "CrudClient",
    "EntityDescriptorParser",
    "FieldRegistry",
    "FieldResolver",
    "FormInstance",
    "FormRenderer",
    "FormService",
    "FormState",
    "MetadataCache",
    "RendererConfig",
    "SchemaCompiler",
    "coerce_values",
    "presence_validator",
]
