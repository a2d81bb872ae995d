"""
EDM to form field mapping.

Maps EDM primitive type names to abstract types, and abstract types and
property names to form field kinds.
"""

from typing import Any

from edm_forms.schemas.entity import EdmType, PropertyDescriptor
from edm_forms.schemas.ui_schema import FieldKind

# Mapping from EDM primitive names to abstract types
EDM_TO_ABSTRACT: dict[str, EdmType] = {
    # String types
    "Edm.String": EdmType.STRING,
    # Integer types
    "Edm.Byte": EdmType.INT32,
    "Edm.SByte": EdmType.INT32,
    "Edm.Int16": EdmType.INT32,
    "Edm.Int32": EdmType.INT32,
    "Edm.Int64": EdmType.INT64,
    # Numeric types (fractional)
    "Edm.Decimal": EdmType.DECIMAL,
    "Edm.Double": EdmType.DOUBLE,
    "Edm.Single": EdmType.DOUBLE,
    # Boolean
    "Edm.Boolean": EdmType.BOOLEAN,
    # Date and time types
    "Edm.DateTime": EdmType.DATETIME,
    "Edm.DateTimeOffset": EdmType.DATETIME,
    "Edm.Date": EdmType.DATETIME,
    # Identifiers
    "Edm.Guid": EdmType.GUID,
    # Binary types
    "Edm.Binary": EdmType.BINARY,
    "Edm.Stream": EdmType.BINARY,
}

ABSTRACT_TO_FIELD_KIND: dict[EdmType, FieldKind] = {
    EdmType.STRING: FieldKind.TEXT,
    EdmType.INT32: FieldKind.NUMBER,
    EdmType.INT64: FieldKind.NUMBER,
    EdmType.DECIMAL: FieldKind.NUMBER,
    EdmType.DOUBLE: FieldKind.NUMBER,
    EdmType.BOOLEAN: FieldKind.CHECKBOX,
    EdmType.DATETIME: FieldKind.DATE,
    EdmType.GUID: FieldKind.TEXT,
    EdmType.BINARY: FieldKind.FILE,
}

# Mapping for step attributes in number inputs
STEP_MAPPING: dict[EdmType, str] = {
    EdmType.INT32: "1",
    EdmType.INT64: "1",
    EdmType.DECIMAL: "0.01",
    EdmType.DOUBLE: "0.01",
}

# Strings longer than this are edited in a multi-line control
TEXTAREA_THRESHOLD = 255

# Name fragments that force a field kind, checked in order
NAME_HINTS: list[tuple[tuple[str, ...], FieldKind]] = [
    (("email",), FieldKind.EMAIL),
    (("password",), FieldKind.PASSWORD),
    (("phone", "mobile", "fax"), FieldKind.TEL),
    (("url", "website", "homepage"), FieldKind.URL),
]

FIELD_KIND_DEFAULTS: dict[FieldKind, Any] = {
    FieldKind.CHECKBOX: False,
    FieldKind.NUMBER: 0,
    FieldKind.FILE: None,
}

# Kinds holding several values; none are inferred yet but presets may use them
MULTI_VALUE_KINDS = frozenset({"multiselect"})


def _normalize(edm_type: str | None) -> str:
    type_str = str(edm_type).strip() if edm_type else "Edm.String"
    # Unqualified primitive names ("String") are accepted as well
    if "." not in type_str:
        type_str = "Edm." + type_str
    return type_str


def get_abstract_type(edm_type: str | None) -> EdmType:
    """
    Get the abstract type for an EDM type name.

    Args:
        edm_type: EDM type string (e.g., "Edm.Int32")

    Returns:
        Abstract type; complex and enum types map to string
    """
    return EDM_TO_ABSTRACT.get(_normalize(edm_type), EdmType.STRING)


def get_name_hint(name: str) -> FieldKind | None:
    """Return the field kind implied by a property name, if any."""
    lowered = name.lower()
    for fragments, kind in NAME_HINTS:
        if any(fragment in lowered for fragment in fragments):
            return kind
    return None


def get_type_kind(prop: PropertyDescriptor) -> FieldKind:
    """Field kind implied by the property's abstract type and length."""
    kind = ABSTRACT_TO_FIELD_KIND.get(prop.abstract_type, FieldKind.TEXT)
    if (
        kind is FieldKind.TEXT
        and prop.abstract_type is EdmType.STRING
        and prop.max_length is not None
        and prop.max_length > TEXTAREA_THRESHOLD
    ):
        return FieldKind.TEXTAREA
    return kind


def infer_field_kind(prop: PropertyDescriptor) -> FieldKind:
    """
    Infer the form field kind of a property.

    Name-based hints take precedence over type-based inference.
    """
    hinted = get_name_hint(prop.name)
    if hinted is not None:
        return hinted
    return get_type_kind(prop)


def get_step_attribute(abstract_type: EdmType) -> str | None:
    """
    Get step attribute value for numeric inputs.

    Returns:
        Step value or None
    """
    return STEP_MAPPING.get(abstract_type)


def get_default_value(kind: FieldKind | str) -> Any:
    """Type-appropriate empty value for a field kind."""
    if kind in MULTI_VALUE_KINDS:
        return []
    try:
        kind = FieldKind(kind)
    except ValueError:
        return ""
    return FIELD_KIND_DEFAULTS.get(kind, "")
