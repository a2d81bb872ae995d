"""
Display metadata resolution utilities.

Resolves human-readable labels, descriptions and placeholders from the
annotation vocabularies different OData producers emit.
"""

import logging
from typing import Iterable, Mapping

from lxml import etree

logger = logging.getLogger(__name__)

# Canonical prefixes for vocabulary namespaces, used when a document binds
# them to an unexpected prefix
KNOWN_NAMESPACES: dict[str, str] = {
    "http://www.sap.com/Protocols/SAPData": "sap",
    "http://schemas.microsoft.com/ado/2007/08/dataservices/metadata": "m",
}

# Attribute-style annotations in priority order
DISPLAY_NAME_ATTRIBUTES = [
    "sap:label",
    "sap:display-format",
    "sap:quickinfo",
    "microsoft:displayName",
    "microsoft:label",
    "odata:displayName",
    "odata:label",
]

DESCRIPTION_ATTRIBUTES = [
    "sap:quickinfo",
    "sap:label",
    "microsoft:description",
    "odata:description",
]

PLACEHOLDER_ATTRIBUTES = [
    "sap:placeholder",
    "sap:display-format",
    "microsoft:placeholder",
    "odata:placeholder",
]

# Element-style (OData v4 vocabulary) annotations, matched on the last
# segment of the term so both aliases and full namespaces resolve
DISPLAY_NAME_TERMS = ["Label", "DisplayName"]
DESCRIPTION_TERMS = ["Description", "LongDescription", "QuickInfo"]
PLACEHOLDER_TERMS = ["Placeholder", "Prompt"]


def local_name(element: etree._Element) -> str:
    """Local name of an element, without its namespace."""
    return etree.QName(element).localname


def qualified_attributes(element: etree._Element) -> dict[str, str]:
    """
    Return an element's attributes keyed by ``prefix:name``.

    Unprefixed attributes keep their plain name.
    """
    reverse_ns = {uri: prefix for prefix, uri in element.nsmap.items() if prefix}
    result: dict[str, str] = {}
    for key, value in element.attrib.items():
        if key.startswith("{"):
            uri, name = key[1:].split("}", 1)
            prefix = KNOWN_NAMESPACES.get(uri) or reverse_ns.get(uri)
            if prefix is None:
                continue
            result[f"{prefix}:{name}"] = value
        else:
            result[key] = value
    return result


def annotation_terms(elements: Iterable[etree._Element]) -> dict[str, str]:
    """
    Collect ``<Annotation Term="...">`` children into a term -> value map.

    The value is taken from the ``String`` attribute or a nested ``String``
    element; terms are keyed by their last segment.
    """
    terms: dict[str, str] = {}
    for parent in elements:
        for child in parent:
            if not isinstance(child.tag, str) or local_name(child) != "Annotation":
                continue
            term = child.get("Term")
            if not term:
                continue
            value = child.get("String")
            if value is None:
                for nested in child:
                    if isinstance(nested.tag, str) and local_name(nested) == "String":
                        value = nested.text
                        break
            if value:
                terms.setdefault(term.rsplit(".", 1)[-1], value)
    return terms


def _first(mapping: Mapping[str, str], keys: list[str]) -> str | None:
    for key in keys:
        value = mapping.get(key)
        if value:
            return value
    return None


def resolve_display_metadata(
    element: etree._Element,
    external: Iterable[etree._Element] = (),
) -> dict[str, str | None]:
    """
    Resolve display name, description and placeholder for a property.

    Attribute vocabularies are tried first, then inline annotation elements,
    then out-of-line ``<Annotations>`` blocks targeting the property.

    Args:
        element: Property or NavigationProperty element
        external: ``Annotations`` elements whose target is this property

    Returns:
        Dict with ``display_name``, ``description`` and ``placeholder`` keys
    """
    attributes = qualified_attributes(element)
    terms = annotation_terms([element, *external])

    return {
        "display_name": _first(attributes, DISPLAY_NAME_ATTRIBUTES)
        or _first(terms, DISPLAY_NAME_TERMS),
        "description": _first(attributes, DESCRIPTION_ATTRIBUTES)
        or _first(terms, DESCRIPTION_TERMS),
        "placeholder": _first(attributes, PLACEHOLDER_ATTRIBUTES)
        or _first(terms, PLACEHOLDER_TERMS),
    }
