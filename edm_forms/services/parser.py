"""
Parser Service for metadata-to-descriptor transformation.

Transforms an EDMX metadata document into immutable entity descriptors
that the schema compiler can turn into forms without knowledge of the
wire format.
"""

import logging
from dataclasses import dataclass, field

from lxml import etree

from edm_forms.exceptions import SchemaParseError
from edm_forms.schemas.entity import (
    EntityDescriptor,
    NavigationPropertyDescriptor,
    PropertyDescriptor,
)
from edm_forms.utils.annotations import local_name, resolve_display_metadata
from edm_forms.utils.edm_mapping import get_abstract_type

logger = logging.getLogger(__name__)

COLLECTION_PREFIX = "Collection("


def _children(element: etree._Element, name: str) -> list[etree._Element]:
    """Direct children with the given local name, in any EDM namespace."""
    return [
        child
        for child in element
        if isinstance(child.tag, str) and local_name(child) == name
    ]


def _descendants(element: etree._Element, name: str) -> list[etree._Element]:
    return [
        node
        for node in element.iter()
        if isinstance(node.tag, str) and local_name(node) == name
    ]


def _parse_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    return value.strip().lower() == "true"


def _parse_max_length(value: str | None) -> int | None:
    if value is None:
        return None
    value = value.strip()
    if value.isdigit():
        return int(value)
    return None  # "Max" and friends


def _short_name(qualified: str) -> str:
    return qualified.rsplit(".", 1)[-1]


def _unwrap_collection(type_name: str) -> tuple[str, bool]:
    if type_name.startswith(COLLECTION_PREFIX) and type_name.endswith(")"):
        return type_name[len(COLLECTION_PREFIX):-1], True
    return type_name, False


@dataclass
class _DocumentIndex:
    """Lookups shared by all entity types of one document."""

    entity_types: dict[str, tuple[etree._Element, str | None]] = field(default_factory=dict)
    entity_sets: dict[str, str] = field(default_factory=dict)
    associations: dict[str, etree._Element] = field(default_factory=dict)
    annotations: dict[str, list[etree._Element]] = field(default_factory=dict)


class EntityDescriptorParser:
    """
    Service for parsing metadata documents into entity descriptors.

    Handles EDM v2 through v4 documents:
    - Entity types, properties and keys (including inherited ones)
    - Navigation properties, via ``Type`` or v2 associations
    - Entity sets declared in the entity container
    - Display metadata from attribute and element annotations
    """

    def __init__(self) -> None:
        self._xml_parser = etree.XMLParser(
            resolve_entities=False,
            no_network=True,
            remove_comments=True,
        )

    def load(self, raw: bytes | str) -> etree._Element:
        """
        Parse raw metadata into an XML tree.

        Raises:
            SchemaParseError: If the document is not well-formed EDMX
        """
        if isinstance(raw, str):
            raw = raw.encode("utf-8")
        try:
            root = etree.fromstring(raw, parser=self._xml_parser)
        except etree.XMLSyntaxError as e:
            raise SchemaParseError(f"Malformed metadata document: {e}") from e

        if root is None or (local_name(root) != "Edmx" and not _descendants(root, "Schema")):
            raise SchemaParseError("Metadata document has no EDMX schema")
        return root

    def entity_names(self, document: bytes | str | etree._Element) -> list[str]:
        """List the names of all entity types in the document."""
        root = self._ensure_root(document)
        return [
            entity.get("Name")
            for schema in _descendants(root, "Schema")
            for entity in _children(schema, "EntityType")
            if entity.get("Name")
        ]

    def parse(
        self,
        document: bytes | str | etree._Element,
        entity_name: str,
    ) -> EntityDescriptor | None:
        """
        Parse one entity type.

        Args:
            document: Raw metadata or an already loaded tree
            entity_name: Exact, case-sensitive entity type name

        Returns:
            The descriptor, or None if the entity is not in the document
        """
        root = self._ensure_root(document)
        index = self._build_index(root)

        for element, namespace in index.entity_types.values():
            if element.get("Name") == entity_name:
                return self._entity_to_descriptor(element, namespace, index)

        logger.debug("Entity type %s not present in metadata", entity_name)
        return None

    def parse_all(self, document: bytes | str | etree._Element) -> dict[str, EntityDescriptor]:
        """Parse every entity type of the document, keyed by name."""
        root = self._ensure_root(document)
        index = self._build_index(root)

        descriptors: dict[str, EntityDescriptor] = {}
        for element, namespace in index.entity_types.values():
            descriptor = self._entity_to_descriptor(element, namespace, index)
            descriptors.setdefault(descriptor.name, descriptor)
        logger.info("Parsed %d entity types", len(descriptors))
        return descriptors

    def _ensure_root(self, document: bytes | str | etree._Element) -> etree._Element:
        if isinstance(document, etree._Element):
            return document
        return self.load(document)

    @staticmethod
    def _qualify(namespace: str | None, name: str) -> str:
        return f"{namespace}.{name}" if namespace else name

    def _build_index(self, root: etree._Element) -> _DocumentIndex:
        index = _DocumentIndex()
        aliases: dict[str, str] = {}

        for schema in _descendants(root, "Schema"):
            namespace = schema.get("Namespace")
            alias = schema.get("Alias")
            if alias and namespace:
                aliases[alias] = namespace

            for entity in _children(schema, "EntityType"):
                name = entity.get("Name")
                if name:
                    index.entity_types[self._qualify(namespace, name)] = (entity, namespace)

            for association in _children(schema, "Association"):
                name = association.get("Name")
                if name:
                    index.associations[self._qualify(namespace, name)] = association

            for block in _children(schema, "Annotations"):
                target = block.get("Target")
                if target:
                    index.annotations.setdefault(target, []).append(block)

        for container in _descendants(root, "EntityContainer"):
            for entity_set in _children(container, "EntitySet"):
                set_name = entity_set.get("Name")
                type_name = entity_set.get("EntityType")
                if not set_name or not type_name:
                    continue
                index.entity_sets.setdefault(type_name, set_name)
                index.entity_sets.setdefault(_short_name(type_name), set_name)

        # Alias-qualified annotation targets ("self.Order/Name") resolve too
        for target in list(index.annotations):
            prefix, _, rest = target.partition(".")
            if prefix in aliases and rest:
                resolved = f"{aliases[prefix]}.{rest}"
                index.annotations.setdefault(resolved, []).extend(index.annotations[target])

        return index

    def _entity_to_descriptor(
        self,
        element: etree._Element,
        namespace: str | None,
        index: _DocumentIndex,
    ) -> EntityDescriptor:
        name = element.get("Name")
        chain = self._inheritance_chain(element, namespace, index)

        properties: list[PropertyDescriptor] = []
        navigations: list[NavigationPropertyDescriptor] = []
        key_names: list[str] = []

        for ancestor, ancestor_ns in chain:
            for key in _children(ancestor, "Key"):
                key_names.extend(
                    ref.get("Name") for ref in _children(key, "PropertyRef") if ref.get("Name")
                )

        for ancestor, ancestor_ns in chain:
            type_name = self._qualify(ancestor_ns, ancestor.get("Name"))
            for prop in _children(ancestor, "Property"):
                descriptor = self._property_to_descriptor(prop, type_name, key_names, index)
                if descriptor is not None:
                    properties.append(descriptor)
            for nav in _children(ancestor, "NavigationProperty"):
                descriptor = self._navigation_to_descriptor(nav, index)
                if descriptor is not None:
                    navigations.append(descriptor)

        qualified = self._qualify(namespace, name)
        return EntityDescriptor(
            name=name,
            namespace=namespace,
            entity_set=index.entity_sets.get(qualified) or index.entity_sets.get(name),
            properties=tuple(properties),
            navigation_properties=tuple(navigations),
            key_names=tuple(key_names),
        )

    def _inheritance_chain(
        self,
        element: etree._Element,
        namespace: str | None,
        index: _DocumentIndex,
    ) -> list[tuple[etree._Element, str | None]]:
        """Return the entity type and its base types, root type first."""
        chain = [(element, namespace)]
        seen = {id(element)}
        base = element.get("BaseType")
        while base:
            entry = index.entity_types.get(base)
            if entry is None:
                # Alias-qualified base type: fall back to a short-name match
                short = _short_name(base)
                entry = next(
                    (e for q, e in index.entity_types.items() if _short_name(q) == short),
                    None,
                )
            if entry is None or id(entry[0]) in seen:
                break
            seen.add(id(entry[0]))
            chain.append(entry)
            base = entry[0].get("BaseType")
        chain.reverse()
        return chain

    def _property_to_descriptor(
        self,
        element: etree._Element,
        type_name: str,
        key_names: list[str],
        index: _DocumentIndex,
    ) -> PropertyDescriptor | None:
        """Generate descriptor for a Property element."""
        name = element.get("Name")
        if not name:
            logger.warning("Skipping property without name on %s", type_name)
            return None

        edm_type = element.get("Type") or "Edm.String"
        display = resolve_display_metadata(
            element, index.annotations.get(f"{type_name}/{name}", [])
        )
        return PropertyDescriptor(
            name=name,
            abstract_type=get_abstract_type(edm_type),
            edm_type=edm_type,
            nullable=_parse_bool(element.get("Nullable"), default=True),
            max_length=_parse_max_length(element.get("MaxLength")),
            is_key=name in key_names,
            **display,
        )

    def _navigation_to_descriptor(
        self,
        element: etree._Element,
        index: _DocumentIndex,
    ) -> NavigationPropertyDescriptor | None:
        """Generate descriptor for a NavigationProperty element."""
        name = element.get("Name")
        if not name:
            return None

        type_attr = element.get("Type")
        nullable = _parse_bool(element.get("Nullable"), default=True)

        if type_attr:
            inner, is_collection = _unwrap_collection(type_attr)
        else:
            resolved = self._resolve_association(element, index)
            if resolved is None:
                logger.warning("Skipping navigation %s with unresolved target", name)
                return None
            inner, multiplicity = resolved
            is_collection = multiplicity == "*"
            nullable = multiplicity != "1"

        return NavigationPropertyDescriptor(
            name=name,
            target_entity_name=_short_name(inner),
            target_entity_set=index.entity_sets.get(inner) or index.entity_sets.get(_short_name(inner)),
            nullable=nullable,
            is_collection=is_collection,
            partner=element.get("Partner"),
        )

    def _resolve_association(
        self,
        element: etree._Element,
        index: _DocumentIndex,
    ) -> tuple[str, str] | None:
        """Resolve a v2 navigation's target type and multiplicity."""
        relationship = element.get("Relationship")
        to_role = element.get("ToRole")
        if not relationship or not to_role:
            return None

        association = index.associations.get(relationship)
        if association is None:
            short = _short_name(relationship)
            association = next(
                (a for q, a in index.associations.items() if _short_name(q) == short),
                None,
            )
        if association is None:
            return None

        for end in _children(association, "End"):
            if end.get("Role") == to_role and end.get("Type"):
                return end.get("Type"), end.get("Multiplicity", "1")
        return None
