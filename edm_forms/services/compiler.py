"""
Schema Compiler Service for descriptor-to-form transformation.

Turns an entity descriptor into a renderer-agnostic field map with default
values, resolving single-valued navigations into select fields whose
options are loaded from the target collection.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Mapping

from pydantic import ValidationError as PydanticValidationError

from edm_forms.schemas.entity import (
    EdmType,
    EntityDescriptor,
    NavigationPropertyDescriptor,
    PropertyDescriptor,
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
from edm_forms.utils.edm_mapping import (
    get_default_value,
    get_step_attribute,
    infer_field_kind,
)

logger = logging.getLogger(__name__)

OptionLoader = Callable[[str], Awaitable[list[dict[str, Any]]]]
OptionsCallback = Callable[[str, list[SelectOption]], None]

IDENTITY_FIELDS = ("Id", "id", "ID")
LABEL_FIELDS = ("Name", "name", "Title", "title")


def is_identity_like(name: str) -> bool:
    """Server-assigned keys and references are never edited in a form."""
    return name.startswith("__") or name in ("Id", "id") or "id" in name.lower()


def build_option(item: Mapping[str, Any]) -> SelectOption:
    """Map a listed entity to a select option."""
    value = next((item[f] for f in IDENTITY_FIELDS if item.get(f) is not None), None)
    label = next((item[f] for f in LABEL_FIELDS if item.get(f)), None)
    if label is None:
        label = f"ID: {value}"
    return SelectOption(value=value, label=str(label))


class SchemaCompiler:
    """
    Service compiling entity descriptors into form schemas.

    Compilation is synchronous and pure; option lists of select fields are
    loaded afterwards, one independent task per field.
    """

    def __init__(self, option_loader: OptionLoader | None = None):
        self.option_loader = option_loader

    def compile(
        self,
        descriptor: EntityDescriptor,
        values: Mapping[str, Any] | None = None,
    ) -> CompiledSchema:
        """
        Compile a descriptor into a field map and default values.

        Args:
            descriptor: Entity to compile
            values: Existing values (e.g. of an edited instance); absent
                fields receive defaults

        Returns:
            Compiled schema with empty option lists for select fields
        """
        values = values or {}
        compiled = CompiledSchema(entity=descriptor.name)

        for prop in descriptor.properties:
            if is_identity_like(prop.name):
                continue
            field = self._property_field(prop)
            compiled.fields[field.key] = field
            compiled.defaults[field.key] = (
                values[field.key]
                if field.key in values
                else self._default_for(field, prop)
            )

        for nav in descriptor.navigation_properties:
            if nav.is_collection:
                continue
            foreign_key = f"{nav.name}Id"
            if not descriptor.has_property(foreign_key):
                message = f"No foreign key field found for navigation property {nav.name}"
                logger.warning("%s on %s", message, descriptor.name)
                compiled.warnings.append(message)
                continue

            key_type = descriptor.get_property(foreign_key).abstract_type
            compiled.fields[foreign_key] = self._navigation_field(
                foreign_key, nav, get_step_attribute(key_type)
            )
            compiled.defaults[foreign_key] = values.get(foreign_key, "")
            compiled.optionSources.append(
                OptionSource(
                    fieldKey=foreign_key,
                    collection=nav.collection_name,
                    navigation=nav.name,
                )
            )

        logger.debug(
            "Compiled %s: %s", descriptor.name, list(compiled.fields)
        )
        return compiled

    def _property_field(self, prop: PropertyDescriptor) -> FieldSchema:
        """Generate field schema for a structural property."""
        kind = infer_field_kind(prop)
        props = FieldProps(
            label=prop.display_name or prop.name,
            helpText=prop.description,
            placeholder=prop.placeholder or f"Enter {prop.name.lower()}",
            required=not prop.nullable,
            maxLength=prop.max_length,
        )
        if kind is FieldKind.NUMBER:
            props.step = get_step_attribute(prop.abstract_type)
        if kind is FieldKind.DATE:
            props.inputType = "date"
        return FieldSchema(key=prop.name, kind=kind, props=props)

    def _navigation_field(
        self, key: str, nav: NavigationPropertyDescriptor, step: str | None = None
    ) -> FieldSchema:
        """Generate select field schema for a foreign key."""
        target = nav.target_entity_name
        return FieldSchema(
            key=key,
            kind=FieldKind.SELECT,
            props=FieldProps(
                label=nav.name,
                helpText=f"Select {target}",
                placeholder=f"Choose {target}",
                required=not nav.nullable,
                step=step,
                options=[],
                navigationProperty=NavigationReference(
                    targetEntity=target,
                    entitySet=nav.target_entity_set,
                    isCollection=nav.is_collection,
                    originalName=nav.name,
                ),
            ),
        )

    @staticmethod
    def _default_for(field: FieldSchema, prop: PropertyDescriptor) -> Any:
        if field.kind is FieldKind.CHECKBOX:
            return False
        if not field.props.required:
            return None
        if prop.abstract_type is EdmType.BINARY:
            return None
        return get_default_value(field.kind)

    def resolve_options(
        self,
        compiled: CompiledSchema,
        on_resolved: OptionsCallback | None = None,
    ) -> list[asyncio.Task]:
        """
        Schedule option loading for every select field.

        Each field resolves independently: when its list arrives the field in
        ``compiled.fields`` is replaced and ``on_resolved(key, options)`` is
        called.

        Returns:
            One task per select field, each resolving to its options
        """
        if self.option_loader is None:
            if compiled.optionSources:
                logger.warning(
                    "No option loader configured; %d select fields stay empty",
                    len(compiled.optionSources),
                )
            return []

        return [
            asyncio.ensure_future(self._load_options(compiled, source, on_resolved))
            for source in compiled.optionSources
        ]

    async def _load_options(
        self,
        compiled: CompiledSchema,
        source: OptionSource,
        on_resolved: OptionsCallback | None,
    ) -> list[SelectOption]:
        try:
            items = await self.option_loader(source.collection)
            options = []
            for item in items:
                if not isinstance(item, Mapping):
                    continue
                try:
                    options.append(build_option(item))
                except PydanticValidationError:
                    logger.warning("Skipping malformed option in %s: %r", source.collection, item)
            logger.info(
                "Loaded %d options for %s (%s)",
                len(options),
                source.navigation,
                source.fieldKey,
            )
        except Exception:
            logger.exception(
                "Error loading navigation options for %s", source.navigation
            )
            options = []

        field = compiled.fields.get(source.fieldKey)
        if field is not None:
            compiled.fields[source.fieldKey] = field.model_copy(
                update={"props": field.props.model_copy(update={"options": options})}
            )
        if on_resolved is not None:
            on_resolved(source.fieldKey, options)
        return options

    async def compile_resolved(
        self,
        descriptor: EntityDescriptor,
        values: Mapping[str, Any] | None = None,
        on_resolved: OptionsCallback | None = None,
    ) -> CompiledSchema:
        """Compile and wait until every option list has been loaded."""
        compiled = self.compile(descriptor, values)
        tasks = self.resolve_options(compiled, on_resolved)
        if tasks:
            await asyncio.gather(*tasks)
        return compiled
