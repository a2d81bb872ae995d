"""
Form Service.

Wires the metadata cache, schema compiler, field registry and CRUD client
together into ready-to-use form instances for one service endpoint.
"""

import logging
from dataclasses import dataclass
from typing import Any, Mapping

from edm_forms.exceptions import EntityNotFoundError
from edm_forms.schemas.ui_schema import CompiledSchema
from edm_forms.services.compiler import SchemaCompiler
from edm_forms.services.crud import CrudClient
from edm_forms.services.form_state import FormState, coerce_values, presence_validator
from edm_forms.services.registry import (
    FieldRegistry,
    FieldResolver,
    FormRenderer,
    RendererConfig,
)

logger = logging.getLogger(__name__)


@dataclass
class FormInstance:
    """A compiled schema bound to its own state and renderer."""

    schema: CompiledSchema
    state: FormState
    renderer: FormRenderer

    def render_field(self, key: str, overrides: Mapping[str, Any] | None = None) -> Any:
        return self.renderer.field(key, overrides, self.state)

    def render_all(self, overrides: Mapping[str, Mapping[str, Any]] | None = None) -> list[Any]:
        return self.renderer.render_all(overrides, self.state)


class FormService:
    """
    Service producing forms for the entities of one OData endpoint.

    The pipeline:
    1. Get the entity descriptor from the metadata cache
    2. Compile it into fields and defaults
    3. Load select options from the target collections
    4. Bind the result to a fresh form state and renderer
    """

    def __init__(
        self,
        crud: CrudClient,
        compiler: SchemaCompiler | None = None,
        renderer_config: RendererConfig | None = None,
    ):
        self.crud = crud
        self.compiler = compiler or SchemaCompiler(option_loader=crud.list)
        self.renderer_config = renderer_config or RendererConfig()

    async def load_schema(
        self,
        entity: str,
        values: Mapping[str, Any] | None = None,
        force_refresh: bool = False,
        resolve_options: bool = True,
    ) -> CompiledSchema:
        """Compile the form schema of an entity."""
        descriptor = await self.crud.fetch_metadata(entity, force_refresh)
        if resolve_options:
            return await self.compiler.compile_resolved(descriptor, values)
        return self.compiler.compile(descriptor, values)

    def bind(self, schema: CompiledSchema) -> FormInstance:
        """Create a form instance owning its own state."""
        registry = FieldRegistry()
        registry.init_from_schema(schema.fields)
        state = FormState(
            initial_values=schema.defaults,
            fields=schema.fields,
            validator=presence_validator(schema.fields),
        )
        renderer = FormRenderer(registry, FieldResolver(self.renderer_config))
        return FormInstance(schema=schema, state=state, renderer=renderer)

    async def open_form(
        self,
        entity: str,
        key: Any = None,
        force_refresh: bool = False,
    ) -> FormInstance:
        """
        Open a create form, or an edit form when ``key`` is given.

        Returns:
            The bound form instance
        """
        values = None
        if key is not None:
            values = await self.crud.get_by_id(entity, key)
            if values is None:
                raise EntityNotFoundError(entity, key)
        schema = await self.load_schema(entity, values, force_refresh)
        return self.bind(schema)

    async def submit(
        self,
        entity: str,
        values: Mapping[str, Any],
        key: Any = None,
        partial: bool = False,
    ) -> tuple[FormInstance, dict[str, Any] | None]:
        """
        Validate values through a form instance and persist them.

        Creates when ``key`` is None, otherwise replaces (or patches when
        ``partial``). Server validation errors end up on the form state.

        Returns:
            The form instance and the stored record (None if invalid)
        """
        form = self.bind(await self.load_schema(entity, resolve_options=False))
        touched = {k: v for k, v in values.items() if k in form.schema.fields}
        if partial:
            # Only the submitted fields are checked and sent
            form.state.validator = presence_validator(
                {k: form.schema.fields[k] for k in touched}
            )
            form.state.patch_values(touched)
        else:
            form.state.reset_values(values)

        async def persist(values: dict[str, Any]) -> dict[str, Any] | None:
            payload = coerce_values(form.schema.fields, values)
            if key is None:
                return await self.crud.create(entity, payload)
            if partial:
                return await self.crud.patch(entity, key, {k: payload[k] for k in touched})
            return await self.crud.update(entity, key, payload)

        record = await form.state.submit(persist)
        if form.state.errors:
            logger.info("Submission of %s rejected: %s", entity, sorted(form.state.errors))
        return form, record

