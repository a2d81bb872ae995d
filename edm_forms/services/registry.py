"""
Field registry and renderer resolution.

The registry holds the field definitions of one form; the resolver maps an
abstract field kind to a renderer, so one compiled schema can be rendered by
entirely different widget sets without recompilation.
"""

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Callable, Mapping

from edm_forms.exceptions import UnknownFieldError
from edm_forms.schemas.ui_schema import FieldKind, FieldSchema

if TYPE_CHECKING:
    from edm_forms.services.form_state import FormState

logger = logging.getLogger(__name__)

Renderer = Callable[..., Any]


@dataclass(frozen=True)
class FieldDefinition:
    """A field as registered for rendering."""

    key: str
    kind: str
    props: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))


def describe_widget(**props: Any) -> dict[str, Any]:
    """Generic fallback renderer: a plain description of the widget."""
    return {"component": props.pop("kind", "input"), **props}


class FieldRegistry:
    """Registry of field definitions keyed by field name."""

    def __init__(self) -> None:
        self._definitions: dict[str, FieldDefinition] = {}

    def preset(self, key: str, kind: FieldKind | str, props: Mapping[str, Any] | None = None) -> FieldDefinition:
        kind = kind.value if isinstance(kind, FieldKind) else str(kind)
        definition = FieldDefinition(key=key, kind=kind, props=MappingProxyType(dict(props or {})))
        self._definitions[key] = definition
        return definition

    def get(self, key: str) -> FieldDefinition:
        definition = self._definitions.get(key)
        if definition is None:
            raise UnknownFieldError(key)
        return definition

    def get_all(self) -> list[FieldDefinition]:
        return list(self._definitions.values())

    def keys(self) -> list[str]:
        return list(self._definitions)

    def __contains__(self, key: object) -> bool:
        return key in self._definitions

    def init_from_schema(self, fields: Mapping[str, FieldSchema]) -> None:
        """Register every compiled field."""
        for key, schema in fields.items():
            self.preset(
                key,
                schema.kind,
                schema.props.model_dump(exclude_none=True, mode="json"),
            )


@dataclass
class RendererConfig:
    """Renderers per field kind plus a configured default."""

    components: dict[str, Renderer] = field(default_factory=dict)
    default_component: Renderer | None = None


class FieldResolver:
    """
    Resolves the renderer for a field kind.

    Lookup order: per-instance override, kind-specific renderer, configured
    default renderer, generic fallback.
    """

    def __init__(self, config: RendererConfig | None = None):
        self.config = config or RendererConfig()

    def resolve(self, kind: FieldKind | str, override: Renderer | None = None) -> Renderer:
        if override is not None:
            return override
        kind = kind.value if isinstance(kind, FieldKind) else kind
        renderer = self.config.components.get(kind)
        if renderer is not None:
            return renderer
        if self.config.default_component is not None:
            return self.config.default_component
        return describe_widget

    def register(self, kind: FieldKind | str, renderer: Renderer) -> None:
        """Add or replace the renderer of a kind."""
        kind = kind.value if isinstance(kind, FieldKind) else kind
        self.config.components[kind] = renderer


class FormRenderer:
    """
    Renders registered fields through the resolver.

    Renderers are called with the definition's props, any overrides, the
    field ``name`` and ``kind``, and the current ``value``/``error`` when a
    form state is given.
    """

    def __init__(
        self,
        registry: FieldRegistry,
        resolver: FieldResolver | None = None,
        overrides: Mapping[str, Renderer] | None = None,
    ):
        self.registry = registry
        self.resolver = resolver or FieldResolver()
        # Per-instance renderer overrides keyed by field name
        self.overrides = dict(overrides or {})

    def field(
        self,
        key: str,
        overrides: Mapping[str, Any] | None = None,
        state: "FormState | None" = None,
    ) -> Any:
        definition = self.registry.get(key)
        renderer = self.resolver.resolve(definition.kind, self.overrides.get(key))
        props: dict[str, Any] = {**definition.props, **(overrides or {})}
        props["name"] = key
        props["kind"] = definition.kind
        if state is not None:
            props["value"] = state.values.get(key)
            props["error"] = state.get_error(key)
        return renderer(**props)

    def render_all(
        self,
        overrides: Mapping[str, Mapping[str, Any]] | None = None,
        state: "FormState | None" = None,
    ) -> list[Any]:
        overrides = overrides or {}
        return [
            self.field(definition.key, overrides.get(definition.key), state)
            for definition in self.registry.get_all()
        ]
