"""
Error taxonomy shared by the metadata, compiler, form and CRUD layers.
"""

from typing import Any


class EdmFormsError(Exception):
    """Base error carrying a human-readable message and an HTTP status."""

    status_code = 500
    message = "Internal error"

    def __init__(self, message: str | None = None, status_code: int | None = None):
        if status_code:
            self.status_code = status_code
        if message:
            self.message = message
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        return {"detail": self.message, "type": type(self).__name__}


class EntityNotFoundError(EdmFormsError):
    """An entity type or an entity instance does not exist."""

    status_code = 404

    def __init__(self, entity_name: str, key: Any = None):
        self.entity_name = entity_name
        self.key = key
        if key is None:
            message = f"Entity '{entity_name}' not found in metadata"
        else:
            message = f"{entity_name}({key}) not found"
        super().__init__(message)


class SchemaParseError(EdmFormsError):
    """The metadata document could not be parsed."""

    status_code = 502


class TransportError(EdmFormsError):
    """Network or HTTP failure talking to the OData service."""

    status_code = 502

    def __init__(self, message: str | None = None, status_code: int | None = None):
        # Status of the upstream answer, None for network failures
        self.upstream_status = status_code
        super().__init__(message or "Unknown error occurred")


class ValidationError(EdmFormsError):
    """Field-keyed validation failure reported by the server or the form."""

    status_code = 422
    kind = "validation"

    def __init__(self, errors: dict[str, str], message: str | None = None):
        self.errors = dict(errors)
        super().__init__(message or "Validation failed")

    def to_dict(self) -> dict[str, Any]:
        return {"detail": self.message, "type": self.kind, "errors": self.errors}


class UnknownFieldError(EdmFormsError):
    """A field key was referenced that was never compiled into the schema."""

    status_code = 400

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Unknown field: {key}")
