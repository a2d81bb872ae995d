"""
CRUD Service for OData entity collections.

Lists, reads, creates, replaces, patches and deletes entity instances and
normalizes the validation error shapes OData servers answer with.
"""

import logging
import re
from typing import Any, Mapping

import httpx
from pydantic import ValidationError as PydanticValidationError

from edm_forms.clients.odata_client import ODataHttpClient
from edm_forms.config import get_settings
from edm_forms.exceptions import TransportError, ValidationError
from edm_forms.schemas.entity import EntityCollection, EntityDescriptor
from edm_forms.services.metadata_cache import MetadataCache

logger = logging.getLogger(__name__)

GUID_PATTERN = re.compile(
    r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$"
)


def format_key(key: Any) -> str:
    """
    Format an entity key for use in ``Entity(<key>)``.

    Integers, numeric strings and GUIDs are used as-is; other strings are
    quoted as OData string literals.
    """
    if isinstance(key, bool):
        return str(key).lower()
    if isinstance(key, (int, float)):
        return str(key)
    text = str(key)
    if text.lstrip("-").isdigit() or GUID_PATTERN.match(text):
        return text
    return "'" + text.replace("'", "''") + "'"


def _first_messages(mapping: Mapping[str, Any], lists_only: bool = False) -> dict[str, str] | None:
    """
    Take the first message per field.

    With ``lists_only`` every value must be a list of strings, otherwise the
    mapping is not considered a validation map at all.
    """
    errors: dict[str, str] = {}
    for field, messages in mapping.items():
        if isinstance(messages, list):
            first = next((m for m in messages if isinstance(m, str) and m), None)
            if first is None:
                if lists_only:
                    return None
                continue
            if field:
                errors[field] = first
        elif isinstance(messages, str) and not lists_only:
            if field and messages:
                errors[field] = messages
        elif lists_only:
            return None
    return errors or None


def normalize_validation_errors(body: Any) -> dict[str, str] | None:
    """
    Normalize a server error body into a ``{field: message}`` map.

    Recognized shapes, tried in order:
    - OData ``{"error": {"details": [{"target", "message"}]}}``
    - ModelState nested in ``{"error": {"message": {field: [...]}}}``
    - RFC 7807 problem details ``{"errors": {field: [...]}}``
    - A bare ``{field: [message, ...]}`` map

    Returns:
        The field map, or None if the body is not a validation failure
    """
    if not isinstance(body, dict):
        return None

    error = body.get("error")
    if isinstance(error, dict):
        details = error.get("details")
        if isinstance(details, list):
            errors: dict[str, str] = {}
            for detail in details:
                if not isinstance(detail, dict):
                    continue
                target = detail.get("target")
                message = detail.get("message")
                if target and message:
                    errors.setdefault(re.sub(r"^#/", "", str(target)), str(message))
            if errors:
                return errors

        message = error.get("message")
        if isinstance(message, dict):
            errors = _first_messages(message)
            if errors:
                return errors

    problem_errors = body.get("errors")
    if isinstance(problem_errors, dict):
        errors = _first_messages(problem_errors)
        if errors:
            return errors

    if "error" not in body and "errors" not in body:
        return _first_messages(body, lists_only=True)

    return None


def error_message(body: Any, status_code: int) -> str:
    """Human-readable message for a failed response."""
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and isinstance(error.get("message"), str):
            return error["message"]
        if isinstance(body.get("title"), str):
            return body["title"]
    return f"HTTP error! status: {status_code}"


class CrudClient:
    """
    Generic CRUD client for the entity collections of one service.

    The entity name is passed per call; metadata lookups go through the
    injected cache so every client of a service shares one cache policy.
    """

    def __init__(
        self,
        endpoint: str | None = None,
        http: ODataHttpClient | None = None,
        metadata_cache: MetadataCache | None = None,
    ):
        settings = get_settings()
        self.endpoint = (endpoint or settings.service_url).rstrip("/")
        if http is None:
            http = metadata_cache.http if metadata_cache is not None else ODataHttpClient(
                timeout=settings.http_timeout_seconds,
                user_agent=settings.user_agent,
            )
        self.http = http
        self.metadata_cache = metadata_cache or MetadataCache(http=http)

    def _collection_url(self, entity: str) -> str:
        return f"{self.endpoint}/{entity}"

    def _entity_url(self, entity: str, key: Any) -> str:
        return f"{self.endpoint}/{entity}({format_key(key)})"

    @staticmethod
    def _safe_json(response: httpx.Response) -> Any:
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return None

    def _read_body(self, response: httpx.Response) -> Any:
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise TransportError(
                f"Invalid JSON response from {response.request.url}",
                status_code=response.status_code,
            ) from e

    def _raise_for_status(self, response: httpx.Response, validate: bool = False) -> None:
        if response.is_success:
            return

        body = self._safe_json(response)
        if validate:
            errors = normalize_validation_errors(body)
            if errors:
                logger.info(
                    "Validation failed for %s %s: %s",
                    response.request.method,
                    response.request.url,
                    sorted(errors),
                )
                raise ValidationError(errors)

        message = error_message(body, response.status_code)
        logger.warning(
            "%s %s failed: %s", response.request.method, response.request.url, message
        )
        raise TransportError(message, status_code=response.status_code)

    async def list(
        self,
        entity: str,
        query: str | Mapping[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        """
        Get all entities with optional OData query options.

        Args:
            entity: Entity collection name
            query: Raw query string (``"$top=5&$orderby=Name"``) or a mapping
                of query options
        """
        page = await self.list_page(entity, query)
        return page.value

    async def list_page(
        self,
        entity: str,
        query: str | Mapping[str, Any] | None = None,
    ) -> EntityCollection:
        """Get entities together with ``@odata.count`` when the server sends it."""
        url = self._collection_url(entity)
        params = None
        if isinstance(query, str):
            if query.strip("?"):
                url = f"{url}?{query.lstrip('?')}"
        elif query:
            params = dict(query)

        response = await self.http.send("GET", url, params=params)
        self._raise_for_status(response)
        data = self._read_body(response)

        if isinstance(data, list):
            items, count = data, None
        elif isinstance(data, dict):
            items, count = data.get("value") or [], data.get("@odata.count")
        else:
            return EntityCollection()

        if not isinstance(items, list):
            raise TransportError("Invalid collection response", response.status_code)
        records = [item for item in items if isinstance(item, dict)]
        if len(records) != len(items):
            logger.warning(
                "Dropped %d non-object items from %s", len(items) - len(records), entity
            )
        try:
            return EntityCollection(value=records, count=count)
        except PydanticValidationError as e:
            raise TransportError("Invalid collection response", response.status_code) from e

    async def get_by_id(
        self,
        entity: str,
        key: Any,
        expand: str | None = None,
    ) -> dict[str, Any] | None:
        """
        Get a single entity by key.

        Returns:
            The entity, or None if the server answers 404
        """
        url = self._entity_url(entity, key)
        if expand:
            url = f"{url}?$expand={expand}"

        response = await self.http.send("GET", url)
        if response.status_code == 404:
            logger.debug("%s(%s) not found", entity, key)
            return None
        self._raise_for_status(response)
        return self._read_body(response)

    async def create(self, entity: str, payload: Mapping[str, Any]) -> dict[str, Any] | None:
        """
        Create a new entity.

        Raises:
            ValidationError: If the server rejected field values
            TransportError: On any other failure
        """
        response = await self.http.send(
            "POST", self._collection_url(entity), json=dict(payload)
        )
        self._raise_for_status(response, validate=True)
        return self._read_body(response)

    async def update(
        self, entity: str, key: Any, payload: Mapping[str, Any]
    ) -> dict[str, Any] | None:
        """Replace an entity completely."""
        response = await self.http.send(
            "PUT", self._entity_url(entity, key), json=dict(payload)
        )
        self._raise_for_status(response, validate=True)
        return self._read_body(response)

    async def patch(
        self, entity: str, key: Any, payload: Mapping[str, Any]
    ) -> dict[str, Any] | None:
        """Update an entity partially."""
        response = await self.http.send(
            "PATCH", self._entity_url(entity, key), json=dict(payload)
        )
        self._raise_for_status(response, validate=True)
        return self._read_body(response)

    async def remove(self, entity: str, key: Any) -> None:
        """Delete an entity."""
        response = await self.http.send("DELETE", self._entity_url(entity, key))
        self._raise_for_status(response)

    async def fetch_metadata(
        self, entity: str, force_refresh: bool = False
    ) -> EntityDescriptor:
        """Fetch the descriptor of an entity through the metadata cache."""
        return await self.metadata_cache.get(self.endpoint, entity, force_refresh)

    def clear_cache(self, entity: str) -> bool:
        """Clear cached metadata of one entity."""
        return self.metadata_cache.invalidate(self.endpoint, entity)

    def clear_all_cache(self) -> int:
        """Clear all cached metadata."""
        return self.metadata_cache.invalidate_all()
