"""
Metadata Cache Service.

Fetches and memoizes entity descriptors per service endpoint, coalescing
concurrent fetches of the same metadata document.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from functools import partial
from typing import Callable

from edm_forms.clients.odata_client import ODataHttpClient
from edm_forms.config import get_settings
from edm_forms.exceptions import EntityNotFoundError
from edm_forms.schemas.entity import CacheRecord, EntityDescriptor
from edm_forms.services.parser import EntityDescriptorParser

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]
CacheListener = Callable[[str, str, EntityDescriptor], None]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class _InflightFetch:
    task: asyncio.Future
    started_at: datetime


class MetadataCache:
    """
    Process-wide cache of entity descriptors.

    Features:
    - One metadata download per endpoint, shared by all entities
    - Concurrent callers within the coalescing window share one fetch
    - Records expire after a configurable TTL
    - Stale in-flight results never overwrite a fresher record
    - Subscribers are notified whenever a record is applied
    """

    def __init__(
        self,
        http: ODataHttpClient | None = None,
        parser: EntityDescriptorParser | None = None,
        ttl_seconds: float | None = None,
        coalesce_window_seconds: float | None = None,
        clock: Clock | None = None,
    ):
        settings = get_settings()
        self.http = http or ODataHttpClient(
            timeout=settings.http_timeout_seconds,
            user_agent=settings.user_agent,
        )
        self.parser = parser or EntityDescriptorParser()
        self.ttl_seconds = (
            settings.metadata_ttl_seconds if ttl_seconds is None else ttl_seconds
        )
        self.coalesce_window_seconds = (
            settings.coalesce_window_ms / 1000
            if coalesce_window_seconds is None
            else coalesce_window_seconds
        )
        self._clock = clock or _utcnow

        self._records: dict[tuple[str, str], CacheRecord] = {}
        self._inflight: dict[str, _InflightFetch] = {}
        self._listeners: list[CacheListener] = []

    @staticmethod
    def _key(endpoint: str, entity_name: str) -> tuple[str, str]:
        return endpoint.rstrip("/"), entity_name

    def peek(self, endpoint: str, entity_name: str) -> CacheRecord | None:
        """Return the cached record if it is still valid, without fetching."""
        key = self._key(endpoint, entity_name)
        record = self._records.get(key)
        if record is None:
            return None
        if not record.is_valid(self._clock()):
            del self._records[key]
            return None
        return record

    def is_fresh(self, endpoint: str, entity_name: str) -> bool:
        """Check if a valid record is cached for the entity."""
        return self.peek(endpoint, entity_name) is not None

    async def get(
        self,
        endpoint: str,
        entity_name: str,
        force_refresh: bool = False,
    ) -> EntityDescriptor:
        """
        Get the descriptor of an entity.

        Args:
            endpoint: Service root URL
            entity_name: Exact entity type name
            force_refresh: Skip the validity check (an in-flight fetch is
                still shared)

        Raises:
            EntityNotFoundError: If the entity is not in the metadata
            TransportError: If the metadata could not be downloaded
            SchemaParseError: If the metadata is malformed
        """
        endpoint = endpoint.rstrip("/")

        if not force_refresh:
            record = self.peek(endpoint, entity_name)
            if record is not None:
                logger.debug("Returning cached metadata for %s/%s", endpoint, entity_name)
                return record.data

        started_at, descriptors = await self._fetch_document(endpoint)

        descriptor = descriptors.get(entity_name)
        if descriptor is None:
            raise EntityNotFoundError(entity_name)

        return self._apply(endpoint, entity_name, descriptor, started_at)

    async def _fetch_document(
        self, endpoint: str
    ) -> tuple[datetime, dict[str, EntityDescriptor]]:
        now = self._clock()
        inflight = self._inflight.get(endpoint)

        if (
            inflight is not None
            and not inflight.task.done()
            and (now - inflight.started_at).total_seconds() <= self.coalesce_window_seconds
        ):
            logger.debug("Joining in-flight metadata fetch for %s", endpoint)
        else:
            task = asyncio.ensure_future(self._download(endpoint))
            inflight = _InflightFetch(task=task, started_at=now)
            self._inflight[endpoint] = inflight
            task.add_done_callback(partial(self._forget, endpoint, inflight))

        # A cancelled waiter must not cancel the fetch other callers share
        descriptors = await asyncio.shield(inflight.task)
        return inflight.started_at, descriptors

    async def _download(self, endpoint: str) -> dict[str, EntityDescriptor]:
        raw = await self.http.get_metadata(endpoint)
        return self.parser.parse_all(raw)

    def _forget(self, endpoint: str, inflight: _InflightFetch, task: asyncio.Future) -> None:
        if self._inflight.get(endpoint) is inflight:
            del self._inflight[endpoint]
        if not task.cancelled() and task.exception() is not None:
            logger.debug("Metadata fetch for %s failed: %s", endpoint, task.exception())

    def _apply(
        self,
        endpoint: str,
        entity_name: str,
        descriptor: EntityDescriptor,
        started_at: datetime,
    ) -> EntityDescriptor:
        """Store a fetch result unless a fresher record already exists."""
        key = self._key(endpoint, entity_name)
        existing = self._records.get(key)

        if existing is not None and existing.fetched_at > started_at:
            logger.debug(
                "Discarding superseded metadata for %s/%s", endpoint, entity_name
            )
            if existing.is_valid(self._clock()):
                return existing.data
            return descriptor

        self._records[key] = CacheRecord(
            data=descriptor,
            fetched_at=started_at,
            expires_at=started_at + timedelta(seconds=self.ttl_seconds),
        )
        self._notify(endpoint, entity_name, descriptor)
        return descriptor

    def subscribe(self, listener: CacheListener) -> Callable[[], None]:
        """
        Register a callback invoked whenever a record is stored.

        Returns:
            A function removing the subscription.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, endpoint: str, entity_name: str, descriptor: EntityDescriptor) -> None:
        for listener in list(self._listeners):
            try:
                listener(endpoint, entity_name, descriptor)
            except Exception:
                logger.exception(
                    "Metadata listener failed for %s/%s", endpoint, entity_name
                )

    def cached_entities(self) -> list[tuple[str, str]]:
        """List the (endpoint, entity) pairs holding a valid record."""
        now = self._clock()
        return [key for key, record in self._records.items() if record.is_valid(now)]

    def invalidate(self, endpoint: str, entity_name: str) -> bool:
        """
        Invalidate the cached record of one entity.

        Returns:
            True if a record was removed.
        """
        removed = self._records.pop(self._key(endpoint, entity_name), None)
        if removed is not None:
            logger.info("Invalidated metadata for %s/%s", endpoint, entity_name)
            return True
        return False

    def invalidate_all(self) -> int:
        """
        Clear all cached records.

        Returns:
            Number of records removed.
        """
        count = len(self._records)
        self._records.clear()
        logger.info("Cleared %d cached metadata records", count)
        return count
