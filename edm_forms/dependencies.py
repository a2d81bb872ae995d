"""
FastAPI dependency injection setup.

Provides factory functions for service instances used across routes.
"""

from functools import lru_cache

from edm_forms.clients.odata_client import ODataHttpClient
from edm_forms.config import get_settings
from edm_forms.services.compiler import SchemaCompiler
from edm_forms.services.crud import CrudClient
from edm_forms.services.forms import FormService
from edm_forms.services.metadata_cache import MetadataCache
from edm_forms.services.parser import EntityDescriptorParser


@lru_cache
def get_http_client() -> ODataHttpClient:
    """Get cached HTTP client shared by all services."""
    settings = get_settings()
    return ODataHttpClient(
        timeout=settings.http_timeout_seconds,
        user_agent=settings.user_agent,
    )


@lru_cache
def get_parser() -> EntityDescriptorParser:
    """Get cached parser service instance."""
    return EntityDescriptorParser()


@lru_cache
def get_metadata_cache() -> MetadataCache:
    """Get the process-wide metadata cache."""
    settings = get_settings()
    return MetadataCache(
        http=get_http_client(),
        parser=get_parser(),
        ttl_seconds=settings.metadata_ttl_seconds,
        coalesce_window_seconds=settings.coalesce_window_ms / 1000,
    )


@lru_cache
def get_crud_client() -> CrudClient:
    """Get cached CRUD client for the configured service."""
    return CrudClient(
        endpoint=get_settings().service_url,
        http=get_http_client(),
        metadata_cache=get_metadata_cache(),
    )


@lru_cache
def get_form_service() -> FormService:
    """Get cached form service instance."""
    crud = get_crud_client()
    return FormService(crud=crud, compiler=SchemaCompiler(option_loader=crud.list))
