"""
Entity metadata and form schema endpoints.

Provides API endpoints for inspecting entity descriptors, compiling form
schemas and managing the metadata cache.
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query

from edm_forms.dependencies import get_crud_client, get_form_service
from edm_forms.exceptions import EdmFormsError
from edm_forms.schemas.entity import EntityDescriptor
from edm_forms.schemas.form_data import RenderedForm
from edm_forms.schemas.ui_schema import CompiledSchema
from edm_forms.services.crud import CrudClient
from edm_forms.services.forms import FormService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/entities", tags=["entities"])


def raise_http_error(error: EdmFormsError) -> None:
    """Translate a domain error into an HTTPException."""
    raise HTTPException(status_code=error.status_code, detail=error.to_dict())


@router.post("/cache/clear")
async def clear_metadata_cache(
    crud: Annotated[CrudClient, Depends(get_crud_client)],
) -> dict[str, int]:
    """
    Clear all cached entity metadata.

    Returns the number of records that were cleared.
    """
    return {"cleared": crud.clear_all_cache()}


@router.get("/{entity}/metadata", response_model=EntityDescriptor)
async def get_entity_metadata(
    entity: str,
    crud: Annotated[CrudClient, Depends(get_crud_client)],
    refresh: Annotated[bool, Query(description="Bypass the metadata cache")] = False,
) -> EntityDescriptor:
    """
    Get the parsed descriptor of an entity type.
    """
    try:
        return await crud.fetch_metadata(entity, force_refresh=refresh)
    except EdmFormsError as e:
        raise_http_error(e)
    except Exception as e:
        logger.exception(f"Failed to get metadata for {entity}")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/{entity}/schema", response_model=CompiledSchema)
async def get_entity_schema(
    entity: str,
    forms: Annotated[FormService, Depends(get_form_service)],
    refresh: Annotated[bool, Query(description="Bypass the metadata cache")] = False,
    resolve_options: Annotated[
        bool, Query(description="Load select options from target collections")
    ] = True,
) -> CompiledSchema:
    """
    Get the compiled form schema for an entity.

    Select fields derived from navigation properties carry their options
    unless ``resolve_options`` is false.
    """
    try:
        return await forms.load_schema(
            entity, force_refresh=refresh, resolve_options=resolve_options
        )
    except EdmFormsError as e:
        raise_http_error(e)
    except Exception as e:
        logger.exception(f"Failed to compile schema for {entity}")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/{entity}/form", response_model=RenderedForm)
async def get_entity_form(
    entity: str,
    forms: Annotated[FormService, Depends(get_form_service)],
    key: Annotated[str | None, Query(description="Key of the record to edit")] = None,
) -> RenderedForm:
    """
    Get widget descriptions for a create form, or an edit form when a key is given.
    """
    try:
        form = await forms.open_form(entity, key)
        return RenderedForm(
            entity=entity,
            widgets=form.render_all(),
            values=form.state.values,
        )
    except EdmFormsError as e:
        raise_http_error(e)
    except Exception as e:
        logger.exception(f"Failed to open form for {entity}")
        raise HTTPException(status_code=500, detail=str(e))


@router.delete("/{entity}/cache")
async def invalidate_entity_cache(
    entity: str,
    crud: Annotated[CrudClient, Depends(get_crud_client)],
) -> dict[str, bool]:
    """
    Invalidate cached metadata of one entity.
    """
    return {"invalidated": crud.clear_cache(entity)}
