"""
Record endpoints.

Generic CRUD over the entity collections of the configured service. Writes
go through a form instance so client-side and server-side validation errors
come back in the same field-keyed shape.
"""

import logging
from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status

from edm_forms.dependencies import get_crud_client, get_form_service
from edm_forms.exceptions import EdmFormsError
from edm_forms.routers.entities import raise_http_error
from edm_forms.schemas.form_data import CollectionResponse, RecordFormData, SubmitResponse
from edm_forms.services.crud import CrudClient
from edm_forms.services.forms import FormService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/records", tags=["records"])


async def _submit(
    forms: FormService,
    response: Response,
    entity: str,
    data: RecordFormData,
    key: Any = None,
    partial: bool = False,
) -> SubmitResponse:
    try:
        form, record = await forms.submit(entity, data.values, key=key, partial=partial)
    except EdmFormsError as e:
        raise_http_error(e)
    except Exception as e:
        logger.exception(f"Failed to submit {entity}")
        raise HTTPException(status_code=500, detail=str(e))

    errors = form.state.errors
    if errors:
        response.status_code = 422
        return SubmitResponse(success=False, errors=errors)
    return SubmitResponse(success=True, record=record)


@router.get("/{entity}", response_model=CollectionResponse)
async def list_records(
    entity: str,
    request: Request,
    crud: Annotated[CrudClient, Depends(get_crud_client)],
) -> CollectionResponse:
    """
    List the records of an entity collection.

    The query string is passed through unchanged, so OData query options
    such as ``$top``, ``$filter`` or ``$count`` work as usual.
    """
    try:
        page = await crud.list_page(entity, request.url.query or None)
        return CollectionResponse(value=page.value, count=page.count)
    except EdmFormsError as e:
        raise_http_error(e)
    except Exception as e:
        logger.exception(f"Failed to list {entity}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/{entity}", response_model=SubmitResponse)
async def create_record(
    entity: str,
    data: RecordFormData,
    response: Response,
    forms: Annotated[FormService, Depends(get_form_service)],
) -> SubmitResponse:
    """
    Validate and create a record.
    """
    return await _submit(forms, response, entity, data)


@router.get("/{entity}/{key}")
async def get_record(
    entity: str,
    key: str,
    crud: Annotated[CrudClient, Depends(get_crud_client)],
    expand: str | None = None,
) -> dict[str, Any]:
    """
    Get a single record by key.
    """
    try:
        record = await crud.get_by_id(entity, key, expand=expand)
    except EdmFormsError as e:
        raise_http_error(e)
    except Exception as e:
        logger.exception(f"Failed to get {entity}({key})")
        raise HTTPException(status_code=500, detail=str(e))

    if record is None:
        raise HTTPException(status_code=404, detail="Record not found")
    return record


@router.put("/{entity}/{key}", response_model=SubmitResponse)
async def replace_record(
    entity: str,
    key: str,
    data: RecordFormData,
    response: Response,
    forms: Annotated[FormService, Depends(get_form_service)],
) -> SubmitResponse:
    """
    Validate and replace a record completely.
    """
    return await _submit(forms, response, entity, data, key=key)


@router.patch("/{entity}/{key}", response_model=SubmitResponse)
async def patch_record(
    entity: str,
    key: str,
    data: RecordFormData,
    response: Response,
    forms: Annotated[FormService, Depends(get_form_service)],
) -> SubmitResponse:
    """
    Validate and update only the submitted fields of a record.
    """
    return await _submit(forms, response, entity, data, key=key, partial=True)


@router.delete("/{entity}/{key}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_record(
    entity: str,
    key: str,
    crud: Annotated[CrudClient, Depends(get_crud_client)],
) -> Response:
    """
    Delete a record.
    """
    try:
        await crud.remove(entity, key)
    except EdmFormsError as e:
        raise_http_error(e)
    except Exception as e:
        logger.exception(f"Failed to delete {entity}({key})")
        raise HTTPException(status_code=500, detail=str(e))
    return Response(status_code=status.HTTP_204_NO_CONTENT)
