from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Literal

from fastapi import APIRouter, Body, Depends, Header, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse, Response

from crud_engine.adapters.base import BaseCRUDServiceAdapter
from crud_engine.adapters.errors import AggregateBulkError, IntegrityError, NotFoundError, ServiceError, ValidationError
from crud_engine.adapters.schemas import ListOptions, ServiceResult, SortConfig
from crud_engine.api.schemas import BulkDeleteRequest, CRUDListResponse, EntityTypesResponse
from crud_engine.context import get_correlation_id
from crud_engine.events import publish_change
from crud_engine.export import export_items, export_media_type
from crud_engine.registry import AdapterRegistry, adapter_registry


router = APIRouter(prefix="/api/crud", tags=["crud"])

_STATUS_BY_KIND: dict[str, int] = {
    NotFoundError.kind: status.HTTP_404_NOT_FOUND,
    IntegrityError.kind: status.HTTP_409_CONFLICT,
    ServiceError.kind: status.HTTP_502_BAD_GATEWAY,
    ValidationError.kind: status.HTTP_422_UNPROCESSABLE_ENTITY,
}


@dataclass
class ErrorEnvelope:
    code: str
    message: str
    details: Any
    correlation_id: str | None


def error_response(
    request: Request,
    *,
    status_code: int,
    code: str,
    message: str,
    details: Any = None,
) -> JSONResponse:
    correlation_id = get_correlation_id() or getattr(request.state, "correlation_id", None)
    payload = ErrorEnvelope(
        code=code,
        message=message,
        details=details,
        correlation_id=correlation_id,
    )
    return JSONResponse(status_code=status_code, content=payload.__dict__)


def result_error_response(request: Request, result: ServiceResult) -> JSONResponse:
    kind = result.error_kind or "UnexpectedError"
    return error_response(
        request,
        status_code=_STATUS_BY_KIND.get(kind, status.HTTP_500_INTERNAL_SERVER_ERROR),
        code=kind,
        message=result.error or "Unknown error occurred",
        details=result.errors,
    )


def get_registry() -> AdapterRegistry:
    return adapter_registry


def get_organization_id(x_organization_id: str | None = Header(default=None, alias="x-organization-id")) -> str:
    if x_organization_id is None or not x_organization_id.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="x-organization-id header is required")
    return x_organization_id.strip()


def get_adapter(entity_type: str, registry: AdapterRegistry = Depends(get_registry)) -> BaseCRUDServiceAdapter:
    try:
        return registry.get(entity_type)
    except KeyError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"unknown entity type '{entity_type}'")


def _parse_filters(raw: str | None) -> dict[str, Any] | None:
    if raw is None or not raw.strip():
        return None
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        parsed = None
    if not isinstance(parsed, dict):
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="filters must be a JSON object")
    return parsed


def _list_options(
    adapter: BaseCRUDServiceAdapter,
    *,
    page: int = 1,
    page_size: int | None = None,
    search: str | None = None,
    sort_key: str | None = None,
    sort_direction: str = "asc",
    filters: str | None = None,
) -> ListOptions:
    return ListOptions(
        page=page,
        page_size=page_size or adapter.default_list_options().page_size,
        search=search,
        sort=SortConfig(key=sort_key, direction=sort_direction) if sort_key else None,
        filters=_parse_filters(filters),
    )


@router.get("", response_model=EntityTypesResponse)
def list_entity_types(registry: AdapterRegistry = Depends(get_registry)) -> EntityTypesResponse:
    return EntityTypesResponse(entity_types=registry.entity_types())


@router.get("/{entity_type}", response_model=CRUDListResponse)
async def list_entities(
    request: Request,
    page: int = Query(default=1, ge=1),
    page_size: int | None = Query(default=None, ge=1, le=500),
    search: str | None = Query(default=None),
    sort_key: str | None = Query(default=None),
    sort_direction: Literal["asc", "desc"] = Query(default="asc"),
    filters: str | None = Query(default=None),
    organization_id: str = Depends(get_organization_id),
    adapter: BaseCRUDServiceAdapter = Depends(get_adapter),
) -> Any:
    options = _list_options(
        adapter,
        page=page,
        page_size=page_size,
        search=search,
        sort_key=sort_key,
        sort_direction=sort_direction,
        filters=filters,
    )
    result = await adapter.list(organization_id, options)
    if not result.success:
        return result_error_response(request, result)
    return CRUDListResponse(items=result.data or [], metadata=result.metadata)


@router.get("/{entity_type}/export")
async def export_entities(
    request: Request,
    entity_type: str,
    fmt: Literal["csv", "json"] = Query(default="csv"),
    search: str | None = Query(default=None),
    sort_key: str | None = Query(default=None),
    sort_direction: Literal["asc", "desc"] = Query(default="asc"),
    filters: str | None = Query(default=None),
    organization_id: str = Depends(get_organization_id),
    adapter: BaseCRUDServiceAdapter = Depends(get_adapter),
    registry: AdapterRegistry = Depends(get_registry),
) -> Response:
    options = _list_options(adapter, search=search, sort_key=sort_key, sort_direction=sort_direction, filters=filters)
    result = await adapter.list(organization_id, options)
    if result.success and result.metadata is not None and result.metadata.has_more:
        result = await adapter.list(organization_id, options.model_copy(update={"page_size": result.metadata.total}))
    if not result.success:
        return result_error_response(request, result)

    fields = [field for field in registry.fields_for(entity_type) if field.show_in_list] or None
    return Response(
        content=export_items(result.data or [], fmt, fields),
        media_type=export_media_type(fmt),
        headers={"content-disposition": f'attachment; filename="{entity_type}_export.{fmt}"'},
    )


@router.get("/{entity_type}/{entity_id}")
async def read_entity(
    request: Request,
    entity_id: str,
    organization_id: str = Depends(get_organization_id),
    adapter: BaseCRUDServiceAdapter = Depends(get_adapter),
) -> Any:
    result = await adapter.read(organization_id, entity_id)
    if not result.success:
        return result_error_response(request, result)
    return result.data


@router.post("/{entity_type}", status_code=status.HTTP_201_CREATED)
async def create_entity(
    request: Request,
    entity_type: str,
    payload: dict[str, Any] = Body(...),
    organization_id: str = Depends(get_organization_id),
    adapter: BaseCRUDServiceAdapter = Depends(get_adapter),
) -> Any:
    result = await adapter.create(organization_id, payload)
    if not result.success:
        return result_error_response(request, result)
    publish_change(organization_id, entity_type, "insert", {"id": result.data["id"]})
    return result.data


@router.patch("/{entity_type}/{entity_id}")
async def update_entity(
    request: Request,
    entity_type: str,
    entity_id: str,
    payload: dict[str, Any] = Body(...),
    organization_id: str = Depends(get_organization_id),
    adapter: BaseCRUDServiceAdapter = Depends(get_adapter),
) -> Any:
    result = await adapter.update(organization_id, entity_id, payload)
    if not result.success:
        return result_error_response(request, result)
    publish_change(organization_id, entity_type, "update", {"id": entity_id})
    return result.data


@router.delete("/{entity_type}/{entity_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_entity(
    request: Request,
    entity_type: str,
    entity_id: str,
    organization_id: str = Depends(get_organization_id),
    adapter: BaseCRUDServiceAdapter = Depends(get_adapter),
) -> Response:
    result = await adapter.delete(organization_id, entity_id)
    if not result.success:
        return result_error_response(request, result)
    publish_change(organization_id, entity_type, "delete", {"id": entity_id})
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{entity_type}/bulk-delete")
async def bulk_delete_entities(
    request: Request,
    entity_type: str,
    payload: BulkDeleteRequest,
    organization_id: str = Depends(get_organization_id),
    adapter: BaseCRUDServiceAdapter = Depends(get_adapter),
) -> JSONResponse:
    result = await adapter.bulk_delete(organization_id, payload.ids)
    if not result.success and result.error_kind != AggregateBulkError.kind:
        return result_error_response(request, result)

    # partial failures still deleted some rows
    publish_change(organization_id, entity_type, "delete", {"ids": payload.ids})
    status_code = status.HTTP_200_OK if result.success else status.HTTP_207_MULTI_STATUS
    return JSONResponse(status_code=status_code, content=result.model_dump(mode="json"))
