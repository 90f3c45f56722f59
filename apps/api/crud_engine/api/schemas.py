from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from crud_engine.adapters.schemas import ResultMetadata


class CRUDListResponse(BaseModel):
    items: list[dict[str, Any]]
    metadata: ResultMetadata | None = None


class BulkDeleteRequest(BaseModel):
    ids: list[str] = Field(min_length=1)


class EntityTypesResponse(BaseModel):
    entity_types: list[str]
