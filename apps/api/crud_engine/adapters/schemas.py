from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


SortDirection = Literal["asc", "desc"]
SortType = Literal["string", "number", "date"]
ChangeKind = Literal["insert", "update", "delete"]


class SortConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    key: str | None = None
    direction: SortDirection = "asc"
    type: SortType | None = None


class ListOptions(BaseModel):
    model_config = ConfigDict(frozen=True)

    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=50, ge=1)
    sort: SortConfig | None = None
    filters: dict[str, Any] | None = None
    search: str | None = None
    search_fields: list[str] | None = None


class ResultMetadata(BaseModel):
    total: int
    page: int
    page_size: int
    has_more: bool


class ServiceResult(BaseModel):
    success: bool
    data: Any = None
    error: str | None = None
    error_kind: str | None = None
    errors: dict[str, str] | None = None
    metadata: ResultMetadata | None = None

    @classmethod
    def ok(cls, data: Any = None, metadata: ResultMetadata | None = None) -> "ServiceResult":
        return cls(success=True, data=data, metadata=metadata)

    @classmethod
    def fail(cls, error: str, *, kind: str | None = None, errors: dict[str, str] | None = None) -> "ServiceResult":
        return cls(success=False, error=error, error_kind=kind, errors=errors)


class ChangeScope(BaseModel):
    model_config = ConfigDict(frozen=True)

    organization_id: str = Field(min_length=1)
    entity_type: str = Field(min_length=1)


class ChangeEvent(BaseModel):
    kind: ChangeKind
    scope: ChangeScope
    payload: dict[str, Any] = Field(default_factory=dict)
