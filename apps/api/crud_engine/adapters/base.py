from __future__ import annotations

import asyncio
import inspect
import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from crud_engine.adapters.errors import (
    AggregateBulkError,
    CRUDError,
    IntegrityError,
    NotFoundError,
    ServiceError,
    UnexpectedError,
    ValidationError,
)
from crud_engine.adapters.filtering import apply_field_filters, apply_search, apply_sort, paginate
from crud_engine.adapters.reference import ReferenceDataCache
from crud_engine.adapters.schemas import ListOptions, ServiceResult
from crud_engine.context import reset_organization_id, set_organization_id
from crud_engine.core.config import get_settings
from crud_engine.metrics import observe_adapter_operation, observe_bulk_failures
from crud_engine.otel import get_tracer, operation_span, record_outcome


logger = logging.getLogger("crud_engine.adapter")

ServiceResponse = Mapping[str, Any] | ServiceResult
ServiceCall = Callable[..., Awaitable[ServiceResponse] | ServiceResponse]
ToCRUD = Callable[[dict[str, Any], ReferenceDataCache], dict[str, Any]]
FromCRUD = Callable[[dict[str, Any]], dict[str, Any]]
ReferenceExtractor = Callable[[Any], Sequence[Mapping[str, Any]]]
CodeGenerator = Callable[[str | None, Mapping[str, Any]], str]


@dataclass(frozen=True, slots=True)
class ServiceOperations:
    """Function references into one domain service.

    ``catalog(organization_id)``, ``create(organization_id, data)``,
    ``update(organization_id, id, data)`` and ``delete(organization_id, id)``
    each return a ``{success, data, error}`` mapping, sync or awaitable.
    """

    catalog: ServiceCall
    create: ServiceCall
    update: ServiceCall
    delete: ServiceCall


@dataclass(slots=True)
class AdapterConfig:
    service_name: str
    entity_type: str
    operations: ServiceOperations
    to_crud: ToCRUD
    from_crud: FromCRUD
    extract_reference_data: ReferenceExtractor | None = None
    default_reference_data: dict[str, str] = field(default_factory=dict)
    searchable_fields: tuple[str, ...] = ()
    range_casts: dict[str, str] = field(default_factory=dict)
    generate_code: CodeGenerator | None = None
    default_page_size: int | None = None


def _normalize_response(response: Any) -> dict[str, Any]:
    if isinstance(response, ServiceResult):
        return response.model_dump()
    if isinstance(response, Mapping):
        return dict(response)
    raise IntegrityError(f"unrecognized service response of type {type(response).__name__}")


class BaseCRUDServiceAdapter(ABC):
    """Uniform create/read/update/delete/list/search/bulk_delete over one domain service.

    Every public operation returns a ``ServiceResult`` and never raises for
    expected failures. Subclasses only decide where the entity list lives
    inside the catalog payload.
    """

    def __init__(self, config: AdapterConfig) -> None:
        self.config = config
        self.reference_cache = ReferenceDataCache(config.entity_type, config.default_reference_data)
        self._tracer = get_tracer("crud_engine.adapters")

    @property
    def entity_type(self) -> str:
        return self.config.entity_type

    @property
    def service_name(self) -> str:
        return self.config.service_name

    @abstractmethod
    def extract_entities(self, catalog_data: Any) -> list[dict[str, Any]]:
        """Return the raw entity list contained in a catalog payload."""

    def default_list_options(self) -> ListOptions:
        page_size = self.config.default_page_size or get_settings().default_page_size
        return ListOptions(page=1, page_size=page_size)

    async def create(self, organization_id: str, data: Mapping[str, Any]) -> ServiceResult:
        return await self._run("create", organization_id, lambda: self._create(organization_id, dict(data)))

    async def read(self, organization_id: str, entity_id: str) -> ServiceResult:
        return await self._run("read", organization_id, lambda: self._read(organization_id, entity_id))

    async def update(self, organization_id: str, entity_id: str, data: Mapping[str, Any]) -> ServiceResult:
        return await self._run("update", organization_id, lambda: self._update(organization_id, entity_id, dict(data)))

    async def delete(self, organization_id: str, entity_id: str) -> ServiceResult:
        return await self._run("delete", organization_id, lambda: self._delete(organization_id, entity_id))

    async def list(self, organization_id: str, options: ListOptions | None = None) -> ServiceResult:
        resolved = options or self.default_list_options()
        return await self._run("list", organization_id, lambda: self._list(organization_id, resolved))

    async def search(self, organization_id: str, query: str, options: ListOptions | None = None) -> ServiceResult:
        resolved = (options or self.default_list_options()).model_copy(update={"search": query})
        return await self.list(organization_id, resolved)

    async def bulk_delete(self, organization_id: str, entity_ids: Sequence[str]) -> ServiceResult:
        ids = list(entity_ids)
        return await self._run("bulk_delete", organization_id, lambda: self._bulk_delete(organization_id, ids))

    async def _create(self, organization_id: str, data: dict[str, Any]) -> ServiceResult:
        entity_data = self.config.from_crud(data)
        response = await self._invoke(self.config.operations.create, organization_id, entity_data)
        created = self._unwrap(response, f"Failed to create {self.entity_type}")

        if not isinstance(created, Mapping) or not created.get("id"):
            raise IntegrityError(f"{self.entity_type} created but no ID returned")

        code = created.get("code") or created.get("entity_code")
        if not code and self.config.generate_code is not None:
            code = self.config.generate_code(data.get("name"), created)

        return ServiceResult.ok({"id": created["id"], **entity_data, "code": code})

    async def _read(self, organization_id: str, entity_id: str) -> ServiceResult:
        await self._ensure_reference_data(organization_id)
        catalog_data = await self._fetch_catalog(organization_id)
        if catalog_data is None:
            raise ServiceError(f"Failed to fetch {self.entity_type}s")

        target = str(entity_id)
        for entity in self.extract_entities(catalog_data):
            if str(entity.get("id")) == target:
                return ServiceResult.ok(self.config.to_crud(entity, self.reference_cache))
        raise NotFoundError(f"{self.entity_type} not found")

    async def _update(self, organization_id: str, entity_id: str, data: dict[str, Any]) -> ServiceResult:
        entity_data = self.config.from_crud(data)
        response = await self._invoke(self.config.operations.update, organization_id, entity_id, entity_data)
        self._unwrap(response, f"Failed to update {self.entity_type}")
        return await self._read(organization_id, entity_id)

    async def _delete(self, organization_id: str, entity_id: str) -> ServiceResult:
        response = await self._invoke(self.config.operations.delete, organization_id, entity_id)
        self._unwrap(response, f"Failed to delete {self.entity_type}")
        return ServiceResult.ok(None)

    async def _list(self, organization_id: str, options: ListOptions) -> ServiceResult:
        await self._ensure_reference_data(organization_id)
        catalog_data = await self._fetch_catalog(organization_id)

        entities = self.extract_entities(catalog_data)
        entities = self.apply_filters(entities, options)
        entities = self.apply_sorting(entities, options)
        page_entities, metadata = paginate(entities, options.page, options.page_size)

        crud_entities = [self.config.to_crud(entity, self.reference_cache) for entity in page_entities]
        return ServiceResult.ok(crud_entities, metadata)

    async def _bulk_delete(self, organization_id: str, entity_ids: list[str]) -> ServiceResult:
        if not entity_ids:
            return ServiceResult.ok(None)

        results = await asyncio.gather(
            *(self.delete(organization_id, entity_id) for entity_id in entity_ids),
            return_exceptions=True,
        )
        failed = sum(1 for result in results if isinstance(result, BaseException) or not result.success)
        if failed:
            observe_bulk_failures(self.entity_type, failed)
            raise AggregateBulkError(self.entity_type, failed, len(entity_ids))
        return ServiceResult.ok(None)

    def apply_filters(self, entities: list[dict[str, Any]], options: ListOptions) -> list[dict[str, Any]]:
        search_fields = options.search_fields or self.config.searchable_fields
        filtered = apply_search(entities, options.search, search_fields)
        return apply_field_filters(filtered, options.filters, casts=self.config.range_casts)

    def apply_sorting(self, entities: list[dict[str, Any]], options: ListOptions) -> list[dict[str, Any]]:
        return apply_sort(entities, options.sort)

    async def _ensure_reference_data(self, organization_id: str) -> None:
        extractor = self.config.extract_reference_data
        if extractor is None:
            await self.reference_cache.ensure_loaded(None)
            return

        async def load() -> Sequence[Mapping[str, Any]]:
            catalog_data = await self._fetch_catalog(organization_id)
            return extractor(catalog_data)

        await self.reference_cache.ensure_loaded(load)

    async def _fetch_catalog(self, organization_id: str) -> Any:
        response = await self._invoke(self.config.operations.catalog, organization_id)
        return self._unwrap(response, f"Failed to fetch {self.entity_type}s")

    async def _invoke(self, call: ServiceCall, *args: Any) -> dict[str, Any]:
        response = call(*args)
        if inspect.isawaitable(response):
            response = await response
        return _normalize_response(response)

    @staticmethod
    def _unwrap(response: dict[str, Any], failure_message: str) -> Any:
        if not response.get("success"):
            raise ServiceError(response.get("error") or failure_message)
        return response.get("data")

    async def _run(
        self,
        operation: str,
        organization_id: str,
        handler: Callable[[], Awaitable[ServiceResult]],
    ) -> ServiceResult:
        started = time.perf_counter()
        token = set_organization_id(organization_id or None)
        try:
            with operation_span(
                self._tracer,
                operation,
                entity_type=self.entity_type,
                service_name=self.service_name,
                organization_id=organization_id,
            ) as span:
                try:
                    if not organization_id or not str(organization_id).strip():
                        raise ValidationError("organization_id is required")
                    result = await handler()
                except CRUDError as exc:
                    result = ServiceResult.fail(str(exc), kind=exc.kind)
                except Exception as exc:
                    logger.exception(
                        "adapter.unexpected_error",
                        extra={"entity_type": self.entity_type, "operation": operation, "error": str(exc)},
                    )
                    result = ServiceResult.fail(str(exc) or "Unknown error occurred", kind=UnexpectedError.kind)
                record_outcome(span, result.success, result.error_kind)

            duration = time.perf_counter() - started
            observe_adapter_operation(self.entity_type, operation, result.success, duration)
            log_extra = {
                "service_name": self.service_name,
                "entity_type": self.entity_type,
                "operation": operation,
                "status": "success" if result.success else "failure",
                "duration_ms": round(duration * 1000, 2),
            }
            if result.success:
                logger.info("adapter.operation", extra=log_extra)
            else:
                logger.warning("adapter.operation", extra={**log_extra, "error": result.error})
            return result
        finally:
            reset_organization_id(token)
