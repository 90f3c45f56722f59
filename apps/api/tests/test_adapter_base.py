from __future__ import annotations

import logging
from typing import Any

import pytest

from crud_engine.adapters import (
    AdapterConfig,
    ListOptions,
    ServiceOperations,
    SortConfig,
    create_service_adapter,
)
from crud_engine.adapters.reference import ReferenceDataCache
from crud_engine.logging import configure_logging


configure_logging()


class FakeProductService:
    def __init__(self) -> None:
        self.rows: dict[str, list[dict[str, Any]]] = {
            "org-1": [
                {"id": "1", "name": "Margherita Pizza", "price": 10, "category_id": "food"},
                {"id": "2", "name": "Pepperoni Pizza", "price": 20, "category_id": "food"},
                {"id": "3", "name": "Espresso", "price": 5, "category_id": "drinks"},
            ]
        }
        self.categories = [{"id": "food", "name": "Food"}, {"id": "drinks", "name": "Drinks"}]
        self.calls: list[tuple[str, str]] = []
        self.fail_delete_ids: set[str] = set()
        self.catalog_error: str | None = None
        self.omit_created_id = False
        self.next_id = 100

    async def get_catalog(self, organization_id: str) -> dict[str, Any]:
        self.calls.append(("catalog", organization_id))
        if self.catalog_error:
            return {"success": False, "error": self.catalog_error}
        return {
            "success": True,
            "data": {"products": [dict(row) for row in self.rows.get(organization_id, [])], "categories": self.categories},
        }

    async def create(self, organization_id: str, data: dict[str, Any]) -> dict[str, Any]:
        self.calls.append(("create", organization_id))
        if self.omit_created_id:
            return {"success": True, "data": {"name": data.get("name")}}
        self.next_id += 1
        row = {"id": str(self.next_id), **data}
        self.rows.setdefault(organization_id, []).append(row)
        return {"success": True, "data": row}

    async def update(self, organization_id: str, entity_id: str, data: dict[str, Any]) -> dict[str, Any]:
        self.calls.append(("update", organization_id))
        for row in self.rows.get(organization_id, []):
            if row["id"] == entity_id:
                row.update(data)
                return {"success": True, "data": row}
        return {"success": False, "error": "row not found"}

    def delete(self, organization_id: str, entity_id: str) -> dict[str, Any]:
        self.calls.append(("delete", organization_id))
        if entity_id in self.fail_delete_ids:
            return {"success": False, "error": f"cannot delete {entity_id}"}
        rows = self.rows.get(organization_id, [])
        self.rows[organization_id] = [row for row in rows if row["id"] != entity_id]
        return {"success": True}


def to_crud(entity: dict[str, Any], cache: ReferenceDataCache) -> dict[str, Any]:
    return {**entity, "category_name": cache.get(entity.get("category_id"), "Unknown")}


def from_crud(data: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in data.items() if key != "category_name"}


def build_adapter(service: FakeProductService, **overrides: Any):
    config = AdapterConfig(
        service_name="products",
        entity_type="product",
        operations=ServiceOperations(
            catalog=service.get_catalog,
            create=service.create,
            update=service.update,
            delete=service.delete,
        ),
        to_crud=to_crud,
        from_crud=from_crud,
        extract_reference_data=lambda payload: payload["categories"],
        default_reference_data={"food": "Default Food"},
        searchable_fields=("name",),
        **overrides,
    )
    return create_service_adapter(config)


@pytest.fixture()
def service() -> FakeProductService:
    return FakeProductService()


@pytest.mark.asyncio
async def test_list_filters_sorts_and_paginates(service: FakeProductService) -> None:
    adapter = build_adapter(service)

    result = await adapter.list(
        "org-1",
        ListOptions(page=1, page_size=1, search="piz", sort=SortConfig(key="price", direction="desc")),
    )

    assert result.success is True
    assert [item["id"] for item in result.data] == ["2"]
    assert result.metadata is not None
    assert result.metadata.total == 2
    assert result.metadata.has_more is True
    assert result.data[0]["category_name"] == "Food"


@pytest.mark.asyncio
async def test_search_returns_matching_items(service: FakeProductService) -> None:
    adapter = build_adapter(service)

    result = await adapter.search("org-1", "piz")

    assert result.success is True
    assert {item["id"] for item in result.data} == {"1", "2"}


@pytest.mark.asyncio
async def test_missing_organization_never_reaches_service(service: FakeProductService) -> None:
    adapter = build_adapter(service)

    result = await adapter.list("")

    assert result.success is False
    assert result.error_kind == "ValidationError"
    assert service.calls == []


@pytest.mark.asyncio
async def test_read_not_found(service: FakeProductService) -> None:
    adapter = build_adapter(service)

    result = await adapter.read("org-1", "missing")

    assert result.success is False
    assert result.error == "product not found"
    assert result.error_kind == "NotFoundError"


@pytest.mark.asyncio
async def test_update_reads_back_current_state(service: FakeProductService) -> None:
    adapter = build_adapter(service)

    result = await adapter.update("org-1", "1", {"price": 12, "category_name": "ignored"})

    assert result.success is True
    assert result.data["price"] == 12
    assert result.data["category_name"] == "Food"
    names = [call for call, _ in service.calls]
    assert names[0] == "update"
    assert names[-1] == "catalog"


@pytest.mark.asyncio
async def test_create_returns_id_and_generated_code(service: FakeProductService) -> None:
    adapter = build_adapter(service, generate_code=lambda name, _created: f"CODE-{name}")

    result = await adapter.create("org-1", {"name": "Latte", "price": 4})

    assert result.success is True
    assert result.data["id"] == "101"
    assert result.data["name"] == "Latte"
    assert result.data["code"] == "CODE-Latte"


@pytest.mark.asyncio
async def test_create_without_returned_id_is_integrity_error(service: FakeProductService) -> None:
    service.omit_created_id = True
    adapter = build_adapter(service)

    result = await adapter.create("org-1", {"name": "Latte"})

    assert result.success is False
    assert result.error == "product created but no ID returned"
    assert result.error_kind == "IntegrityError"


@pytest.mark.asyncio
async def test_service_failure_message_is_kept(service: FakeProductService) -> None:
    service.catalog_error = "catalog offline"
    adapter = build_adapter(service)

    result = await adapter.list("org-1")

    assert result.success is False
    assert result.error == "catalog offline"
    assert result.error_kind == "ServiceError"


@pytest.mark.asyncio
async def test_bulk_delete_reports_failed_count(service: FakeProductService) -> None:
    service.rows["org-1"] = [{"id": str(index), "name": f"Item {index}"} for index in range(1, 6)]
    service.fail_delete_ids = {"2", "4"}
    adapter = build_adapter(service)

    result = await adapter.bulk_delete("org-1", ["1", "2", "3", "4", "5"])

    assert result.success is False
    assert result.error == "Failed to delete 2 of 5 products"
    assert result.error_kind == "AggregateBulkError"
    assert [row["id"] for row in service.rows["org-1"]] == ["2", "4"]


@pytest.mark.asyncio
async def test_bulk_delete_with_no_ids_succeeds(service: FakeProductService) -> None:
    adapter = build_adapter(service)

    result = await adapter.bulk_delete("org-1", [])

    assert result.success is True
    assert not any(call == "delete" for call, _ in service.calls)


@pytest.mark.asyncio
async def test_unexpected_exception_becomes_failed_result(
    service: FakeProductService,
    caplog: pytest.LogCaptureFixture,
) -> None:
    def broken_to_crud(entity: dict[str, Any], cache: ReferenceDataCache) -> dict[str, Any]:
        raise RuntimeError("converter exploded")

    adapter = build_adapter(service)
    adapter.config.to_crud = broken_to_crud
    caplog.set_level(logging.ERROR, logger="crud_engine.adapter")

    result = await adapter.list("org-1")

    assert result.success is False
    assert result.error == "converter exploded"
    assert result.error_kind == "UnexpectedError"
    assert any(record.getMessage() == "adapter.unexpected_error" for record in caplog.records)


@pytest.mark.asyncio
async def test_reference_data_falls_back_to_defaults(service: FakeProductService) -> None:
    adapter = build_adapter(service)
    adapter.config.extract_reference_data = lambda payload: []

    result = await adapter.read("org-1", "1")

    assert result.success is True
    assert result.data["category_name"] == "Default Food"


@pytest.mark.asyncio
async def test_reference_data_loads_once_until_invalidated(service: FakeProductService) -> None:
    adapter = build_adapter(service)

    await adapter.list("org-1")
    service.categories = [{"id": "food", "name": "Renamed Food"}]
    stale = await adapter.read("org-1", "1")
    adapter.reference_cache.invalidate()
    fresh = await adapter.read("org-1", "1")

    assert stale.data["category_name"] == "Food"
    assert fresh.data["category_name"] == "Renamed Food"


@pytest.mark.asyncio
async def test_operations_log_structured_outcome(service: FakeProductService, caplog: pytest.LogCaptureFixture) -> None:
    adapter = build_adapter(service)
    caplog.set_level(logging.INFO, logger="crud_engine.adapter")

    await adapter.read("org-1", "1")

    records = [record for record in caplog.records if record.getMessage() == "adapter.operation"]
    assert any(
        getattr(record, "operation", None) == "read"
        and getattr(record, "entity_type", None) == "product"
        and getattr(record, "status", None) == "success"
        and getattr(record, "organization_id", None) == "org-1"
        for record in records
    )
