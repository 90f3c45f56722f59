from __future__ import annotations

import asyncio
from typing import Any

import pytest

from crud_engine.adapters.schemas import ServiceResult
from crud_engine.bulk import (
    BulkActionDispatcher,
    BulkOperation,
    bulk_delete_operation,
    status_toggle_operations,
)
from crud_engine.sample.catalog import CatalogService, build_product_adapter


ITEMS = [
    {"id": "1", "name": "Pizza", "is_active": True},
    {"id": "2", "name": "Soup", "is_active": False},
    {"id": "3", "name": "Salad", "is_active": True},
]


class Recorder:
    def __init__(self, result: Any = None) -> None:
        self.calls: list[tuple[list[str], list[dict[str, Any]]]] = []
        self.result = result

    async def __call__(self, ids: list[str], items: list[dict[str, Any]]) -> Any:
        self.calls.append((ids, items))
        return self.result


def always(answer: bool):
    async def gate(_operation: BulkOperation, _items: list[dict[str, Any]]) -> bool:
        return answer

    return gate


@pytest.mark.asyncio
async def test_execute_passes_selected_ids_and_items() -> None:
    recorder = Recorder()
    dispatcher = BulkActionDispatcher([BulkOperation(key="archive", label="Archive", execute=recorder)])

    outcome = await dispatcher.execute("archive", ["1", "3"], ITEMS)

    assert outcome.status == "executed"
    assert outcome.count == 2
    assert recorder.calls[0][0] == ["1", "3"]
    assert [item["id"] for item in recorder.calls[0][1]] == ["1", "3"]
    assert dispatcher.last_executed == "archive"


@pytest.mark.asyncio
async def test_confirm_gate_runs_only_for_operations_that_declare_it() -> None:
    destructive = Recorder()
    harmless = Recorder()
    gate_calls: list[str] = []

    async def gate(operation: BulkOperation, _items: list[dict[str, Any]]) -> bool:
        gate_calls.append(operation.key)
        return False

    dispatcher = BulkActionDispatcher(
        [
            BulkOperation(key="delete", label="Delete", execute=destructive, confirm="Really delete?"),
            BulkOperation(key="tag", label="Tag", execute=harmless),
        ]
    )

    cancelled = await dispatcher.execute("delete", ["1"], ITEMS, confirm=gate)
    executed = await dispatcher.execute("tag", ["1"], ITEMS, confirm=gate)

    assert cancelled.status == "cancelled"
    assert destructive.calls == []
    assert executed.status == "executed"
    assert gate_calls == ["delete"]
    assert dispatcher.last_executed == "tag"


@pytest.mark.asyncio
async def test_destructive_operation_without_gate_is_cancelled() -> None:
    recorder = Recorder()
    dispatcher = BulkActionDispatcher([BulkOperation(key="delete", label="Delete", execute=recorder, confirm="Sure?")])

    outcome = await dispatcher.execute("delete", ["1"], ITEMS)

    assert outcome.status == "cancelled"
    assert recorder.calls == []


@pytest.mark.asyncio
async def test_same_operation_cannot_run_twice_at_once() -> None:
    release = asyncio.Event()
    started = asyncio.Event()

    async def slow(ids: list[str], items: list[dict[str, Any]]) -> None:
        started.set()
        await release.wait()

    dispatcher = BulkActionDispatcher([BulkOperation(key="export", label="Export", execute=slow)])

    first = asyncio.create_task(dispatcher.execute("export", ["1"], ITEMS))
    await started.wait()
    assert dispatcher.is_executing("export") is True
    assert dispatcher.is_disabled("export", ITEMS) is True

    second = await dispatcher.execute("export", ["1"], ITEMS)
    release.set()
    first_outcome = await first

    assert second.status == "skipped"
    assert first_outcome.status == "executed"
    assert dispatcher.executing == frozenset()


@pytest.mark.asyncio
async def test_empty_selection_is_skipped() -> None:
    dispatcher = BulkActionDispatcher([BulkOperation(key="tag", label="Tag", execute=Recorder())])

    outcome = await dispatcher.execute("tag", [], ITEMS)

    assert outcome.status == "skipped"


@pytest.mark.asyncio
async def test_failures_are_reported_not_raised() -> None:
    errors: list[tuple[str, str]] = []

    async def explode(ids: list[str], items: list[dict[str, Any]]) -> None:
        raise RuntimeError("backend down")

    dispatcher = BulkActionDispatcher(
        [
            BulkOperation(key="explode", label="Explode", execute=explode),
            BulkOperation(key="soft", label="Soft", execute=Recorder(ServiceResult.fail("nope"))),
        ],
        on_error=lambda key, message: errors.append((key, message)),
    )

    raised = await dispatcher.execute("explode", ["1"], ITEMS)
    returned = await dispatcher.execute("soft", ["1"], ITEMS)

    assert raised.status == "failed"
    assert raised.error == "backend down"
    assert returned.status == "failed"
    assert errors == [("explode", "backend down"), ("soft", "nope")]
    assert dispatcher.last_executed is None


def test_visibility_and_disabled_predicates() -> None:
    dispatcher = BulkActionDispatcher(
        [
            BulkOperation(key="always", label="Always", execute=Recorder()),
            BulkOperation(
                key="many",
                label="Many",
                execute=Recorder(),
                visible=lambda selected: len(selected) > 1,
                disabled=lambda selected: any(item["id"] == "2" for item in selected),
            ),
        ]
    )

    assert [operation.key for operation in dispatcher.visible_operations(ITEMS[:1])] == ["always"]
    assert [operation.key for operation in dispatcher.visible_operations(ITEMS)] == ["always", "many"]
    assert dispatcher.is_disabled("many", ITEMS) is True
    assert dispatcher.is_disabled("many", [ITEMS[0], ITEMS[2]]) is False


def test_duplicate_keys_are_rejected() -> None:
    dispatcher = BulkActionDispatcher([BulkOperation(key="tag", label="Tag", execute=Recorder())])

    with pytest.raises(ValueError):
        dispatcher.register(BulkOperation(key="tag", label="Tag again", execute=Recorder()))


@pytest.mark.asyncio
async def test_bulk_delete_operation_deletes_through_adapter() -> None:
    service = CatalogService()
    adapter = build_product_adapter(service)
    first = await adapter.create("org-1", {"sku": "A-1", "name": "Alpha"})
    second = await adapter.create("org-1", {"sku": "B-1", "name": "Beta"})
    ids = [first.data["id"], second.data["id"]]

    dispatcher = BulkActionDispatcher([bulk_delete_operation(adapter, "org-1")])
    outcome = await dispatcher.execute("delete", ids, [first.data, second.data], confirm=always(True))
    listed = await adapter.list("org-1")

    assert outcome.status == "executed"
    assert listed.data == []


@pytest.mark.asyncio
async def test_status_toggle_operations_follow_selection() -> None:
    service = CatalogService()
    adapter = build_product_adapter(service)
    created = await adapter.create("org-1", {"sku": "A-1", "name": "Alpha", "is_active": True})
    product = (await adapter.read("org-1", created.data["id"])).data

    dispatcher = BulkActionDispatcher(status_toggle_operations(adapter, "org-1"))

    assert [operation.key for operation in dispatcher.visible_operations([product])] == ["deactivate"]

    outcome = await dispatcher.execute("deactivate", [product["id"]], [product])
    refreshed = await adapter.read("org-1", product["id"])

    assert outcome.status == "executed"
    assert refreshed.data["is_active"] is False
