from __future__ import annotations

import asyncio
import logging
from typing import Any

import pytest

from crud_engine.adapters.schemas import SortConfig
from crud_engine.table import CRUDField, TableFeatureEngine, derive_view


FIELDS = [
    CRUDField(key="name", searchable=True),
    CRUDField(key="price", type="currency"),
    CRUDField(key="category"),
    CRUDField(key="created_at", type="date"),
]

ITEMS = (
    {"id": "1", "name": "Margherita Pizza", "price": "10", "category": "food", "created_at": "2024-03-01"},
    {"id": "2", "name": "Pepperoni Pizza", "price": "20", "category": "food", "created_at": "2024-01-15"},
    {"id": "3", "name": "Espresso", "price": "4", "category": "drinks", "created_at": "2024-02-01"},
)


def test_derive_view_runs_search_then_filters_then_sort() -> None:
    result = derive_view(
        ITEMS,
        "piz",
        {"category": "food"},
        SortConfig(key="price", direction="desc"),
        FIELDS,
    )

    assert [item["id"] for item in result] == ["2", "1"]


def test_sort_cast_comes_from_field_type() -> None:
    result = derive_view(ITEMS, "", {}, SortConfig(key="price", direction="asc"), FIELDS)

    assert [item["id"] for item in result] == ["3", "1", "2"]


def test_date_field_sorts_chronologically() -> None:
    result = derive_view(ITEMS, "", {}, SortConfig(key="created_at", direction="asc"), FIELDS)

    assert [item["id"] for item in result] == ["2", "3", "1"]


def test_unknown_filter_keys_are_ignored() -> None:
    result = derive_view(ITEMS, "", {"supplier": "acme"}, None, FIELDS)

    assert len(result) == 3


def test_filters_on_non_filterable_fields_are_ignored() -> None:
    fields = [*FIELDS[:3], CRUDField(key="created_at", type="date", filterable=False)]

    result = derive_view(ITEMS, "", {"created_at": {"start": "2024-02-15"}, "category": "food"}, None, fields)

    assert [item["id"] for item in result] == ["1", "2"]


def test_sort_on_non_sortable_field_keeps_input_order() -> None:
    fields = [*FIELDS[:1], CRUDField(key="price", type="currency", sortable=False)]

    result = derive_view(ITEMS, "", {}, SortConfig(key="price", direction="desc"), fields)

    assert [item["id"] for item in result] == ["1", "2", "3"]


def test_filtered_items_is_memoized_on_inputs() -> None:
    engine = TableFeatureEngine(FIELDS, debounce_ms=0)

    first = engine.filtered_items(ITEMS)
    second = engine.filtered_items(ITEMS)
    engine.handle_filter({"category": "drinks"})
    third = engine.filtered_items(ITEMS)

    assert first is second
    assert engine.compute_count == 2
    assert [item["id"] for item in third] == ["3"]


def test_handle_sort_toggles_direction_for_same_key() -> None:
    changes: list[tuple[str, Any]] = []
    engine = TableFeatureEngine(FIELDS, on_change=lambda kind, value: changes.append((kind, value)))

    engine.handle_sort("price")
    engine.handle_sort("price")
    engine.handle_sort("name")

    assert [value.direction for _, value in changes] == ["asc", "desc", "asc"]
    assert engine.sort_config == SortConfig(key="name", direction="asc")


def test_clear_filters_emits_empty_filters() -> None:
    changes: list[tuple[str, Any]] = []
    engine = TableFeatureEngine(
        FIELDS,
        initial_filters={"category": "food"},
        on_change=lambda kind, value: changes.append((kind, value)),
    )

    engine.clear_filters()

    assert engine.applied_filters == {}
    assert changes == [("filters", {})]


@pytest.mark.asyncio
async def test_search_is_debounced_to_last_value() -> None:
    changes: list[tuple[str, Any]] = []
    engine = TableFeatureEngine(FIELDS, debounce_ms=20, on_change=lambda kind, value: changes.append((kind, value)))

    engine.handle_search("p")
    engine.handle_search("pi")
    engine.handle_search("piz")

    assert engine.search_input == "piz"
    assert engine.search_query == ""
    assert engine.search_pending is True

    await asyncio.sleep(0.08)

    assert changes == [("search", "piz")]
    assert engine.search_query == "piz"
    assert [item["id"] for item in engine.filtered_items(ITEMS)] == ["1", "2"]


@pytest.mark.asyncio
async def test_flush_search_applies_immediately() -> None:
    engine = TableFeatureEngine(FIELDS, debounce_ms=1000)

    engine.handle_search("espresso")
    engine.flush_search()

    assert engine.search_query == "espresso"
    assert engine.search_pending is False


@pytest.mark.asyncio
async def test_close_cancels_pending_search() -> None:
    changes: list[tuple[str, Any]] = []
    engine = TableFeatureEngine(FIELDS, debounce_ms=10, on_change=lambda kind, value: changes.append((kind, value)))

    engine.handle_search("piz")
    engine.close()
    await asyncio.sleep(0.05)

    assert changes == []
    assert engine.search_query == ""


@pytest.mark.asyncio
async def test_failing_change_listener_is_logged(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.ERROR, logger="crud_engine.table")

    def explode(kind: str, value: Any) -> None:
        raise ValueError("listener broke")

    engine = TableFeatureEngine(FIELDS, debounce_ms=10, on_change=explode)
    engine.handle_search("piz")
    await asyncio.sleep(0.05)

    assert engine.search_query == "piz"
    assert any(
        record.name == "crud_engine.table" and record.getMessage() == "debounce.callback_failed"
        for record in caplog.records
    )
