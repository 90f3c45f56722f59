from __future__ import annotations

import json
import logging
from collections.abc import Callable, Mapping, Sequence
from typing import Any

from crud_engine.adapters.filtering import apply_field_filters, apply_search, apply_sort
from crud_engine.adapters.schemas import SortConfig
from crud_engine.core.config import get_settings
from crud_engine.core.debounce import Debouncer
from crud_engine.table.fields import CRUDField


logger = logging.getLogger("crud_engine.table")

ChangeListener = Callable[[str, Any], None]


def search_stage(items: Sequence[Any], query: str, fields: Sequence[CRUDField]) -> list[Any]:
    search_fields = [field.key for field in fields if field.searchable]
    return apply_search(items, query, search_fields)


def filter_stage(items: Sequence[Any], filters: Mapping[str, Any], fields: Sequence[CRUDField]) -> list[Any]:
    if not fields:
        return apply_field_filters(items, filters)
    return apply_field_filters(
        items,
        filters,
        known_fields=[field.key for field in fields if field.filterable],
        casts={field.key: field.cast for field in fields},
    )


def sort_stage(items: Sequence[Any], sort_config: SortConfig | None, fields: Sequence[CRUDField]) -> list[Any]:
    if sort_config is None or not sort_config.key:
        return list(items)
    field = next((field for field in fields if field.key == sort_config.key), None)
    if field is not None and not field.sortable:
        return list(items)
    if sort_config.type is None and field is not None and field.cast is not None:
        sort_config = sort_config.model_copy(update={"type": field.cast})
    return apply_sort(items, sort_config)


def derive_view(
    items: Sequence[Any],
    search_query: str,
    filters: Mapping[str, Any],
    sort_config: SortConfig | None,
    fields: Sequence[CRUDField] = (),
) -> list[Any]:
    """search -> field filters -> sort over items that are already loaded."""

    searched = search_stage(items, search_query, fields)
    filtered = filter_stage(searched, filters, fields)
    return sort_stage(filtered, sort_config, fields)


def _freeze(value: Mapping[str, Any]) -> str:
    return json.dumps(value, sort_keys=True, default=str)


class TableFeatureEngine:
    def __init__(
        self,
        fields: Sequence[CRUDField] = (),
        *,
        debounce_ms: int | None = None,
        on_change: ChangeListener | None = None,
        initial_filters: Mapping[str, Any] | None = None,
        initial_sort: SortConfig | None = None,
    ) -> None:
        self.fields = tuple(fields)
        delay_ms = get_settings().search_debounce_ms if debounce_ms is None else debounce_ms
        self._debouncer: Debouncer[str] = Debouncer(delay_ms / 1000, self._apply_search, logger=logger)
        self._on_change = on_change
        self._search_input = ""
        self._search_query = ""
        self._filters: dict[str, Any] = dict(initial_filters or {})
        self._sort = initial_sort or SortConfig()
        self._cache_items: Sequence[Any] | None = None
        self._cache_key: tuple[str, str, SortConfig] | None = None
        self._cache_value: list[Any] = []
        self.compute_count = 0

    @property
    def search_input(self) -> str:
        return self._search_input

    @property
    def search_query(self) -> str:
        return self._search_query

    @property
    def applied_filters(self) -> dict[str, Any]:
        return dict(self._filters)

    @property
    def sort_config(self) -> SortConfig:
        return self._sort

    @property
    def search_pending(self) -> bool:
        return self._debouncer.pending

    def handle_search(self, text: str) -> None:
        self._search_input = text
        self._debouncer.trigger(text)

    def flush_search(self) -> None:
        self._debouncer.flush()

    def handle_filter(self, filters: Mapping[str, Any]) -> None:
        self._filters = {key: value for key, value in filters.items() if value is not None and value != ""}
        self._emit("filters", self.applied_filters)

    def clear_filters(self) -> None:
        self._filters = {}
        self._emit("filters", {})

    def handle_sort(self, key: str) -> None:
        if self._sort.key == key:
            direction = "desc" if self._sort.direction == "asc" else "asc"
        else:
            direction = "asc"
        self.set_sort(SortConfig(key=key, direction=direction))

    def set_sort(self, sort_config: SortConfig) -> None:
        self._sort = sort_config
        self._emit("sort", sort_config)

    def filtered_items(self, items: Sequence[Any]) -> list[Any]:
        key = (self._search_query, _freeze(self._filters), self._sort)
        if self._cache_items is items and self._cache_key == key:
            return self._cache_value

        self.compute_count += 1
        self._cache_value = derive_view(items, self._search_query, self._filters, self._sort, self.fields)
        self._cache_items = items
        self._cache_key = key
        return self._cache_value

    def close(self) -> None:
        self._debouncer.close()

    def _apply_search(self, text: str) -> None:
        self._search_query = text
        self._emit("search", text)

    def _emit(self, kind: str, value: Any) -> None:
        if self._on_change is not None:
            self._on_change(kind, value)
