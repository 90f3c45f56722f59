from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from crud_engine.adapters.base import BaseCRUDServiceAdapter
from crud_engine.table.fields import CRUDField


@dataclass(frozen=True, slots=True)
class RegisteredEntity:
    adapter: BaseCRUDServiceAdapter
    fields: tuple[CRUDField, ...] = ()


class AdapterRegistry:
    """Adapters exposed over HTTP, keyed by entity type."""

    def __init__(self) -> None:
        self._entries: dict[str, RegisteredEntity] = {}

    def register(self, adapter: BaseCRUDServiceAdapter, fields: Sequence[CRUDField] = ()) -> None:
        if adapter.entity_type in self._entries:
            raise ValueError(f"an adapter for '{adapter.entity_type}' is already registered")
        self._entries[adapter.entity_type] = RegisteredEntity(adapter=adapter, fields=tuple(fields))

    def unregister(self, entity_type: str) -> None:
        self._entries.pop(entity_type, None)

    def get(self, entity_type: str) -> BaseCRUDServiceAdapter:
        return self._entry(entity_type).adapter

    def fields_for(self, entity_type: str) -> tuple[CRUDField, ...]:
        return self._entry(entity_type).fields

    def entity_types(self) -> list[str]:
        return sorted(self._entries)

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, entity_type: object) -> bool:
        return entity_type in self._entries

    def _entry(self, entity_type: str) -> RegisteredEntity:
        entry = self._entries.get(entity_type)
        if entry is None:
            raise KeyError(entity_type)
        return entry


adapter_registry = AdapterRegistry()
