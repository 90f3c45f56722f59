from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from crud_engine.adapters.base import AdapterConfig, BaseCRUDServiceAdapter, ServiceOperations
from crud_engine.adapters.errors import AdapterConfigurationError


EntityExtractor = Callable[[Any], list[dict[str, Any]] | None]

DEFAULT_CONTAINER_KEYS: tuple[str, ...] = ("products", "entities", "items")


@dataclass(frozen=True, slots=True)
class ServiceMethodNames:
    catalog_method: str
    create_method: str
    update_method: str
    delete_method: str


def default_extract_entities(catalog_data: Any) -> list[dict[str, Any]]:
    if isinstance(catalog_data, Mapping):
        for key in DEFAULT_CONTAINER_KEYS:
            value = catalog_data.get(key)
            if isinstance(value, list):
                return value
    if isinstance(catalog_data, list):
        return catalog_data
    return []


def bind_service_operations(service: Any, names: ServiceMethodNames, *, service_name: str | None = None) -> ServiceOperations:
    resolved: dict[str, Any] = {}
    missing: list[str] = []
    for slot, method_name in (
        ("catalog", names.catalog_method),
        ("create", names.create_method),
        ("update", names.update_method),
        ("delete", names.delete_method),
    ):
        method = getattr(service, method_name, None)
        if method is None or not callable(method):
            missing.append(method_name)
            continue
        resolved[slot] = method

    if missing:
        raise AdapterConfigurationError(service_name or type(service).__name__, missing)
    return ServiceOperations(**resolved)


def validate_adapter_config(config: AdapterConfig) -> None:
    missing = [
        slot
        for slot in ("catalog", "create", "update", "delete")
        if not callable(getattr(config.operations, slot, None))
    ]
    if not callable(config.to_crud):
        missing.append("to_crud")
    if not callable(config.from_crud):
        missing.append("from_crud")
    if missing:
        raise AdapterConfigurationError(config.service_name, missing)


class ConfiguredServiceAdapter(BaseCRUDServiceAdapter):
    def __init__(self, config: AdapterConfig, extract: EntityExtractor | None = None) -> None:
        super().__init__(config)
        self._extract = extract or default_extract_entities

    def extract_entities(self, catalog_data: Any) -> list[dict[str, Any]]:
        return list(self._extract(catalog_data) or [])


def create_service_adapter(config: AdapterConfig, extract: EntityExtractor | None = None) -> ConfiguredServiceAdapter:
    validate_adapter_config(config)
    return ConfiguredServiceAdapter(config, extract)


def create_adapter_for_service(
    service: Any,
    names: ServiceMethodNames,
    *,
    service_name: str,
    entity_type: str,
    to_crud: Any,
    from_crud: Any,
    extract: EntityExtractor | None = None,
    **options: Any,
) -> ConfiguredServiceAdapter:
    operations = bind_service_operations(service, names, service_name=service_name)
    config = AdapterConfig(
        service_name=service_name,
        entity_type=entity_type,
        operations=operations,
        to_crud=to_crud,
        from_crud=from_crud,
        **options,
    )
    return create_service_adapter(config, extract)
