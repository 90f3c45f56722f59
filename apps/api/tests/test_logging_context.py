from __future__ import annotations

import logging
from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient

from crud_engine.api.crud import get_registry
from crud_engine.core.config import get_settings
from crud_engine.main import app
from crud_engine.registry import AdapterRegistry
from crud_engine.sample.catalog import PRODUCT_FIELDS, CatalogService, build_product_adapter


@pytest.fixture(autouse=True)
def setup_env() -> Generator[None, None, None]:
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture()
def client() -> Generator[TestClient, None, None]:
    registry = AdapterRegistry()
    registry.register(build_product_adapter(CatalogService()), PRODUCT_FIELDS)
    app.dependency_overrides[get_registry] = lambda: registry
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def test_logs_include_correlation_and_organization_for_http(client: TestClient, caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.INFO)

    response = client.get(
        "/api/crud/product/missing-id",
        headers={"X-Correlation-Id": "abc-123", "X-Organization-Id": "org-log"},
    )
    assert response.status_code == 404

    records = [
        record
        for record in caplog.records
        if record.name == "crud_engine.request" and record.getMessage() == "http.request"
    ]
    assert records
    assert any(
        getattr(record, "correlation_id", None) == "abc-123"
        and getattr(record, "organization_id", None) == "org-log"
        and getattr(record, "method", None) == "GET"
        and getattr(record, "path", None) == "/api/crud/{entity_type}/{id}"
        and getattr(record, "status_code", None) == 404
        and isinstance(getattr(record, "duration_ms", None), float)
        for record in records
    )


def test_adapter_logs_carry_request_context(client: TestClient, caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.INFO)

    response = client.post(
        "/api/crud/product",
        json={"code": "LOG-1", "name": "Logged"},
        headers={"X-Correlation-Id": "adapter-corr-1", "X-Organization-Id": "org-log"},
    )
    assert response.status_code == 201

    adapter_records = [record for record in caplog.records if record.name == "crud_engine.adapter"]
    assert adapter_records
    assert all(getattr(record, "correlation_id", None) == "adapter-corr-1" for record in adapter_records)
    assert any(getattr(record, "entity_type", None) == "product" for record in adapter_records)
