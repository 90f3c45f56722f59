from __future__ import annotations

import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from crud_engine.adapters.factory import ConfiguredServiceAdapter, ServiceMethodNames, create_adapter_for_service
from crud_engine.adapters.reference import ReferenceDataCache
from crud_engine.table.fields import CRUDField


DEFAULT_CATEGORIES: dict[str, str] = {
    "general": "General",
    "food": "Food",
    "beverages": "Beverages",
}

PRODUCT_FIELDS: tuple[CRUDField, ...] = (
    CRUDField(key="code", label="SKU", searchable=True),
    CRUDField(key="name", searchable=True),
    CRUDField(key="description", type="textarea", searchable=True, show_in_list=False),
    CRUDField(key="category_id", label="Category", type="select"),
    CRUDField(key="price", type="currency"),
    CRUDField(key="is_active", label="Active", type="boolean"),
    CRUDField(key="created_at", label="Created", type="datetime", filterable=False),
)


class CatalogProductCreate(BaseModel):
    sku: str = Field(min_length=1)
    name: str = Field(min_length=1)
    description: str | None = None
    category_id: str | None = None
    price: float = Field(default=0, ge=0)
    currency: str = Field(default="USD", min_length=3, max_length=3)
    is_active: bool = True


class CatalogProductUpdate(BaseModel):
    sku: str | None = Field(default=None, min_length=1)
    name: str | None = Field(default=None, min_length=1)
    description: str | None = None
    category_id: str | None = None
    price: float | None = Field(default=None, ge=0)
    currency: str | None = Field(default=None, min_length=3, max_length=3)
    is_active: bool | None = None


def _ok(data: Any = None) -> dict[str, Any]:
    return {"success": True, "data": data}


def _fail(error: str) -> dict[str, Any]:
    return {"success": False, "error": error}


def _validation_message(exc: ValidationError) -> str:
    first = exc.errors()[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    return f"{location}: {first.get('msg')}" if location else str(first.get("msg"))


@dataclass(slots=True)
class CatalogService:
    """In-memory product catalog partitioned by organization.

    Methods keep the ``{success, data, error}`` response shape that domain
    services expose to the adapter layer.
    """

    products: dict[str, dict[str, dict[str, Any]]] = field(default_factory=dict)
    categories: dict[str, dict[str, str]] = field(default_factory=dict)

    def _products(self, organization_id: str) -> dict[str, dict[str, Any]]:
        return self.products.setdefault(organization_id, {})

    def _sku_taken(self, organization_id: str, sku: str, exclude_id: str | None = None) -> bool:
        wanted = sku.lower()
        return any(
            product["sku"].lower() == wanted and product_id != exclude_id
            for product_id, product in self._products(organization_id).items()
        )

    def set_categories(self, organization_id: str, categories: dict[str, str]) -> None:
        self.categories[organization_id] = dict(categories)

    async def get_product_catalog(self, organization_id: str) -> dict[str, Any]:
        products = [dict(product) for product in self._products(organization_id).values()]
        categories = [
            {"id": category_id, "name": name}
            for category_id, name in self.categories.get(organization_id, {}).items()
        ]
        return _ok({"products": products, "categories": categories})

    async def create_product(self, organization_id: str, data: dict[str, Any]) -> dict[str, Any]:
        try:
            dto = CatalogProductCreate.model_validate(data)
        except ValidationError as exc:
            return _fail(_validation_message(exc))

        if self._sku_taken(organization_id, dto.sku):
            return _fail("catalog product already exists")

        product = {
            "id": str(uuid.uuid4()),
            "organization_id": organization_id,
            **dto.model_dump(),
            "created_at": datetime.now(timezone.utc).isoformat(),
        }
        self._products(organization_id)[product["id"]] = product
        return _ok(dict(product))

    async def update_product(self, organization_id: str, product_id: str, data: dict[str, Any]) -> dict[str, Any]:
        product = self._products(organization_id).get(str(product_id))
        if product is None:
            return _fail("catalog product not found")
        try:
            dto = CatalogProductUpdate.model_validate(data)
        except ValidationError as exc:
            return _fail(_validation_message(exc))

        changes = dto.model_dump(exclude_unset=True)
        if changes.get("sku") and self._sku_taken(organization_id, changes["sku"], exclude_id=product["id"]):
            return _fail("catalog product already exists")

        product.update(changes)
        return _ok(dict(product))

    async def delete_product(self, organization_id: str, product_id: str) -> dict[str, Any]:
        if self._products(organization_id).pop(str(product_id), None) is None:
            return _fail("catalog product not found")
        return _ok(None)


def product_to_crud(product: dict[str, Any], categories: ReferenceDataCache) -> dict[str, Any]:
    category_id = product.get("category_id")
    return {
        "id": product["id"],
        "code": product.get("sku"),
        "name": product.get("name"),
        "description": product.get("description"),
        "category_id": category_id,
        "category_name": categories.get(category_id, category_id),
        "price": product.get("price"),
        "currency": product.get("currency"),
        "is_active": product.get("is_active", True),
        "created_at": product.get("created_at"),
    }


def product_from_crud(data: dict[str, Any]) -> dict[str, Any]:
    payload = {key: value for key, value in data.items() if key not in {"id", "code", "category_name", "created_at"}}
    if data.get("code") and "sku" not in payload:
        payload["sku"] = data["code"]
    return payload


def generate_product_code(name: str | None, created: Any) -> str:
    if isinstance(created, dict) and created.get("sku"):
        return str(created["sku"])
    slug = re.sub(r"[^A-Z0-9]+", "-", (name or "product").upper()).strip("-")
    return f"{slug[:12]}-{uuid.uuid4().hex[:6].upper()}"


def extract_categories(catalog_data: Any) -> list[dict[str, Any]]:
    if isinstance(catalog_data, dict):
        return list(catalog_data.get("categories") or [])
    return []


def build_product_adapter(service: CatalogService) -> ConfiguredServiceAdapter:
    return create_adapter_for_service(
        service,
        ServiceMethodNames(
            catalog_method="get_product_catalog",
            create_method="create_product",
            update_method="update_product",
            delete_method="delete_product",
        ),
        service_name="catalog",
        entity_type="product",
        to_crud=product_to_crud,
        from_crud=product_from_crud,
        extract_reference_data=extract_categories,
        default_reference_data=DEFAULT_CATEGORIES,
        searchable_fields=("sku", "name", "description"),
        range_casts={"price": "number", "created_at": "date"},
        generate_code=generate_product_code,
    )


catalog_service = CatalogService()
