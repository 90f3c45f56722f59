from crud_engine.sample.catalog import (
    DEFAULT_CATEGORIES,
    PRODUCT_FIELDS,
    CatalogProductCreate,
    CatalogProductUpdate,
    CatalogService,
    build_product_adapter,
    catalog_service,
    product_from_crud,
    product_to_crud,
)

__all__ = [
    "DEFAULT_CATEGORIES",
    "PRODUCT_FIELDS",
    "CatalogProductCreate",
    "CatalogProductUpdate",
    "CatalogService",
    "build_product_adapter",
    "catalog_service",
    "product_from_crud",
    "product_to_crud",
]
