from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

from crud_engine.api.routes import router as api_router
from crud_engine.core.config import get_settings
from crud_engine.logging import configure_logging
from crud_engine.middleware.correlation_id import CorrelationIdMiddleware
from crud_engine.middleware.request_logging import RequestLoggingMiddleware
from crud_engine.otel import get_fastapi_server_request_hook, setup_otel
from crud_engine.registry import adapter_registry
from crud_engine.sample.catalog import PRODUCT_FIELDS, build_product_adapter, catalog_service


configure_logging()
logger = logging.getLogger("crud_engine.lifecycle")


def register_sample_adapters() -> None:
    if "product" in adapter_registry:
        return
    adapter_registry.register(build_product_adapter(catalog_service), PRODUCT_FIELDS)
    logger.info("adapter.registered", extra={"entity_type": "product", "service_name": "catalog"})


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    if settings.sample_catalog_enabled:
        register_sample_adapters()
    logger.info("system.started", extra={"count": len(adapter_registry.entity_types())})
    yield
    logger.info("system.stopped")


app = FastAPI(title="Nexa CRUD Engine", version="0.1.0", lifespan=lifespan)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(CorrelationIdMiddleware)
app.include_router(api_router)

setup_otel(get_settings())

if not getattr(app, "_is_instrumented_by_opentelemetry", False):
    FastAPIInstrumentor().instrument_app(app, server_request_hook=get_fastapi_server_request_hook())
