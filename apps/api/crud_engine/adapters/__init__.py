from crud_engine.adapters.base import AdapterConfig, BaseCRUDServiceAdapter, ServiceOperations
from crud_engine.adapters.errors import (
    AdapterConfigurationError,
    AggregateBulkError,
    CRUDError,
    IntegrityError,
    NotFoundError,
    ServiceError,
    UnexpectedError,
    ValidationError,
)
from crud_engine.adapters.factory import (
    ConfiguredServiceAdapter,
    ServiceMethodNames,
    bind_service_operations,
    create_adapter_for_service,
    create_service_adapter,
    default_extract_entities,
)
from crud_engine.adapters.reference import ReferenceDataCache
from crud_engine.adapters.schemas import (
    ChangeEvent,
    ChangeScope,
    ListOptions,
    ResultMetadata,
    ServiceResult,
    SortConfig,
)

__all__ = [
    "AdapterConfig",
    "BaseCRUDServiceAdapter",
    "ServiceOperations",
    "AdapterConfigurationError",
    "AggregateBulkError",
    "CRUDError",
    "IntegrityError",
    "NotFoundError",
    "ServiceError",
    "UnexpectedError",
    "ValidationError",
    "ConfiguredServiceAdapter",
    "ServiceMethodNames",
    "bind_service_operations",
    "create_adapter_for_service",
    "create_service_adapter",
    "default_extract_entities",
    "ReferenceDataCache",
    "ChangeEvent",
    "ChangeScope",
    "ListOptions",
    "ResultMetadata",
    "ServiceResult",
    "SortConfig",
]
