from __future__ import annotations


class CRUDError(Exception):
    """Base error for adapter failures. ``kind`` is surfaced on ``ServiceResult.error_kind``."""

    kind = "CRUDError"


class ValidationError(CRUDError):
    """Raised when a call is rejected before it reaches the domain service."""

    kind = "ValidationError"


class ServiceError(CRUDError):
    """The domain service reported ``success: false``; its message is kept verbatim."""

    kind = "ServiceError"


class NotFoundError(ServiceError):
    kind = "NotFoundError"


class IntegrityError(CRUDError):
    """Adapter-detected inconsistency in a domain service response."""

    kind = "IntegrityError"


class AggregateBulkError(CRUDError):
    kind = "AggregateBulkError"

    def __init__(self, entity_type: str, failed: int, total: int) -> None:
        self.entity_type = entity_type
        self.failed = failed
        self.total = total
        super().__init__(f"Failed to delete {failed} of {total} {entity_type}s")


class UnexpectedError(CRUDError):
    kind = "UnexpectedError"


class AdapterConfigurationError(CRUDError):
    """Raised at adapter build time when a service method cannot be bound."""

    kind = "AdapterConfigurationError"

    def __init__(self, service_name: str, missing: list[str]) -> None:
        self.service_name = service_name
        self.missing = sorted(set(missing))
        super().__init__(f"Service '{service_name}' is missing callable methods: {', '.join(self.missing)}")
