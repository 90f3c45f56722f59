from crud_engine.bulk.dispatcher import (
    BulkActionDispatcher,
    BulkOperation,
    BulkOutcome,
    bulk_delete_operation,
    status_toggle_operations,
)

__all__ = [
    "BulkActionDispatcher",
    "BulkOperation",
    "BulkOutcome",
    "bulk_delete_operation",
    "status_toggle_operations",
]
