from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Literal

from crud_engine.adapters.errors import AggregateBulkError
from crud_engine.adapters.schemas import ServiceResult
from crud_engine.state.store import item_id

if TYPE_CHECKING:
    from crud_engine.adapters.base import BaseCRUDServiceAdapter


logger = logging.getLogger("crud_engine.bulk")

BulkExecute = Callable[[list[str], list[dict[str, Any]]], Awaitable[Any] | Any]
SelectionPredicate = Callable[[list[dict[str, Any]]], bool]
ConfirmGate = Callable[["BulkOperation", list[dict[str, Any]]], Awaitable[bool] | bool]
OutcomeStatus = Literal["executed", "cancelled", "skipped", "failed"]


@dataclass(slots=True)
class BulkOperation:
    key: str
    label: str
    execute: BulkExecute
    description: str | None = None
    confirm: str | None = None
    visible: SelectionPredicate | None = None
    disabled: SelectionPredicate | None = None

    @property
    def destructive(self) -> bool:
        return self.confirm is not None


@dataclass(frozen=True, slots=True)
class BulkOutcome:
    key: str
    status: OutcomeStatus
    count: int = 0
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == "executed"


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


class BulkActionDispatcher:
    """Runs a registered bulk operation against the current selection.

    The same operation key cannot run twice at once. ``last_executed`` keeps the
    key of the most recent operation that finished successfully.
    """

    def __init__(
        self,
        operations: Iterable[BulkOperation] = (),
        *,
        on_success: Callable[[str, int], None] | None = None,
        on_error: Callable[[str, str], None] | None = None,
    ) -> None:
        self._operations: dict[str, BulkOperation] = {}
        self._executing: set[str] = set()
        self._on_success = on_success
        self._on_error = on_error
        self.last_executed: str | None = None
        for operation in operations:
            self.register(operation)

    @property
    def operations(self) -> list[BulkOperation]:
        return list(self._operations.values())

    @property
    def executing(self) -> frozenset[str]:
        return frozenset(self._executing)

    def register(self, operation: BulkOperation) -> None:
        if operation.key in self._operations:
            raise ValueError(f"bulk operation '{operation.key}' is already registered")
        self._operations[operation.key] = operation

    def get(self, key: str) -> BulkOperation:
        operation = self._operations.get(key)
        if operation is None:
            raise KeyError(f"unknown bulk operation '{key}'")
        return operation

    def is_executing(self, key: str) -> bool:
        return key in self._executing

    def is_visible(self, key: str, selected_items: Sequence[Mapping[str, Any]]) -> bool:
        operation = self.get(key)
        return operation.visible is None or bool(operation.visible(list(selected_items)))

    def is_disabled(self, key: str, selected_items: Sequence[Mapping[str, Any]]) -> bool:
        operation = self.get(key)
        if key in self._executing:
            return True
        return operation.disabled is not None and bool(operation.disabled(list(selected_items)))

    def visible_operations(self, selected_items: Sequence[Mapping[str, Any]]) -> list[BulkOperation]:
        return [operation for operation in self._operations.values() if self.is_visible(operation.key, selected_items)]

    async def execute(
        self,
        key: str,
        selected_ids: Iterable[Any],
        items: Sequence[Mapping[str, Any]],
        *,
        confirm: ConfirmGate | None = None,
    ) -> BulkOutcome:
        operation = self.get(key)
        ids = [str(value) for value in selected_ids]
        wanted = set(ids)
        selected_items = [dict(item) for item in items if item_id(item) in wanted]

        if key in self._executing:
            return BulkOutcome(key=key, status="skipped", error="operation already running")
        if not ids:
            return BulkOutcome(key=key, status="skipped", error="nothing selected")
        if not self.is_visible(key, selected_items) or self.is_disabled(key, selected_items):
            return BulkOutcome(key=key, status="skipped", error="operation not available for selection")

        self._executing.add(key)
        try:
            if operation.confirm is not None:
                confirmed = bool(await _maybe_await(confirm(operation, selected_items))) if confirm else False
                if not confirmed:
                    logger.info("bulk.cancelled", extra={"operation": key, "count": len(ids)})
                    return BulkOutcome(key=key, status="cancelled", count=len(ids))

            try:
                result = await _maybe_await(operation.execute(ids, selected_items))
            except Exception as exc:
                logger.exception("bulk.failed", extra={"operation": key, "count": len(ids), "error": str(exc)})
                return self._failed(key, len(ids), str(exc) or "bulk operation failed")

            if isinstance(result, ServiceResult) and not result.success:
                logger.warning("bulk.failed", extra={"operation": key, "count": len(ids), "error": result.error})
                return self._failed(key, len(ids), result.error or "bulk operation failed")

            self.last_executed = key
            logger.info("bulk.executed", extra={"operation": key, "count": len(ids)})
            if self._on_success is not None:
                self._on_success(key, len(ids))
            return BulkOutcome(key=key, status="executed", count=len(ids))
        finally:
            self._executing.discard(key)

    def _failed(self, key: str, count: int, error: str) -> BulkOutcome:
        if self._on_error is not None:
            self._on_error(key, error)
        return BulkOutcome(key=key, status="failed", count=count, error=error)


def _has_selection(selected_items: list[dict[str, Any]]) -> bool:
    return len(selected_items) > 0


def bulk_delete_operation(
    adapter: "BaseCRUDServiceAdapter",
    organization_id: str,
    *,
    confirm: str = "Delete the selected items? This cannot be undone.",
) -> BulkOperation:
    async def execute(ids: list[str], _items: list[dict[str, Any]]) -> ServiceResult:
        return await adapter.bulk_delete(organization_id, ids)

    return BulkOperation(
        key="delete",
        label=f"Delete {adapter.entity_type}s",
        execute=execute,
        confirm=confirm,
        visible=_has_selection,
    )


def status_toggle_operations(
    adapter: "BaseCRUDServiceAdapter",
    organization_id: str,
    *,
    field: str = "is_active",
) -> list[BulkOperation]:
    def toggle(value: bool, verb: str) -> BulkExecute:
        async def execute(ids: list[str], _items: list[dict[str, Any]]) -> ServiceResult:
            results = await asyncio.gather(*(adapter.update(organization_id, entity_id, {field: value}) for entity_id in ids))
            failed = sum(1 for result in results if not result.success)
            if failed:
                return ServiceResult.fail(
                    f"Failed to {verb} {failed} of {len(ids)} {adapter.entity_type}s",
                    kind=AggregateBulkError.kind,
                )
            return ServiceResult.ok(None)

        return execute

    return [
        BulkOperation(
            key="activate",
            label=f"Activate {adapter.entity_type}s",
            description=f"Mark selected {adapter.entity_type}s as active",
            execute=toggle(True, "activate"),
            visible=lambda selected: any(not item.get(field) for item in selected),
        ),
        BulkOperation(
            key="deactivate",
            label=f"Deactivate {adapter.entity_type}s",
            description=f"Mark selected {adapter.entity_type}s as inactive",
            execute=toggle(False, "deactivate"),
            visible=lambda selected: any(bool(item.get(field)) for item in selected),
        ),
    ]
