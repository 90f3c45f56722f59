from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Mapping, Sequence
from typing import Any

from crud_engine.adapters.base import BaseCRUDServiceAdapter
from crud_engine.adapters.schemas import ListOptions, ServiceResult, SortConfig
from crud_engine.bulk.dispatcher import BulkActionDispatcher, BulkOperation, BulkOutcome, ConfirmGate, bulk_delete_operation
from crud_engine.realtime.channel import RealtimeSyncChannel
from crud_engine.realtime.transport import RealtimeTransport
from crud_engine.state.store import CRUDState, CRUDStore, ModalType
from crud_engine.table.engine import TableFeatureEngine
from crud_engine.table.fields import CRUDField


logger = logging.getLogger("crud_engine.controller")

SuccessCallback = Callable[[str, str], None]
ErrorCallback = Callable[[str], None]


def _busy(action: str) -> ServiceResult:
    logger.info("crud.busy", extra={"operation": action})
    return ServiceResult.fail(f"Another {action} is already in progress", kind="ValidationError")


class CRUDController:
    """Owns the state store, table engine, real-time channel and bulk dispatcher for one entity list.

    Every ``load`` is stamped with a request version and a response that comes
    back after a newer load was started is discarded. ``close`` (or leaving
    ``async with``) cancels both debounce timers, any scheduled reloads and
    the real-time subscription.
    """

    def __init__(
        self,
        adapter: BaseCRUDServiceAdapter,
        organization_id: str,
        *,
        fields: Sequence[CRUDField] = (),
        transport: RealtimeTransport | None = None,
        bulk_operations: Sequence[BulkOperation] | None = None,
        search_debounce_ms: int | None = None,
        realtime_debounce_ms: int | None = None,
        page_size: int | None = None,
        initial_filters: Mapping[str, Any] | None = None,
        initial_sort: SortConfig | None = None,
        on_success: SuccessCallback | None = None,
        on_error: ErrorCallback | None = None,
    ) -> None:
        self.adapter = adapter
        self.organization_id = organization_id
        self.fields = tuple(fields)
        self.store = CRUDStore(
            initial_filters=initial_filters,
            initial_sort=initial_sort,
            page_size=page_size or adapter.default_list_options().page_size,
        )
        self.table = TableFeatureEngine(
            self.fields,
            debounce_ms=search_debounce_ms,
            on_change=self._on_table_change,
            initial_filters=initial_filters,
            initial_sort=initial_sort,
        )
        self.realtime = (
            RealtimeSyncChannel(transport, self.load, debounce_ms=realtime_debounce_ms) if transport is not None else None
        )
        operations = bulk_operations if bulk_operations is not None else [bulk_delete_operation(adapter, organization_id)]
        self.bulk = BulkActionDispatcher(operations)
        self._on_success = on_success
        self._on_error = on_error
        self._request_version = 0
        self._reloads: set[asyncio.Task[Any]] = set()
        self._closed = False

    @property
    def state(self) -> CRUDState:
        return self.store.state

    @property
    def entity_type(self) -> str:
        return self.adapter.entity_type

    @property
    def closed(self) -> bool:
        return self._closed

    def visible_items(self) -> list[dict[str, Any]]:
        return self.table.filtered_items(self.store.state.items)

    async def open(self) -> ServiceResult | None:
        if self.realtime is not None:
            self.realtime.set_scope(self.organization_id, self.entity_type)
        return await self.load()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.table.close()
        if self.realtime is not None:
            self.realtime.close()
        for task in list(self._reloads):
            task.cancel()
        self._reloads.clear()
        logger.debug("crud.closed", extra={"entity_type": self.entity_type})

    async def __aenter__(self) -> "CRUDController":
        await self.open()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self.close()

    def list_options(self) -> ListOptions:
        state = self.store.state
        return ListOptions(
            page=state.pagination.page,
            page_size=state.pagination.page_size,
            sort=state.sort_config if state.sort_config.key else None,
            filters=dict(state.filters) or None,
            search=state.search_query or None,
        )

    async def load(self) -> ServiceResult | None:
        if self._closed:
            return None
        self._request_version += 1
        version = self._request_version

        self.store.set_loading(True)
        self.store.set_error(None)
        result = await self.adapter.list(self.organization_id, self.list_options())

        if self._closed or version != self._request_version:
            logger.info(
                "crud.load.stale",
                extra={"entity_type": self.entity_type, "request_version": version},
            )
            return None

        if result.success:
            self.store.set_items(result.data or [])
            if result.metadata is not None:
                self.store.set_pagination(
                    page=result.metadata.page,
                    page_size=result.metadata.page_size,
                    total=result.metadata.total,
                )
        else:
            self._report_error(result.error or "Failed to load data")
        self.store.set_loading(False)
        return result

    async def go_to_page(self, page: int) -> ServiceResult | None:
        self.store.set_pagination(page=max(1, page))
        return await self.load()

    async def refresh(self) -> ServiceResult | None:
        return await self.load()

    def open_modal(self, modal_type: ModalType, item: Mapping[str, Any] | None = None) -> None:
        self.store.set_current_item(item)
        self.store.set_modal_type(modal_type)
        self.store.set_view_mode(modal_type)

    def close_modal(self) -> None:
        self.store.set_modal_type(None)
        self.store.set_current_item(None)
        self.store.set_view_mode("list")

    async def create(self, data: Mapping[str, Any]) -> ServiceResult:
        if self.store.state.saving:
            return _busy("save")
        self.store.set_saving(True)
        try:
            result = await self.adapter.create(self.organization_id, data)
            if not result.success:
                self._report_error(result.error or "Failed to create item")
                return result
            await self.load()
            self.close_modal()
            created = result.data or {}
            name = created.get("name") or data.get("name") or "Item"
            code = created.get("code") or created.get("sku")
            self._report_success(f"{name} created successfully ({code})" if code else f"{name} created successfully", "create")
            return result
        finally:
            self.store.set_saving(False)

    async def update(self, data: Mapping[str, Any], entity_id: str | None = None) -> ServiceResult:
        target = entity_id or self._current_id()
        if target is None:
            return ServiceResult.fail("No item selected for update", kind="ValidationError")
        if self.store.state.saving:
            return _busy("save")

        self.store.set_saving(True)
        try:
            result = await self.adapter.update(self.organization_id, target, data)
            if not result.success:
                self._report_error(result.error or "Failed to update item")
                return result
            self.store.update_item(target, result.data or {})
            await self.load()
            self.close_modal()
            self._report_success("Item updated successfully", "update")
            return result
        finally:
            self.store.set_saving(False)

    async def delete(self, entity_id: str | None = None) -> ServiceResult:
        target = entity_id or self._current_id()
        if target is None:
            return ServiceResult.fail("No item selected for delete", kind="ValidationError")
        if self.store.state.deleting:
            return _busy("delete")

        self.store.set_deleting(True)
        try:
            result = await self.adapter.delete(self.organization_id, target)
            if not result.success:
                self._report_error(result.error or "Failed to delete item")
                return result
            self.store.remove_item(target)
            await self.load()
            self.close_modal()
            self.store.clear_selection()
            self._report_success("Item deleted successfully", "delete")
            return result
        finally:
            self.store.set_deleting(False)

    async def bulk_delete(self) -> ServiceResult:
        selected = sorted(self.store.state.selected_ids)
        if not selected:
            return ServiceResult.ok(None)
        if self.store.state.deleting:
            return _busy("delete")

        self.store.set_deleting(True)
        try:
            result = await self.adapter.bulk_delete(self.organization_id, selected)
            # partial failures still removed some rows
            await self.load()
            if not result.success:
                self._report_error(result.error or "Failed to delete items")
                return result
            self.store.clear_selection()
            self._report_success(f"{len(selected)} items deleted successfully", "delete")
            return result
        finally:
            self.store.set_deleting(False)

    async def run_bulk(self, key: str, *, confirm: ConfirmGate | None = None) -> BulkOutcome:
        state = self.store.state
        destructive = self.bulk.get(key).destructive
        if destructive:
            if state.deleting:
                logger.info("crud.busy", extra={"operation": key})
                return BulkOutcome(key=key, status="skipped")
            self.store.set_deleting(True)
        try:
            outcome = await self.bulk.execute(key, sorted(state.selected_ids), state.items, confirm=confirm)
        finally:
            if destructive:
                self.store.set_deleting(False)

        if outcome.status in {"executed", "failed"}:
            await self.load()
        if outcome.status == "executed":
            self.store.clear_selection()
            self._report_success(f"{outcome.count} items processed", key)
        elif outcome.status == "failed":
            self._report_error(outcome.error or "Bulk operation failed")
        return outcome

    def _current_id(self) -> str | None:
        current = self.store.state.current_item
        if current is None or current.get("id") is None:
            return None
        return str(current["id"])

    def _report_success(self, message: str, operation: str) -> None:
        logger.info("crud.success", extra={"entity_type": self.entity_type, "operation": operation})
        if self._on_success is not None:
            self._on_success(message, operation)

    def _report_error(self, message: str) -> None:
        self.store.set_error(message)
        logger.warning("crud.error", extra={"entity_type": self.entity_type, "error": message})
        if self._on_error is not None:
            self._on_error(message)

    def _on_table_change(self, kind: str, value: Any) -> None:
        if kind == "search":
            self.store.set_search_query(value)
        elif kind == "filters":
            self.store.set_filters(value)
        elif kind == "sort":
            self.store.set_sort_config(value)
        self._schedule_reload()

    def _schedule_reload(self) -> None:
        if self._closed:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        task = loop.create_task(self.load())
        self._reloads.add(task)
        task.add_done_callback(self._reloads.discard)

    async def wait_idle(self) -> None:
        """Wait for scheduled reloads and a pending real-time refresh to finish."""

        while self._reloads:
            await asyncio.gather(*list(self._reloads), return_exceptions=True)
        if self.realtime is not None:
            await self.realtime.wait_idle()
