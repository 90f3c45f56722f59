from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field, replace
from typing import Any, Literal

from crud_engine.adapters.schemas import SortConfig


ModalType = Literal["create", "edit", "view", "delete"]
ViewMode = Literal["list", "create", "edit", "view", "delete"]
StateListener = Callable[["CRUDState"], None]


def item_id(item: Mapping[str, Any]) -> str:
    return str(item.get("id"))


@dataclass(frozen=True, slots=True)
class PaginationState:
    page: int = 1
    page_size: int = 50
    total: int = 0


@dataclass(frozen=True, slots=True)
class CRUDState:
    items: tuple[dict[str, Any], ...] = ()
    selected_ids: frozenset[str] = frozenset()
    current_item: dict[str, Any] | None = None
    loading: bool = False
    saving: bool = False
    deleting: bool = False
    error: str | None = None
    view_mode: ViewMode = "list"
    modal_type: ModalType | None = None
    search_query: str = ""
    filters: dict[str, Any] = field(default_factory=dict)
    sort_config: SortConfig = field(default_factory=SortConfig)
    pagination: PaginationState = field(default_factory=PaginationState)

    @property
    def item_ids(self) -> list[str]:
        return [item_id(item) for item in self.items]

    @property
    def selected_items(self) -> list[dict[str, Any]]:
        return [item for item in self.items if item_id(item) in self.selected_ids]

    @property
    def all_selected(self) -> bool:
        return bool(self.items) and self.selected_ids == frozenset(self.item_ids)


class CRUDStore:
    """Canonical client-side CRUD state.

    Each action replaces the current snapshot with a new one and notifies the
    listeners. Search, filter and sort changes always return to page 1, and
    the selection never holds ids that are not in ``items``.
    """

    def __init__(
        self,
        *,
        initial_items: Iterable[Mapping[str, Any]] | None = None,
        initial_filters: Mapping[str, Any] | None = None,
        initial_sort: SortConfig | None = None,
        page_size: int = 50,
    ) -> None:
        self._initial = CRUDState(
            items=tuple(dict(item) for item in initial_items or ()),
            filters=dict(initial_filters or {}),
            sort_config=initial_sort or SortConfig(),
            pagination=PaginationState(page=1, page_size=page_size, total=0),
        )
        self._state = self._initial
        self._listeners: list[StateListener] = []

    @property
    def state(self) -> CRUDState:
        return self._state

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _commit(self, **changes: Any) -> CRUDState:
        self._state = replace(self._state, **changes)
        for listener in list(self._listeners):
            listener(self._state)
        return self._state

    def _known(self, ids: Iterable[Any], items: Iterable[Mapping[str, Any]] | None = None) -> frozenset[str]:
        source = self._state.items if items is None else items
        known = {item_id(item) for item in source}
        return frozenset(str(value) for value in ids if str(value) in known)

    def set_items(self, items: Iterable[Mapping[str, Any]]) -> CRUDState:
        new_items = tuple(dict(item) for item in items)
        return self._commit(items=new_items, selected_ids=self._known(self._state.selected_ids, new_items))

    def add_item(self, item: Mapping[str, Any]) -> CRUDState:
        return self._commit(items=(*self._state.items, dict(item)))

    def update_item(self, entity_id: Any, patch: Mapping[str, Any]) -> CRUDState:
        target = str(entity_id)
        items = tuple({**item, **patch} if item_id(item) == target else item for item in self._state.items)
        current = self._state.current_item
        if current is not None and item_id(current) == target:
            current = {**current, **patch}
        return self._commit(items=items, current_item=current)

    def remove_item(self, entity_id: Any) -> CRUDState:
        target = str(entity_id)
        items = tuple(item for item in self._state.items if item_id(item) != target)
        current = self._state.current_item
        if current is not None and item_id(current) == target:
            current = None
        return self._commit(
            items=items,
            selected_ids=self._state.selected_ids - {target},
            current_item=current,
        )

    def select_item(self, entity_id: Any) -> CRUDState:
        target = str(entity_id)
        selected = set(self._state.selected_ids)
        if target in selected:
            selected.discard(target)
        elif target in self._state.item_ids:
            selected.add(target)
        return self._commit(selected_ids=frozenset(selected))

    def select_all(self, visible_ids: Iterable[Any] | None = None) -> CRUDState:
        candidates = self._state.item_ids if visible_ids is None else visible_ids
        visible = self._known(candidates)
        if visible and self._state.selected_ids == visible:
            return self._commit(selected_ids=frozenset())
        return self._commit(selected_ids=visible)

    def clear_selection(self) -> CRUDState:
        return self._commit(selected_ids=frozenset())

    def set_selected_ids(self, ids: Iterable[Any]) -> CRUDState:
        return self._commit(selected_ids=self._known(ids))

    def set_view_mode(self, mode: ViewMode) -> CRUDState:
        return self._commit(view_mode=mode)

    def set_modal_type(self, modal_type: ModalType | None) -> CRUDState:
        return self._commit(modal_type=modal_type)

    def set_current_item(self, item: Mapping[str, Any] | None) -> CRUDState:
        return self._commit(current_item=dict(item) if item is not None else None)

    def set_search_query(self, query: str) -> CRUDState:
        return self._commit(search_query=query, pagination=replace(self._state.pagination, page=1))

    def set_filters(self, filters: Mapping[str, Any]) -> CRUDState:
        return self._commit(filters=dict(filters), pagination=replace(self._state.pagination, page=1))

    def set_sort_config(self, config: SortConfig | Mapping[str, Any]) -> CRUDState:
        sort_config = config if isinstance(config, SortConfig) else SortConfig.model_validate(config)
        return self._commit(sort_config=sort_config, pagination=replace(self._state.pagination, page=1))

    def set_pagination(self, *, page: int | None = None, page_size: int | None = None, total: int | None = None) -> CRUDState:
        current = self._state.pagination
        return self._commit(
            pagination=PaginationState(
                page=current.page if page is None else page,
                page_size=current.page_size if page_size is None else page_size,
                total=current.total if total is None else total,
            )
        )

    def set_loading(self, loading: bool) -> CRUDState:
        return self._commit(loading=loading)

    def set_saving(self, saving: bool) -> CRUDState:
        return self._commit(saving=saving)

    def set_deleting(self, deleting: bool) -> CRUDState:
        return self._commit(deleting=deleting)

    def set_error(self, error: str | None) -> CRUDState:
        return self._commit(error=error)

    def reset(self) -> CRUDState:
        self._state = self._initial
        for listener in list(self._listeners):
            listener(self._state)
        return self._state
