from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable, Iterable
from typing import Any

from crud_engine.adapters.schemas import ChangeEvent, ChangeKind, ChangeScope
from crud_engine.core.config import get_settings
from crud_engine.core.debounce import Debouncer
from crud_engine.metrics import observe_realtime_event, observe_realtime_refresh
from crud_engine.realtime.transport import RealtimeTransport, channel_name


logger = logging.getLogger("crud_engine.realtime")

ALL_CHANGE_KINDS: tuple[ChangeKind, ...] = ("insert", "update", "delete")

ChangeHandler = Callable[[ChangeEvent], None]
UpdateCallback = Callable[[], Awaitable[None] | None]


class RealtimeSubscription:
    """One open subscription for a single (organization, entity type) scope."""

    def __init__(
        self,
        transport: RealtimeTransport,
        scope: ChangeScope,
        on_event: ChangeHandler,
        *,
        events: Iterable[ChangeKind] = ALL_CHANGE_KINDS,
    ) -> None:
        self.transport = transport
        self.scope = scope
        self.events = frozenset(events)
        self._on_event = on_event
        self._handle: Any = None

    @property
    def channel_name(self) -> str:
        return channel_name(self.scope.organization_id, self.scope.entity_type)

    @property
    def active(self) -> bool:
        return self._handle is not None

    def start(self) -> None:
        if self._handle is not None:
            return
        self._handle = self.transport.subscribe(
            self.channel_name,
            {"organization_id": self.scope.organization_id, "entity_type": self.scope.entity_type},
            self._dispatch,
        )

    def stop(self) -> None:
        handle = self._handle
        if handle is None:
            return
        self._handle = None
        self.transport.unsubscribe(handle)

    async def __aenter__(self) -> "RealtimeSubscription":
        self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self.stop()

    def _dispatch(self, raw: dict[str, Any]) -> None:
        if self._handle is None:
            return
        kind = str(raw.get("event_type") or "").lower()
        if kind not in self.events:
            return
        payload = raw.get("payload")
        self._on_event(ChangeEvent(kind=kind, scope=self.scope, payload=payload if isinstance(payload, dict) else {}))


class RealtimeSyncChannel:
    """Turns bursts of change notifications into a single debounced ``on_update``.

    The channel never touches CRUD state itself; ``on_update`` is expected to
    trigger a list reload in the owning context.
    """

    def __init__(
        self,
        transport: RealtimeTransport,
        on_update: UpdateCallback,
        *,
        debounce_ms: int | None = None,
        events: Iterable[ChangeKind] = ALL_CHANGE_KINDS,
    ) -> None:
        delay_ms = get_settings().realtime_debounce_ms if debounce_ms is None else debounce_ms
        self.transport = transport
        self.events = tuple(events)
        self._on_update = on_update
        self._debouncer: Debouncer[ChangeEvent] = Debouncer(delay_ms / 1000, self._fire, logger=logger)
        self._subscription: RealtimeSubscription | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._pending_events = 0
        self._closed = False

    @property
    def scope(self) -> ChangeScope | None:
        return self._subscription.scope if self._subscription is not None else None

    @property
    def subscribed(self) -> bool:
        return self._subscription is not None and self._subscription.active

    @property
    def refresh_pending(self) -> bool:
        return self._debouncer.pending

    @property
    def closed(self) -> bool:
        return self._closed

    def set_scope(self, organization_id: str | None, entity_type: str | None) -> None:
        if self._closed:
            raise RuntimeError("real-time channel is closed")

        new_scope = (
            ChangeScope(organization_id=organization_id, entity_type=entity_type)
            if organization_id and entity_type
            else None
        )
        if new_scope is not None and new_scope == self.scope:
            return

        self._close_subscription()
        self._debouncer.cancel()
        self._pending_events = 0
        if new_scope is None:
            return

        try:
            self._loop = asyncio.get_running_loop()
        except RuntimeError:
            self._loop = None
        subscription = RealtimeSubscription(self.transport, new_scope, self._on_event, events=self.events)
        subscription.start()
        self._subscription = subscription
        logger.info(
            "realtime.subscribed",
            extra={"entity_type": new_scope.entity_type, "scope": subscription.channel_name},
        )

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._close_subscription()
        self._debouncer.close()

    async def wait_idle(self) -> None:
        await self._debouncer.wait_idle()

    async def __aenter__(self) -> "RealtimeSyncChannel":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self.close()

    def _close_subscription(self) -> None:
        subscription = self._subscription
        if subscription is None:
            return
        self._subscription = None
        subscription.stop()
        logger.info(
            "realtime.unsubscribed",
            extra={"entity_type": subscription.scope.entity_type, "scope": subscription.channel_name},
        )

    def _on_event(self, event: ChangeEvent) -> None:
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if self._loop is not None and running is not self._loop:
            self._loop.call_soon_threadsafe(self._handle_event, event)
            return
        self._handle_event(event)

    def _handle_event(self, event: ChangeEvent) -> None:
        if self._closed or event.scope != self.scope:
            return
        observe_realtime_event(event.scope.entity_type, event.kind)
        self._pending_events += 1
        self._debouncer.trigger(event)

    async def _fire(self, event: ChangeEvent) -> None:
        count = self._pending_events
        self._pending_events = 0
        observe_realtime_refresh(event.scope.entity_type)
        logger.info(
            "realtime.refresh",
            extra={"entity_type": event.scope.entity_type, "kind": event.kind, "count": count},
        )
        result = self._on_update()
        if inspect.isawaitable(result):
            await result
