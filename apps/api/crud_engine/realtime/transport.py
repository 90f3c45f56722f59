from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol

from crud_engine.core.events import EventHandler, InProcessEventBus, InternalEvent, event_bus


RawEventHandler = Callable[[dict[str, Any]], None]


def channel_name(organization_id: str, entity_type: str) -> str:
    return f"crud:{organization_id}:{entity_type}"


class RealtimeTransport(Protocol):
    def subscribe(self, channel_name: str, scope_filter: Mapping[str, str], on_event: RawEventHandler) -> Any: ...

    def unsubscribe(self, handle: Any) -> None: ...


@dataclass(slots=True)
class InMemorySubscriptionHandle:
    channel_name: str
    scope_filter: dict[str, str]
    handler: EventHandler = field(repr=False)


class InMemoryRealtimeTransport:
    """Real-time transport backed by the in-process event bus.

    Envelopes published with ``crud_engine.events.publish_change`` are routed
    by channel name and then matched against the subscription scope filter.
    """

    def __init__(self, bus: InProcessEventBus | None = None) -> None:
        self._bus = bus or event_bus

    def subscribe(self, channel_name: str, scope_filter: Mapping[str, str], on_event: RawEventHandler) -> InMemorySubscriptionHandle:
        expected = {key: str(value) for key, value in scope_filter.items()}

        def handler(event: InternalEvent) -> None:
            scope = event.payload.get("scope") or {}
            if any(str(scope.get(key)) != value for key, value in expected.items()):
                return
            on_event({"event_type": event.payload.get("event_type"), "payload": event.payload.get("payload") or {}})

        self._bus.subscribe(channel_name, handler)
        return InMemorySubscriptionHandle(channel_name=channel_name, scope_filter=expected, handler=handler)

    def unsubscribe(self, handle: InMemorySubscriptionHandle) -> None:
        self._bus.unsubscribe(handle.channel_name, handle.handler)

    def subscriber_count(self, channel_name: str) -> int:
        return self._bus.subscriber_count(channel_name)
