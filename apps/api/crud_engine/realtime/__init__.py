from crud_engine.realtime.channel import ALL_CHANGE_KINDS, RealtimeSubscription, RealtimeSyncChannel
from crud_engine.realtime.transport import (
    InMemoryRealtimeTransport,
    InMemorySubscriptionHandle,
    RealtimeTransport,
    channel_name,
)

__all__ = [
    "ALL_CHANGE_KINDS",
    "RealtimeSubscription",
    "RealtimeSyncChannel",
    "InMemoryRealtimeTransport",
    "InMemorySubscriptionHandle",
    "RealtimeTransport",
    "channel_name",
]
