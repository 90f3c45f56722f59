from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

from crud_engine.adapters.schemas import ChangeKind
from crud_engine.context import get_correlation_id
from crud_engine.core.events import InProcessEventBus, event_bus
from crud_engine.realtime.transport import channel_name

published_events: list[dict[str, Any]] = []


def publish_change(
    organization_id: str,
    entity_type: str,
    kind: ChangeKind,
    payload: dict[str, Any] | None = None,
    *,
    bus: InProcessEventBus | None = None,
) -> dict[str, Any]:
    envelope: dict[str, Any] = {
        "event_id": str(uuid.uuid4()),
        "event_type": kind.upper(),
        "occurred_at": datetime.now(timezone.utc).isoformat(),
        "correlation_id": get_correlation_id(),
        "scope": {"organization_id": organization_id, "entity_type": entity_type},
        "payload": payload or {},
    }
    published_events.append(envelope)
    (bus or event_bus).publish(channel_name(organization_id, entity_type), envelope)
    return envelope
