from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

from leaddesk.context import get_correlation_id
from leaddesk.core.events import event_bus

published_events: list[dict[str, Any]] = []


def publish(envelope: dict[str, Any]) -> None:
    if envelope.get("correlation_id") is None:
        envelope["correlation_id"] = get_correlation_id()
    envelope.setdefault("event_id", str(uuid.uuid4()))
    envelope.setdefault("occurred_at", datetime.now(timezone.utc).isoformat())
    envelope.setdefault("version", 1)

    published_events.append(envelope)
    event_type = envelope.get("event_type")
    if isinstance(event_type, str) and event_type:
        event_bus.publish(event_type, envelope)
