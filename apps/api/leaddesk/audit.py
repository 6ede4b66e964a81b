from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, TypedDict

from leaddesk.context import get_correlation_id


class AuditEntry(TypedDict):
    id: str
    actor_user_id: str
    entity_type: str
    entity_id: str
    action: str
    before: dict[str, Any] | None
    after: dict[str, Any] | None
    changed_fields: list[str]
    correlation_id: str | None
    occurred_at: str


audit_entries: list[AuditEntry] = []


def _changed_fields(before: dict[str, Any] | None, after: dict[str, Any] | None) -> list[str]:
    if before is None or after is None:
        return sorted((before or after or {}).keys())
    return sorted(key for key in before.keys() | after.keys() if before.get(key) != after.get(key))


def record(
    actor_user_id: str,
    entity_type: str,
    entity_id: str,
    action: str,
    before: dict[str, Any] | None,
    after: dict[str, Any] | None,
    correlation_id: str | None = None,
) -> AuditEntry:
    """Append one entry to the in-process trail of lead, expense, user and security events."""

    entry: AuditEntry = {
        "id": str(uuid.uuid4()),
        "actor_user_id": actor_user_id,
        "entity_type": entity_type,
        "entity_id": entity_id,
        "action": action,
        "before": before,
        "after": after,
        "changed_fields": _changed_fields(before, after),
        "correlation_id": correlation_id or get_correlation_id(),
        "occurred_at": datetime.now(timezone.utc).isoformat(),
    }
    audit_entries.append(entry)
    return entry


def entries_for(entity_type: str, entity_id: str | None = None) -> list[AuditEntry]:
    return [
        entry
        for entry in audit_entries
        if entry["entity_type"] == entity_type and (entity_id is None or entry["entity_id"] == entity_id)
    ]
