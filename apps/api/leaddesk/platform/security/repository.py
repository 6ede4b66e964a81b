from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from sqlalchemy.sql import Select

from leaddesk.platform.security.context import Identity
from leaddesk.platform.security.fls import apply_fls_read, validate_fls_write
from leaddesk.platform.security.rls import apply_rls_filter, validate_rls_read_scope


class BaseRepository:
    resource = ""

    def apply_scope_query(self, query: Select[Any], identity: Identity | None) -> Select[Any]:
        return apply_rls_filter(query, self.resource, identity)

    def apply_read_security(self, record: dict[str, Any], identity: Identity) -> dict[str, Any]:
        return apply_fls_read(self.resource, record, identity)

    def validate_read_scope(self, record: Mapping[str, Any] | object, identity: Identity | None, *, action: str = "read") -> None:
        validate_rls_read_scope(self.resource, record, identity, action=action)

    def validate_write_security(
        self,
        payload: dict[str, Any],
        identity: Identity,
        *,
        existing: Mapping[str, Any] | object | None = None,
        record_id: object | None = None,
        action: str = "write",
    ) -> None:
        if existing is not None:
            validate_rls_read_scope(self.resource, existing, identity, action=action)
        validate_fls_write(self.resource, self._normalize_write_payload(payload), identity, record_id=record_id)

    @staticmethod
    def _normalize_write_payload(payload: dict[str, Any]) -> dict[str, Any]:
        return payload
