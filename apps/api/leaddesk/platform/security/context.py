from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum


class Role(StrEnum):
    ADMIN = "admin"
    ACCOUNT_MANAGER = "account_manager"
    FIELD_REP = "field_rep"
    INSTALLER = "installer"


@dataclass(frozen=True, slots=True)
class Identity:
    """Verified caller identity used by scope predicates and field policies.

    ``display_name`` is the scoping key: it is compared verbatim with the
    attribution fields (account manager, field rep, installer) on a lead.
    """

    user_id: str
    role: Role
    display_name: str
    correlation_id: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN
