from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from leaddesk import audit, events
from leaddesk.core.database import translate_store_errors
from leaddesk.core.errors import ConflictError, InvalidRequestError, NotFoundError
from leaddesk.platform.security.context import Identity, Role
from leaddesk.platform.security.errors import UnauthenticatedError
from leaddesk.platform.security.policies import USER_RESOURCE, ResourceAction
from leaddesk.platform.security.rbac import require_resource_action
from leaddesk.users.models import UserAccount, utcnow
from leaddesk.users.schemas import UserCreate, UserRead, UserUpdate


logger = logging.getLogger("leaddesk.users")


def _parse_user_id(raw: str | uuid.UUID) -> uuid.UUID | None:
    if isinstance(raw, uuid.UUID):
        return raw
    try:
        return uuid.UUID(str(raw))
    except ValueError:
        return None


def resolve_identity(session: Session, user_id: str | uuid.UUID, *, correlation_id: str | None = None) -> Identity:
    """Build the request identity from the stored account. Role and display name come from the row only."""

    parsed = _parse_user_id(user_id)
    if parsed is None:
        raise UnauthenticatedError("Unknown user")
    with translate_store_errors("users.resolve_identity"):
        account = session.get(UserAccount, parsed)
    if account is None or not account.is_active:
        raise UnauthenticatedError("Unknown or inactive user")
    return Identity(
        user_id=str(account.id),
        role=Role(account.role),
        display_name=account.full_name,
        correlation_id=correlation_id,
    )


@dataclass(slots=True)
class UserService:
    entity_type = "users.account"

    def list_users(self, session: Session, identity: Identity | None, *, include_inactive: bool = True) -> list[UserRead]:
        require_resource_action(USER_RESOURCE, ResourceAction.READ, identity)
        stmt = select(UserAccount)
        if not include_inactive:
            stmt = stmt.where(UserAccount.is_active.is_(True))
        with translate_store_errors("users.list"):
            accounts = session.scalars(stmt.order_by(UserAccount.full_name.asc(), UserAccount.id.asc())).all()
        return [UserRead.model_validate(account) for account in accounts]

    def create_user(self, session: Session, identity: Identity | None, dto: UserCreate) -> UserRead:
        resolved = require_resource_action(USER_RESOURCE, ResourceAction.CREATE, identity)
        email = str(dto.email).strip().lower()

        with translate_store_errors("users.create"):
            existing = session.scalar(select(UserAccount.id).where(func.lower(UserAccount.email) == email))
            if existing is not None:
                raise ConflictError(f"A user with email '{email}' already exists")

            account = UserAccount(
                email=email,
                full_name=dto.full_name.strip(),
                role=dto.role.value,
                account_manager_name=dto.account_manager_name,
                is_active=True,
                created_by=_parse_user_id(resolved.user_id),
            )
            session.add(account)
            try:
                session.flush()
            except IntegrityError as exc:
                session.rollback()
                raise ConflictError(f"A user with email '{email}' already exists") from exc

            created = UserRead.model_validate(account)
            self._audit(resolved, created, action="create", before=None)
            session.commit()

        self._publish("users.account.created", resolved, created)
        logger.info("users.created", extra={"user_id": str(created.id), "role": created.role.value})
        return created

    def update_user(self, session: Session, identity: Identity | None, user_id: uuid.UUID, dto: UserUpdate) -> UserRead:
        resolved = require_resource_action(USER_RESOURCE, ResourceAction.UPDATE, identity)
        account = self._get_account(session, user_id)
        changes = dto.model_dump(exclude_unset=True)

        if changes.get("is_active") is False and str(account.id) == resolved.user_id:
            raise InvalidRequestError("Administrators cannot deactivate their own account")
        if "role" in changes and changes["role"] is None:
            raise InvalidRequestError("role cannot be cleared")

        next_role = Role(changes.get("role") or account.role)
        next_manager = changes.get("account_manager_name", account.account_manager_name)
        if next_role == Role.FIELD_REP:
            if not (next_manager or "").strip():
                raise InvalidRequestError(
                    "account_manager_name is required for field reps",
                    details={"field": "account_manager_name"},
                )
        else:
            next_manager = None

        before = UserRead.model_validate(account)
        if changes.get("full_name") is not None:
            account.full_name = changes["full_name"].strip()
        if changes.get("is_active") is not None:
            account.is_active = changes["is_active"]
        account.role = next_role.value
        account.account_manager_name = next_manager
        account.updated_at = utcnow()

        with translate_store_errors("users.update"):
            session.flush()
            updated = UserRead.model_validate(account)
            self._audit(resolved, updated, action="update", before=before)
            session.commit()

        self._publish("users.account.updated", resolved, updated)
        logger.info("users.updated", extra={"user_id": str(updated.id), "fields": sorted(changes)})
        return updated

    def deactivate_user(self, session: Session, identity: Identity | None, user_id: uuid.UUID) -> UserRead:
        resolved = require_resource_action(USER_RESOURCE, ResourceAction.DELETE, identity)
        if str(user_id) == resolved.user_id:
            raise InvalidRequestError("Administrators cannot deactivate their own account")
        return self.update_user(session, resolved, user_id, UserUpdate(is_active=False))

    @staticmethod
    def _get_account(session: Session, user_id: uuid.UUID) -> UserAccount:
        with translate_store_errors("users.get"):
            account = session.get(UserAccount, user_id)
        if account is None:
            raise NotFoundError("user", user_id)
        return account

    def _audit(self, identity: Identity, account: UserRead, *, action: str, before: UserRead | None) -> None:
        audit.record(
            actor_user_id=identity.user_id,
            entity_type=self.entity_type,
            entity_id=str(account.id),
            action=action,
            before=before.model_dump(mode="json") if before is not None else None,
            after=account.model_dump(mode="json"),
            correlation_id=identity.correlation_id,
        )

    @staticmethod
    def _publish(event_type: str, identity: Identity, account: UserRead, **extra: Any) -> None:
        events.publish(
            {
                "event_type": event_type,
                "collection": "users",
                "actor_user_id": identity.user_id,
                "correlation_id": identity.correlation_id,
                "payload": {"user_id": str(account.id), "role": account.role.value, **extra},
            }
        )


user_service = UserService()
