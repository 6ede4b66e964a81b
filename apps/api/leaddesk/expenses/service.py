from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date

from sqlalchemy.orm import Session

from leaddesk import audit, events
from leaddesk.core.database import translate_store_errors
from leaddesk.core.errors import InvalidRequestError
from leaddesk.expenses.models import Expense, ExpenseCategory
from leaddesk.expenses.repositories import ExpenseRepository
from leaddesk.expenses.schemas import ExpenseCreate, ExpenseRead
from leaddesk.platform.security.context import Identity
from leaddesk.platform.security.policies import EXPENSE_RESOURCE, ResourceAction
from leaddesk.platform.security.rbac import require_resource_action


logger = logging.getLogger("leaddesk.expenses")

AUTOMATION_ACTOR = "automation"


@dataclass(slots=True)
class ExpenseService:
    repository: ExpenseRepository = ExpenseRepository()
    entity_type = "expenses.expense"

    def create_expense(self, session: Session, identity: Identity | None, dto: ExpenseCreate) -> ExpenseRead:
        resolved = require_resource_action(EXPENSE_RESOURCE, ResourceAction.CREATE, identity)
        return self._persist(session, dto, actor=resolved.user_id, correlation_id=resolved.correlation_id)

    def create_expense_from_automation(
        self,
        session: Session,
        dto: ExpenseCreate,
        *,
        correlation_id: str | None = None,
    ) -> ExpenseRead:
        """Create path for callers authenticated by the shared API key instead of a user token."""

        return self._persist(session, dto, actor=AUTOMATION_ACTOR, correlation_id=correlation_id)

    def list_expenses(
        self,
        session: Session,
        identity: Identity | None,
        *,
        date_from: date | None = None,
        date_to: date | None = None,
        category: ExpenseCategory | None = None,
    ) -> list[ExpenseRead]:
        require_resource_action(EXPENSE_RESOURCE, ResourceAction.READ, identity)
        if date_from is not None and date_to is not None and date_from > date_to:
            raise InvalidRequestError("date_from must not be after date_to")
        with translate_store_errors("expenses.list"):
            expenses = self.repository.list_expenses(session, date_from=date_from, date_to=date_to, category=category)
        return [ExpenseRead.model_validate(expense) for expense in expenses]

    def _persist(self, session: Session, dto: ExpenseCreate, *, actor: str, correlation_id: str | None) -> ExpenseRead:
        expense = Expense(
            expense_date=dto.expense_date,
            category=dto.category.value,
            description=dto.description.strip(),
            total_amount=dto.total_amount,
            online_amount=dto.online_amount,
            field_amount=dto.field_amount,
            notes=dto.notes,
            created_by=actor,
        )
        with translate_store_errors("expenses.create"):
            session.add(expense)
            session.flush()
            created = ExpenseRead.model_validate(expense)
            audit.record(
                actor_user_id=actor,
                entity_type=self.entity_type,
                entity_id=str(expense.id),
                action="create",
                before=None,
                after=created.model_dump(mode="json"),
                correlation_id=correlation_id,
            )
            session.commit()

        events.publish(
            {
                "event_type": "expenses.expense.created",
                "collection": "expenses",
                "actor_user_id": actor,
                "correlation_id": correlation_id,
                "payload": {"expense_id": created.id, "expense_date": created.expense_date.isoformat()},
            }
        )
        logger.info("expenses.created", extra={"expense_id": created.id, "user_id": actor})
        return created


expense_service = ExpenseService()
