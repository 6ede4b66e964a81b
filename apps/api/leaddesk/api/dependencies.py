from __future__ import annotations

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from leaddesk.context import get_correlation_id
from leaddesk.core.auth import AuthUser, get_current_user
from leaddesk.core.database import get_db
from leaddesk.platform.security.context import Identity
from leaddesk.users.service import resolve_identity


def get_current_identity(
    request: Request,
    auth_user: AuthUser = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> Identity:
    correlation_id = get_correlation_id() or getattr(request.state, "correlation_id", None)
    identity = resolve_identity(db, auth_user.sub, correlation_id=correlation_id)
    request.state.user_id = identity.user_id
    return identity
