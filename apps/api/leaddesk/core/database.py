from __future__ import annotations

from collections.abc import Generator, Iterator
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from leaddesk.core.config import get_settings
from leaddesk.core.errors import InfrastructureError


class Base(DeclarativeBase):
    pass


engine = create_engine(get_settings().database_url, pool_pre_ping=True, future=True)
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)


def get_db() -> Generator[Session, None, None]:
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@contextmanager
def translate_store_errors(operation: str) -> Iterator[None]:
    """Surface record store outages as retryable infrastructure errors.

    Constraint and data errors propagate unchanged; they describe the request,
    not the store.
    """

    try:
        yield
    except (OperationalError, InterfaceError) as exc:
        raise InfrastructureError(operation, str(exc.orig if exc.orig is not None else exc)) from exc
    except PoolTimeoutError as exc:
        raise InfrastructureError(operation, str(exc)) from exc
