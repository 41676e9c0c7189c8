from __future__ import annotations

import uuid
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date
from typing import Protocol, TypeVar

from sqlalchemy import Select, delete, or_, select, text
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.orm import Session

from subtrack.business.subscription.cost import total_cost
from subtrack.business.subscription.errors import RecordNotFoundError, StorageError
from subtrack.business.subscription.models import Subscription, utcnow
from subtrack.business.subscription.schemas import SubscriptionCreate, SubscriptionRead
from subtrack.core.deadline import Deadline, OperationCancelledError


T = TypeVar("T")

_UNIT_OF_WORK_KEY = "subtrack.unit_of_work"
_QUERY_CANCELED_SQLSTATE = "57014"


@dataclass(frozen=True, slots=True)
class ListFilter:
    user_id: uuid.UUID | None = None
    service_name: str | None = None


@dataclass(frozen=True, slots=True)
class CostFilter:
    start_date: date
    end_date: date
    user_id: uuid.UUID | None = None
    service_name: str | None = None


class SubscriptionRepository(Protocol):
    """Persistence contract the service depends on.

    ``get_by_id``, ``update`` and ``delete`` raise ``RecordNotFoundError`` for a
    missing row; every other storage failure surfaces as ``StorageError``.
    """

    def create(self, session: Session, payload: SubscriptionCreate, deadline: Deadline | None = None) -> SubscriptionRead: ...

    def get_by_id(self, session: Session, subscription_id: int, deadline: Deadline | None = None) -> SubscriptionRead: ...

    def update(self, session: Session, subscription: SubscriptionRead, deadline: Deadline | None = None) -> SubscriptionRead: ...

    def delete(self, session: Session, subscription_id: int, deadline: Deadline | None = None) -> None: ...

    def get_all(self, session: Session, filter_: ListFilter, deadline: Deadline | None = None) -> list[SubscriptionRead]: ...

    def get_total_cost(self, session: Session, filter_: CostFilter, deadline: Deadline | None = None) -> int: ...

    def with_transaction(self, session: Session, fn: Callable[[Session], T]) -> T: ...


class SqlAlchemySubscriptionRepository:
    def create(self, session: Session, payload: SubscriptionCreate, deadline: Deadline | None = None) -> SubscriptionRead:
        row = Subscription(
            service_name=payload.service_name,
            price=payload.price,
            user_id=payload.user_id,
            start_date=payload.start_date,
            end_date=payload.end_date,
        )
        with self._statement_scope(session, "create", deadline):
            session.add(row)
            session.flush()
            session.refresh(row)
        return SubscriptionRead.model_validate(row)

    def get_by_id(self, session: Session, subscription_id: int, deadline: Deadline | None = None) -> SubscriptionRead:
        with self._statement_scope(session, "get by id", deadline):
            row = session.get(Subscription, subscription_id)
        if row is None:
            raise RecordNotFoundError(subscription_id)
        return SubscriptionRead.model_validate(row)

    def update(self, session: Session, subscription: SubscriptionRead, deadline: Deadline | None = None) -> SubscriptionRead:
        with self._statement_scope(session, "update", deadline):
            row = session.get(Subscription, subscription.id)
            if row is None:
                raise RecordNotFoundError(subscription.id)
            row.service_name = subscription.service_name
            row.price = subscription.price
            row.user_id = subscription.user_id
            row.start_date = subscription.start_date
            row.end_date = subscription.end_date
            row.updated_at = utcnow()
            session.flush()
            session.refresh(row)
        return SubscriptionRead.model_validate(row)

    def delete(self, session: Session, subscription_id: int, deadline: Deadline | None = None) -> None:
        with self._statement_scope(session, "delete", deadline):
            result = session.execute(delete(Subscription).where(Subscription.id == subscription_id))
        if result.rowcount == 0:
            raise RecordNotFoundError(subscription_id)

    def get_all(self, session: Session, filter_: ListFilter, deadline: Deadline | None = None) -> list[SubscriptionRead]:
        stmt = self._apply_filters(select(Subscription), filter_.user_id, filter_.service_name)
        stmt = stmt.order_by(Subscription.created_at.desc(), Subscription.id.desc())
        with self._statement_scope(session, "get all", deadline):
            rows = session.scalars(stmt).all()
        return [SubscriptionRead.model_validate(row) for row in rows]

    def get_total_cost(self, session: Session, filter_: CostFilter, deadline: Deadline | None = None) -> int:
        stmt = select(Subscription).where(
            Subscription.start_date <= filter_.end_date,
            or_(Subscription.end_date.is_(None), Subscription.end_date >= filter_.start_date),
        )
        stmt = self._apply_filters(stmt, filter_.user_id, filter_.service_name)
        with self._statement_scope(session, "calculating total cost", deadline):
            rows = session.scalars(stmt).all()
        return total_cost(rows, filter_.start_date, filter_.end_date)

    def with_transaction(self, session: Session, fn: Callable[[Session], T]) -> T:
        """Run ``fn`` as one unit of work on ``session``.

        Commits when ``fn`` returns, rolls back and re-raises on any exception.
        A call made while the session already runs a unit of work joins it.
        """
        if session.info.get(_UNIT_OF_WORK_KEY):
            return fn(session)

        session.info[_UNIT_OF_WORK_KEY] = True
        try:
            result = fn(session)
            with self._statement_scope(session, "commit", None):
                session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.info.pop(_UNIT_OF_WORK_KEY, None)
        return result

    @staticmethod
    def _apply_filters(
        stmt: Select[tuple[Subscription]],
        user_id: uuid.UUID | None,
        service_name: str | None,
    ) -> Select[tuple[Subscription]]:
        if user_id is not None:
            stmt = stmt.where(Subscription.user_id == user_id)
        if service_name is not None:
            stmt = stmt.where(Subscription.service_name == service_name)
        return stmt

    @contextmanager
    def _statement_scope(self, session: Session, operation: str, deadline: Deadline | None) -> Iterator[None]:
        if deadline is not None:
            deadline.check()
        try:
            if deadline is not None:
                self._apply_statement_timeout(session, deadline)
            yield
        except SQLAlchemyError as exc:
            if _is_query_cancelled(exc):
                raise OperationCancelledError("statement cancelled by database") from exc
            raise StorageError(operation, str(exc)) from exc

    @staticmethod
    def _apply_statement_timeout(session: Session, deadline: Deadline) -> None:
        remaining = deadline.remaining()
        if remaining is None or session.get_bind().dialect.name != "postgresql":
            return
        timeout_ms = max(1, int(remaining * 1000))
        session.execute(text(f"SET LOCAL statement_timeout = {timeout_ms}"))


def _is_query_cancelled(exc: SQLAlchemyError) -> bool:
    if not isinstance(exc, DBAPIError):
        return False
    return getattr(exc.orig, "sqlstate", None) == _QUERY_CANCELED_SQLSTATE
