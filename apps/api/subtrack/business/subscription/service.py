from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date, datetime, timezone

from sqlalchemy.orm import Session

from subtrack.business.subscription.dates import month_start
from subtrack.business.subscription.errors import (
    RecordNotFoundError,
    StorageError,
    SubscriptionNotFoundError,
    SubscriptionOperationError,
    SubscriptionValidationError,
    ValidationErrorKind,
)
from subtrack.business.subscription.repository import (
    CostFilter,
    ListFilter,
    SqlAlchemySubscriptionRepository,
    SubscriptionRepository,
)
from subtrack.business.subscription.schemas import (
    SubscriptionCreate,
    SubscriptionRead,
    SubscriptionUpdate,
    TotalCostQuery,
)
from subtrack.core.deadline import Deadline, OperationCancelledError
from subtrack.metrics import observe_subscription_operation, observe_total_cost_duration
from subtrack.otel import get_tracer


logger = logging.getLogger("subtrack.subscriptions")
tracer = get_tracer("subtrack.subscriptions")

NIL_USER_ID = uuid.UUID(int=0)


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


@dataclass(slots=True)
class SubscriptionService:
    repository: SubscriptionRepository = SqlAlchemySubscriptionRepository()
    today: Callable[[], date] = utc_today

    def create(self, session: Session, payload: SubscriptionCreate, deadline: Deadline | None = None) -> SubscriptionRead:
        candidate = payload.model_copy(
            update={
                "service_name": payload.service_name.strip(),
                "start_date": month_start(payload.start_date),
                "end_date": month_start(payload.end_date) if payload.end_date is not None else None,
            }
        )
        with self._operation("create"):
            self._validate(candidate)
            created = self.repository.with_transaction(
                session,
                lambda tx: self.repository.create(tx, candidate, deadline),
            )

        logger.info("subscription.created", extra={"subscription_id": created.id})
        return created

    def get(self, session: Session, subscription_id: int, deadline: Deadline | None = None) -> SubscriptionRead:
        with self._operation("get", subscription_id):
            return self.repository.get_by_id(session, subscription_id, deadline)

    def update(
        self,
        session: Session,
        subscription_id: int,
        payload: SubscriptionUpdate,
        deadline: Deadline | None = None,
    ) -> SubscriptionRead:
        def apply(tx: Session) -> SubscriptionRead:
            existing = self.repository.get_by_id(tx, subscription_id, deadline)
            merged = self._merge(existing, payload)
            self._validate(merged)
            return self.repository.update(tx, merged, deadline)

        with self._operation("update", subscription_id):
            updated = self.repository.with_transaction(session, apply)

        logger.info("subscription.updated", extra={"subscription_id": subscription_id})
        return updated

    def delete(self, session: Session, subscription_id: int, deadline: Deadline | None = None) -> None:
        with self._operation("delete", subscription_id):
            self.repository.with_transaction(
                session,
                lambda tx: self.repository.delete(tx, subscription_id, deadline),
            )

        logger.info("subscription.deleted", extra={"subscription_id": subscription_id})

    def list_subscriptions(
        self,
        session: Session,
        *,
        user_id: uuid.UUID | None = None,
        service_name: str | None = None,
        deadline: Deadline | None = None,
    ) -> list[SubscriptionRead]:
        with self._operation("list"):
            return self.repository.get_all(session, ListFilter(user_id=user_id, service_name=service_name), deadline)

    def total_cost(self, session: Session, query: TotalCostQuery, deadline: Deadline | None = None) -> int:
        """Sum monthly charges in ``[start_date, end_date]``.

        ``end_date`` is clamped to today; ``start_date`` is left as given, so a
        start in the future is rejected as an invalid range.
        """
        end_date = min(query.end_date, self.today())
        filter_ = CostFilter(
            start_date=query.start_date,
            end_date=end_date,
            user_id=query.user_id,
            service_name=query.service_name,
        )

        started = time.perf_counter()
        with self._operation("total cost"), tracer.start_as_current_span("subscription.total_cost") as span:
            if end_date < query.start_date:
                raise SubscriptionValidationError(ValidationErrorKind.INVALID_DATE_RANGE)
            span.set_attribute("subscription.period_start", filter_.start_date.isoformat())
            span.set_attribute("subscription.period_end", filter_.end_date.isoformat())
            total = self.repository.get_total_cost(session, filter_, deadline)
            span.set_attribute("subscription.total_cost", total)

        observe_total_cost_duration(time.perf_counter() - started)
        logger.debug("subscription.total_cost", extra={"total_cost": total})
        return total

    @staticmethod
    def _validate(candidate: SubscriptionCreate | SubscriptionRead) -> None:
        if not candidate.service_name or not candidate.service_name.strip():
            raise SubscriptionValidationError(ValidationErrorKind.INVALID_SERVICE_NAME)
        if candidate.price <= 0:
            raise SubscriptionValidationError(ValidationErrorKind.INVALID_PRICE)
        if candidate.user_id == NIL_USER_ID:
            raise SubscriptionValidationError(ValidationErrorKind.INVALID_USER_ID)
        if candidate.end_date is not None and candidate.end_date < candidate.start_date:
            raise SubscriptionValidationError(ValidationErrorKind.INVALID_DATE_RANGE)

    @staticmethod
    def _merge(existing: SubscriptionRead, payload: SubscriptionUpdate) -> SubscriptionRead:
        changes: dict[str, object] = {}
        if payload.service_name is not None:
            changes["service_name"] = payload.service_name.strip()
        if payload.price is not None:
            changes["price"] = payload.price
        if payload.user_id is not None:
            changes["user_id"] = payload.user_id
        if payload.start_date is not None:
            changes["start_date"] = month_start(payload.start_date)
        if payload.clear_end_date:
            changes["end_date"] = None
        elif payload.end_date is not None:
            changes["end_date"] = month_start(payload.end_date)
        return existing.model_copy(update=changes)

    @contextmanager
    def _operation(self, operation: str, subscription_id: int | None = None) -> Iterator[None]:
        try:
            yield
        except SubscriptionValidationError as exc:
            observe_subscription_operation(operation, "invalid")
            logger.debug(
                "subscription.validation_failed",
                extra={"operation": operation, "subscription_id": subscription_id, "error_kind": exc.kind.value},
            )
            raise
        except RecordNotFoundError as exc:
            observe_subscription_operation(operation, "not_found")
            raise SubscriptionNotFoundError(exc.subscription_id) from exc
        except OperationCancelledError as exc:
            observe_subscription_operation(operation, "cancelled")
            logger.warning(
                "subscription.cancelled",
                extra={"operation": operation, "subscription_id": subscription_id, "error": exc.reason},
            )
            raise
        except StorageError as exc:
            observe_subscription_operation(operation, "error")
            logger.error(
                "subscription.storage_failed",
                exc_info=True,
                extra={"operation": operation, "subscription_id": subscription_id, "error": str(exc)},
            )
            raise SubscriptionOperationError(operation) from exc
        else:
            observe_subscription_operation(operation, "ok")


subscription_service = SubscriptionService()
