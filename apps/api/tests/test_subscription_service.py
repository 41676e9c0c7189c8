from __future__ import annotations

import time
import uuid
from collections.abc import Generator
from datetime import date

import pytest
from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from subtrack.business.subscription.errors import (
    StorageError,
    SubscriptionNotFoundError,
    SubscriptionOperationError,
    SubscriptionValidationError,
    ValidationErrorKind,
)
from subtrack.business.subscription.models import Subscription
from subtrack.business.subscription.repository import SqlAlchemySubscriptionRepository
from subtrack.business.subscription.schemas import (
    SubscriptionCreate,
    SubscriptionRead,
    SubscriptionUpdate,
    TotalCostQuery,
)
from subtrack.business.subscription.service import SubscriptionService
from subtrack.core.database import Base
from subtrack.core.deadline import Deadline, OperationCancelledError


USER_A = uuid.UUID("6f1c2b8e-0d3a-4a52-9b7e-2d1f7c3a9e10")
USER_B = uuid.UUID("a4e7d2c1-5b6f-4e3a-8c9d-0f1e2d3c4b5a")


@pytest.fixture()
def db_session() -> Generator[Session, None, None]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


def _service(today: date = date(2025, 1, 15)) -> SubscriptionService:
    return SubscriptionService(repository=SqlAlchemySubscriptionRepository(), today=lambda: today)


def _create(service: SubscriptionService, session: Session, **overrides: object) -> SubscriptionRead:
    data: dict[str, object] = {
        "service_name": "Yandex Plus",
        "price": 400,
        "user_id": USER_A,
        "start_date": date(2024, 1, 1),
        "end_date": None,
    }
    data.update(overrides)
    return service.create(session, SubscriptionCreate(**data))


def _row_count(session: Session) -> int:
    return session.scalar(select(func.count()).select_from(Subscription)) or 0


def test_create_assigns_id_and_timestamps(db_session: Session) -> None:
    service = _service()

    first = _create(service, db_session)
    second = _create(service, db_session, service_name="Netflix")

    assert first.id > 0
    assert second.id > first.id
    assert first.created_at is not None
    assert first.updated_at is not None
    assert _row_count(db_session) == 2


def test_create_normalizes_dates_and_trims_service_name(db_session: Session) -> None:
    service = _service()

    created = _create(
        service,
        db_session,
        service_name="  Spotify  ",
        start_date=date(2024, 3, 17),
        end_date=date(2024, 8, 30),
    )

    assert created.service_name == "Spotify"
    assert created.start_date == date(2024, 3, 1)
    assert created.end_date == date(2024, 8, 1)


@pytest.mark.parametrize(
    ("overrides", "kind"),
    [
        ({"service_name": "   "}, ValidationErrorKind.INVALID_SERVICE_NAME),
        ({"price": 0}, ValidationErrorKind.INVALID_PRICE),
        ({"price": -100}, ValidationErrorKind.INVALID_PRICE),
        ({"user_id": uuid.UUID(int=0)}, ValidationErrorKind.INVALID_USER_ID),
        ({"start_date": date(2024, 6, 1), "end_date": date(2024, 5, 1)}, ValidationErrorKind.INVALID_DATE_RANGE),
    ],
)
def test_create_rejects_invalid_input_without_writing(
    db_session: Session,
    overrides: dict[str, object],
    kind: ValidationErrorKind,
) -> None:
    service = _service()

    with pytest.raises(SubscriptionValidationError) as exc_info:
        _create(service, db_session, **overrides)

    assert exc_info.value.kind is kind
    assert _row_count(db_session) == 0


def test_create_checks_service_name_before_price(db_session: Session) -> None:
    service = _service()

    with pytest.raises(SubscriptionValidationError) as exc_info:
        _create(service, db_session, service_name="", price=0)
    assert exc_info.value.kind is ValidationErrorKind.INVALID_SERVICE_NAME


def test_get_returns_row_and_missing_id_is_not_found(db_session: Session) -> None:
    service = _service()
    created = _create(service, db_session)

    assert service.get(db_session, created.id) == created

    with pytest.raises(SubscriptionNotFoundError) as exc_info:
        service.get(db_session, created.id + 100)
    assert exc_info.value.subscription_id == created.id + 100


def test_update_merges_only_present_fields(db_session: Session) -> None:
    service = _service()
    created = _create(service, db_session, end_date=date(2024, 6, 1))

    updated = service.update(db_session, created.id, SubscriptionUpdate(price=550))

    assert updated.price == 550
    assert updated.service_name == created.service_name
    assert updated.user_id == created.user_id
    assert updated.start_date == created.start_date
    assert updated.end_date == date(2024, 6, 1)
    assert updated.updated_at >= created.updated_at
    assert service.get(db_session, created.id).price == 550


def test_update_clear_end_date_wins_over_supplied_end_date(db_session: Session) -> None:
    service = _service()
    created = _create(service, db_session, end_date=date(2024, 6, 1))

    updated = service.update(
        db_session,
        created.id,
        SubscriptionUpdate(end_date=date(2024, 9, 1), clear_end_date=True),
    )

    assert updated.end_date is None
    assert service.get(db_session, created.id).end_date is None


def test_update_sets_end_date_when_not_cleared(db_session: Session) -> None:
    service = _service()
    created = _create(service, db_session)

    updated = service.update(db_session, created.id, SubscriptionUpdate(end_date=date(2024, 9, 20)))

    assert updated.end_date == date(2024, 9, 1)


def test_update_revalidates_merged_row_and_leaves_stored_row_unchanged(db_session: Session) -> None:
    service = _service()
    created = _create(service, db_session, end_date=date(2024, 6, 1))

    with pytest.raises(SubscriptionValidationError) as exc_info:
        service.update(db_session, created.id, SubscriptionUpdate(start_date=date(2024, 9, 1)))
    assert exc_info.value.kind is ValidationErrorKind.INVALID_DATE_RANGE

    with pytest.raises(SubscriptionValidationError) as exc_info:
        service.update(db_session, created.id, SubscriptionUpdate(service_name="Kinopoisk", price=0))
    assert exc_info.value.kind is ValidationErrorKind.INVALID_PRICE

    stored = service.get(db_session, created.id)
    assert stored.start_date == date(2024, 1, 1)
    assert stored.service_name == "Yandex Plus"
    assert stored.price == 400


def test_update_rejects_nil_user_id(db_session: Session) -> None:
    service = _service()
    created = _create(service, db_session)

    with pytest.raises(SubscriptionValidationError) as exc_info:
        service.update(db_session, created.id, SubscriptionUpdate(user_id=uuid.UUID(int=0)))
    assert exc_info.value.kind is ValidationErrorKind.INVALID_USER_ID
    assert service.get(db_session, created.id).user_id == USER_A


def test_update_missing_id_is_not_found(db_session: Session) -> None:
    service = _service()

    with pytest.raises(SubscriptionNotFoundError):
        service.update(db_session, 42, SubscriptionUpdate(price=10))


def test_delete_removes_row_and_second_delete_is_not_found(db_session: Session) -> None:
    service = _service()
    created = _create(service, db_session)

    service.delete(db_session, created.id)
    assert _row_count(db_session) == 0

    with pytest.raises(SubscriptionNotFoundError):
        service.delete(db_session, created.id)
    with pytest.raises(SubscriptionNotFoundError):
        service.get(db_session, created.id)


def test_list_returns_newest_first_and_applies_filters(db_session: Session) -> None:
    service = _service()
    first = _create(service, db_session, service_name="Netflix", user_id=USER_A)
    second = _create(service, db_session, service_name="Spotify", user_id=USER_B)
    third = _create(service, db_session, service_name="Netflix", user_id=USER_B)

    everything = service.list_subscriptions(db_session)
    assert [item.id for item in everything] == [third.id, second.id, first.id]

    by_user = service.list_subscriptions(db_session, user_id=USER_B)
    assert [item.id for item in by_user] == [third.id, second.id]

    by_service = service.list_subscriptions(db_session, service_name="Netflix")
    assert [item.id for item in by_service] == [third.id, first.id]

    both = service.list_subscriptions(db_session, user_id=USER_A, service_name="Netflix")
    assert [item.id for item in both] == [first.id]

    assert service.list_subscriptions(db_session, service_name="Okko") == []


def test_total_cost_for_closed_subscription_windows(db_session: Session) -> None:
    service = _service()
    _create(service, db_session, price=100, start_date=date(2024, 1, 1), end_date=date(2024, 6, 1))

    def total(start: date, end: date) -> int:
        return service.total_cost(
            db_session,
            TotalCostQuery(start_date=start, end_date=end, user_id=USER_A, service_name="Yandex Plus"),
        )

    assert total(date(2024, 1, 1), date(2024, 6, 1)) == 600
    assert total(date(2024, 3, 1), date(2024, 4, 1)) == 200
    assert total(date(2023, 1, 1), date(2023, 12, 1)) == 0
    assert total(date(2024, 7, 1), date(2024, 12, 1)) == 0


def test_total_cost_for_open_ended_subscription(db_session: Session) -> None:
    service = _service()
    _create(service, db_session, price=50, start_date=date(2024, 1, 1))

    total = service.total_cost(
        db_session,
        TotalCostQuery(start_date=date(2024, 1, 1), end_date=date(2024, 3, 1)),
    )
    assert total == 150


def test_total_cost_only_counts_matching_filters(db_session: Session) -> None:
    service = _service()
    _create(service, db_session, service_name="Netflix", price=100, user_id=USER_A, end_date=date(2024, 3, 1))
    _create(service, db_session, service_name="Netflix", price=10, user_id=USER_B, end_date=date(2024, 3, 1))
    _create(service, db_session, service_name="Spotify", price=1, user_id=USER_A, end_date=date(2024, 3, 1))

    window = {"start_date": date(2024, 1, 1), "end_date": date(2024, 12, 1)}
    assert service.total_cost(db_session, TotalCostQuery(**window)) == 333
    assert service.total_cost(db_session, TotalCostQuery(**window, user_id=USER_A)) == 303
    assert service.total_cost(db_session, TotalCostQuery(**window, service_name="Netflix")) == 330
    assert service.total_cost(db_session, TotalCostQuery(**window, user_id=USER_B, service_name="Netflix")) == 30


def test_total_cost_clamps_future_end_date_to_today(db_session: Session) -> None:
    service = _service(today=date(2024, 3, 10))
    _create(service, db_session, price=50, start_date=date(2024, 1, 1))

    total = service.total_cost(
        db_session,
        TotalCostQuery(start_date=date(2024, 1, 1), end_date=date(2024, 12, 1)),
    )
    assert total == 150


def test_total_cost_rejects_start_after_clamped_end(db_session: Session) -> None:
    service = _service(today=date(2024, 3, 10))
    _create(service, db_session, price=50, start_date=date(2024, 1, 1))

    with pytest.raises(SubscriptionValidationError) as exc_info:
        service.total_cost(
            db_session,
            TotalCostQuery(start_date=date(2024, 5, 1), end_date=date(2024, 12, 1)),
        )
    assert exc_info.value.kind is ValidationErrorKind.INVALID_DATE_RANGE


def test_total_cost_rejects_end_before_start(db_session: Session) -> None:
    service = _service()

    with pytest.raises(SubscriptionValidationError) as exc_info:
        service.total_cost(
            db_session,
            TotalCostQuery(start_date=date(2024, 6, 1), end_date=date(2024, 1, 1)),
        )
    assert exc_info.value.kind is ValidationErrorKind.INVALID_DATE_RANGE


def test_total_cost_is_stable_without_writes(db_session: Session) -> None:
    service = _service()
    _create(service, db_session, price=70, start_date=date(2023, 11, 1))
    _create(service, db_session, price=30, start_date=date(2024, 2, 1), end_date=date(2024, 4, 1))

    query = TotalCostQuery(start_date=date(2024, 1, 1), end_date=date(2024, 6, 1))
    first = service.total_cost(db_session, query)
    second = service.total_cost(db_session, query)

    assert first == second == 6 * 70 + 3 * 30


class _BrokenRepository(SqlAlchemySubscriptionRepository):
    def create(self, session, payload, deadline=None):  # type: ignore[no-untyped-def]
        raise StorageError("create", "connection reset by peer")

    def get_by_id(self, session: Session, subscription_id: int, deadline: Deadline | None = None) -> SubscriptionRead:
        raise StorageError("get by id", "connection reset by peer")

    def get_all(self, session, filter_, deadline=None):  # type: ignore[no-untyped-def]
        raise StorageError("get all", "connection reset by peer")

    def delete(self, session, subscription_id, deadline=None):  # type: ignore[no-untyped-def]
        raise StorageError("delete", "connection reset by peer")

    def get_total_cost(self, session, filter_, deadline=None):  # type: ignore[no-untyped-def]
        raise StorageError("calculating total cost", "connection reset by peer")


def test_storage_failures_are_wrapped_with_operation(db_session: Session) -> None:
    service = SubscriptionService(repository=_BrokenRepository())

    with pytest.raises(SubscriptionOperationError) as exc_info:
        service.get(db_session, 1)
    assert exc_info.value.operation == "get"
    assert str(exc_info.value) == "get failed"
    assert isinstance(exc_info.value.__cause__, StorageError)

    with pytest.raises(SubscriptionOperationError) as exc_info:
        service.list_subscriptions(db_session)
    assert exc_info.value.operation == "list"

    with pytest.raises(SubscriptionOperationError) as exc_info:
        service.update(db_session, 1, SubscriptionUpdate(price=1))
    assert exc_info.value.operation == "update"

    with pytest.raises(SubscriptionOperationError) as exc_info:
        _create(service, db_session)
    assert str(exc_info.value) == "create failed"
    assert isinstance(exc_info.value.__cause__, StorageError)
    assert exc_info.value.__cause__.operation == "create"

    with pytest.raises(SubscriptionOperationError) as exc_info:
        service.delete(db_session, 1)
    assert str(exc_info.value) == "delete failed"
    assert isinstance(exc_info.value.__cause__, StorageError)

    with pytest.raises(SubscriptionOperationError) as exc_info:
        service.total_cost(db_session, TotalCostQuery(start_date=date(2024, 1, 1), end_date=date(2024, 6, 1)))
    assert str(exc_info.value) == "total cost failed"
    assert isinstance(exc_info.value.__cause__, StorageError)
    assert exc_info.value.__cause__.operation == "calculating total cost"
    assert _row_count(db_session) == 0


def test_cancelled_deadline_is_reported_as_cancellation(db_session: Session) -> None:
    service = _service()
    created = _create(service, db_session)

    deadline = Deadline()
    deadline.cancel()
    with pytest.raises(OperationCancelledError):
        service.get(db_session, created.id, deadline)

    expired = Deadline(expires_at=time.monotonic() - 1)
    with pytest.raises(OperationCancelledError):
        service.update(db_session, created.id, SubscriptionUpdate(price=1), expired)

    assert service.get(db_session, created.id).price == 400
