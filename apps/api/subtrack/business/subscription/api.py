from __future__ import annotations

from dataclasses import dataclass
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import JSONResponse, Response
from sqlalchemy.orm import Session

from subtrack.business.subscription.errors import (
    SubscriptionError,
    SubscriptionNotFoundError,
    SubscriptionValidationError,
)
from subtrack.business.subscription.schemas import (
    SubscriptionCreate,
    SubscriptionListQuery,
    SubscriptionRead,
    SubscriptionUpdate,
    TotalCostQuery,
    TotalCostRead,
)
from subtrack.business.subscription.service import subscription_service
from subtrack.context import get_correlation_id
from subtrack.core.config import get_settings
from subtrack.core.database import get_db
from subtrack.core.deadline import Deadline, OperationCancelledError


router = APIRouter(prefix="/subscriptions", tags=["subscriptions"])


@dataclass
class ErrorEnvelope:
    code: str
    message: str
    details: Any
    correlation_id: str | None


def error_response(
    request: Request,
    *,
    status_code: int,
    code: str,
    message: str,
    details: Any = None,
) -> JSONResponse:
    correlation_id = get_correlation_id() or getattr(request.state, "correlation_id", None)
    payload = ErrorEnvelope(
        code=code,
        message=message,
        details=details,
        correlation_id=correlation_id,
    )
    return JSONResponse(status_code=status_code, content=payload.__dict__)


def domain_error_response(request: Request, exc: SubscriptionError | OperationCancelledError) -> JSONResponse:
    if isinstance(exc, SubscriptionValidationError):
        return error_response(
            request,
            status_code=status.HTTP_400_BAD_REQUEST,
            code="validation_error",
            message=str(exc),
            details={"kind": exc.kind.value},
        )
    if isinstance(exc, SubscriptionNotFoundError):
        return error_response(
            request,
            status_code=status.HTTP_404_NOT_FOUND,
            code="not_found",
            message="subscription not found",
            details={"id": exc.subscription_id},
        )
    if isinstance(exc, OperationCancelledError):
        return error_response(
            request,
            status_code=status.HTTP_504_GATEWAY_TIMEOUT,
            code="request_timeout",
            message="request was cancelled before completion",
        )
    return error_response(
        request,
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        code="internal_error",
        message="internal server error",
    )


def get_request_deadline() -> Deadline:
    return Deadline.after(get_settings().request_timeout_seconds)


@router.post("", response_model=SubscriptionRead, status_code=status.HTTP_201_CREATED)
def create_subscription(
    request: Request,
    payload: SubscriptionCreate,
    db: Session = Depends(get_db),
    deadline: Deadline = Depends(get_request_deadline),
) -> SubscriptionRead | JSONResponse:
    try:
        return subscription_service.create(db, payload, deadline)
    except (SubscriptionError, OperationCancelledError) as exc:
        return domain_error_response(request, exc)


@router.get("", response_model=list[SubscriptionRead])
def list_subscriptions(
    request: Request,
    query: Annotated[SubscriptionListQuery, Query()],
    db: Session = Depends(get_db),
    deadline: Deadline = Depends(get_request_deadline),
) -> list[SubscriptionRead] | JSONResponse:
    try:
        return subscription_service.list_subscriptions(
            db,
            user_id=query.user_id,
            service_name=query.service_name,
            deadline=deadline,
        )
    except (SubscriptionError, OperationCancelledError) as exc:
        return domain_error_response(request, exc)


@router.get("/total-cost", response_model=TotalCostRead)
def get_total_cost(
    request: Request,
    query: Annotated[TotalCostQuery, Query()],
    db: Session = Depends(get_db),
    deadline: Deadline = Depends(get_request_deadline),
) -> TotalCostRead | JSONResponse:
    try:
        total = subscription_service.total_cost(db, query, deadline)
    except (SubscriptionError, OperationCancelledError) as exc:
        return domain_error_response(request, exc)
    return TotalCostRead(
        total_cost=total,
        period_start=query.start_date,
        period_end=query.end_date,
        user_id=query.user_id,
        service_name=query.service_name,
    )


@router.get("/{subscription_id}", response_model=SubscriptionRead)
def get_subscription(
    request: Request,
    subscription_id: int,
    db: Session = Depends(get_db),
    deadline: Deadline = Depends(get_request_deadline),
) -> SubscriptionRead | JSONResponse:
    try:
        return subscription_service.get(db, subscription_id, deadline)
    except (SubscriptionError, OperationCancelledError) as exc:
        return domain_error_response(request, exc)


@router.put("/{subscription_id}", response_model=SubscriptionRead)
def update_subscription(
    request: Request,
    subscription_id: int,
    payload: SubscriptionUpdate,
    db: Session = Depends(get_db),
    deadline: Deadline = Depends(get_request_deadline),
) -> SubscriptionRead | JSONResponse:
    try:
        return subscription_service.update(db, subscription_id, payload, deadline)
    except (SubscriptionError, OperationCancelledError) as exc:
        return domain_error_response(request, exc)


@router.delete("/{subscription_id}", status_code=status.HTTP_204_NO_CONTENT, response_class=Response)
def delete_subscription(
    request: Request,
    subscription_id: int,
    db: Session = Depends(get_db),
    deadline: Deadline = Depends(get_request_deadline),
) -> Response:
    try:
        subscription_service.delete(db, subscription_id, deadline)
    except (SubscriptionError, OperationCancelledError) as exc:
        return domain_error_response(request, exc)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
