from __future__ import annotations

from datetime import date, datetime
from typing import Annotated, Any
from uuid import UUID

from pydantic import BaseModel, BeforeValidator, ConfigDict, PlainSerializer, model_validator

from subtrack.business.subscription.dates import coerce_month_year, format_month_year


MonthYear = Annotated[
    date,
    BeforeValidator(coerce_month_year),
    PlainSerializer(format_month_year, return_type=str, when_used="json"),
]


class SubscriptionCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    service_name: str
    price: int
    user_id: UUID
    start_date: MonthYear
    end_date: MonthYear | None = None


class SubscriptionUpdate(BaseModel):
    """Partial update. ``None`` leaves a field unchanged.

    ``clear_end_date`` removes the end date and takes precedence over
    ``end_date``. An empty ``end_date`` string on the wire means the same.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    service_name: str | None = None
    price: int | None = None
    user_id: UUID | None = None
    start_date: MonthYear | None = None
    end_date: MonthYear | None = None
    clear_end_date: bool = False

    @model_validator(mode="before")
    @classmethod
    def _empty_end_date_clears(cls, data: Any) -> Any:
        if isinstance(data, dict):
            raw = data.get("end_date")
            if isinstance(raw, str) and not raw.strip():
                data = {**data, "end_date": None, "clear_end_date": True}
        return data


class SubscriptionRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    service_name: str
    price: int
    user_id: UUID
    start_date: MonthYear
    end_date: MonthYear | None
    created_at: datetime
    updated_at: datetime


class SubscriptionListQuery(BaseModel):
    user_id: UUID | None = None
    service_name: str | None = None


class TotalCostQuery(BaseModel):
    start_date: MonthYear
    end_date: MonthYear
    user_id: UUID | None = None
    service_name: str | None = None


class TotalCostRead(BaseModel):
    total_cost: int
    period_start: MonthYear
    period_end: MonthYear
    user_id: UUID | None
    service_name: str | None
