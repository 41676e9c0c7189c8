from subtrack.business.subscription.api import router
from subtrack.business.subscription.errors import (
    SubscriptionError,
    SubscriptionNotFoundError,
    SubscriptionOperationError,
    SubscriptionValidationError,
    ValidationErrorKind,
)
from subtrack.business.subscription.models import Subscription
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
    TotalCostRead,
)
from subtrack.business.subscription.service import SubscriptionService, subscription_service

__all__ = [
    "router",
    "Subscription",
    "SubscriptionCreate",
    "SubscriptionUpdate",
    "SubscriptionRead",
    "TotalCostQuery",
    "TotalCostRead",
    "ListFilter",
    "CostFilter",
    "SubscriptionRepository",
    "SqlAlchemySubscriptionRepository",
    "SubscriptionService",
    "subscription_service",
    "SubscriptionError",
    "SubscriptionValidationError",
    "SubscriptionNotFoundError",
    "SubscriptionOperationError",
    "ValidationErrorKind",
]
