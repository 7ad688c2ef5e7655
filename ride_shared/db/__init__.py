from .database import get_engine, get_sessionmaker
from .enums import (
    BikeStatus,
    DiscountType,
    PlanType,
    RideStatus,
    TransactionStatus,
    TransactionType,
)
from .models import (
    Base,
    Bike,
    PricingConfig,
    PricingPlan,
    PricingRule,
    Promotion,
    Ride,
    Transaction,
    Wallet,
)

__all__ = [
    "Base",
    "Bike",
    "Ride",
    "Wallet",
    "Transaction",
    "PricingConfig",
    "PricingPlan",
    "PricingRule",
    "Promotion",
    "BikeStatus",
    "RideStatus",
    "TransactionType",
    "TransactionStatus",
    "PlanType",
    "DiscountType",
    "get_sessionmaker",
    "get_engine",
]
