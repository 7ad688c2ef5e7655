from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ride_shared.db.enums import (
    DiscountType,
    PlanType,
    RideStatus,
    TransactionStatus,
    TransactionType,
)


class Location(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)


class StartRideRequest(Location):
    rider_id: str
    bike_id: str


class EndRideRequest(Location):
    pass


class CancelRideRequest(BaseModel):
    rider_id: str


class RideResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    rider_id: str
    bike_id: str
    status: RideStatus
    start_time: datetime
    end_time: Optional[datetime] = None
    start_latitude: float
    start_longitude: float
    end_latitude: Optional[float] = None
    end_longitude: Optional[float] = None
    distance: Optional[float] = None
    duration: Optional[int] = None
    cost: Optional[Decimal] = None


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int


class RideHistoryResponse(BaseModel):
    rides: List[RideResponse]
    pagination: Pagination


class RideStatsResponse(BaseModel):
    total_rides: int
    total_distance: float
    total_duration: int
    total_cost: float
    average_distance: float
    average_duration: int


class TracePoint(BaseModel):
    latitude: float
    longitude: float
    timestamp: Optional[datetime] = None


class FareQuote(BaseModel):
    cost: Decimal
    mode: str
    per_minute_rate: Decimal
    unlock_fee: Decimal
    plan_name: Optional[str] = None
    applied_rule: Optional[str] = None
    applied_promotions: List[str] = Field(default_factory=list)


# --- Wallet ---


class AmountRequest(BaseModel):
    amount: Decimal = Field(..., gt=0)
    payment_method: Optional[str] = None


class WithdrawRequest(BaseModel):
    amount: Decimal = Field(..., gt=0)
    fees: Decimal = Field(Decimal("0"), ge=0)
    payment_method: Optional[str] = None


class RefundRequest(BaseModel):
    amount: Decimal = Field(..., gt=0)
    reason: str
    ride_id: Optional[str] = None


class BalanceResponse(BaseModel):
    rider_id: str
    balance: Decimal


class TransactionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    type: TransactionType
    amount: Decimal
    fees: Decimal
    total_amount: Decimal
    status: TransactionStatus
    payment_method: Optional[str] = None
    metadata: Optional[dict] = Field(default=None, validation_alias="meta")
    created_at: datetime


class TransactionHistoryResponse(BaseModel):
    transactions: List[TransactionResponse]
    pagination: Pagination


class ReconciliationResponse(BaseModel):
    rider_id: str
    balance: Decimal
    ledger_sum: Decimal
    consistent: bool


# --- Pricing (internal data passed into the resolver) ---


class PromotionData(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    discount_type: DiscountType
    discount_value: float
    start_date: datetime
    end_date: datetime
    is_active: bool = True
    usage_limit: Optional[int] = None
    usage_count: int = 0


class PricingPlanData(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    type: PlanType = PlanType.HOURLY
    hourly_rate: float
    daily_rate: float
    weekly_rate: float
    monthly_rate: float
    is_active: bool = True
    promotions: List[PromotionData] = Field(default_factory=list)


class PricingRuleData(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    day_of_week: Optional[int] = None
    start_hour: Optional[int] = None
    end_hour: Optional[int] = None
    multiplier: float = 1.0
    priority: int = 0
    is_active: bool = True


class PricingConfigData(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str = "default"
    unlock_fee: float = 100
    base_hourly_rate: float = 200
    plans: List[PricingPlanData] = Field(default_factory=list)
    rules: List[PricingRuleData] = Field(default_factory=list)


# --- Pricing (resolution output) ---


class AppliedPromotion(BaseModel):
    id: str
    name: str
    discount_type: DiscountType
    discount_value: float


class AdjustedPlan(BaseModel):
    id: str
    name: str
    type: PlanType
    hourly_rate: float
    daily_rate: float
    weekly_rate: float
    monthly_rate: float
    original_hourly_rate: float
    applied_rule: Optional[str] = None
    applied_promotions: List[AppliedPromotion] = Field(default_factory=list)


class PricingSnapshot(BaseModel):
    config_id: str
    unlock_fee: float
    base_hourly_rate: float
    multiplier: float
    applied_rule: Optional[PricingRuleData] = None
    applied_promotions: List[AppliedPromotion] = Field(default_factory=list)
    plans: List[AdjustedPlan]
    target_date: datetime
    target_hour: int
    next_update: datetime


class PromotionUsageResponse(BaseModel):
    id: str
    usage_count: int
    usage_limit: Optional[int] = None


class HealthResponse(BaseModel):
    ok: bool = True
