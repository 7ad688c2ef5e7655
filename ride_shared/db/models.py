from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Table,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from ride_shared.db.enums import (
    BikeStatus,
    DiscountType,
    PlanType,
    RideStatus,
    TransactionStatus,
    TransactionType,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class Bike(Base):
    __tablename__ = "bikes"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    code: Mapped[str] = mapped_column(String(64), unique=True)
    model: Mapped[str] = mapped_column(String(128), default="standard")
    status: Mapped[BikeStatus] = mapped_column(
        Enum(BikeStatus, native_enum=False, length=16), default=BikeStatus.AVAILABLE
    )
    battery_level: Mapped[int] = mapped_column(Integer, default=100)
    latitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    longitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )


class Ride(Base):
    __tablename__ = "rides"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    rider_id: Mapped[str] = mapped_column(String(64), index=True)
    bike_id: Mapped[str] = mapped_column(String(64), index=True)
    status: Mapped[RideStatus] = mapped_column(
        Enum(RideStatus, native_enum=False, length=16), default=RideStatus.IN_PROGRESS
    )
    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    end_time: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    start_latitude: Mapped[float] = mapped_column(Float)
    start_longitude: Mapped[float] = mapped_column(Float)
    end_latitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    end_longitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    distance: Mapped[Optional[float]] = mapped_column(Float, nullable=True)  # km
    duration: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)  # minutes
    cost: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    __table_args__ = (
        # one IN_PROGRESS ride per rider
        Index(
            "uq_rides_rider_in_progress",
            "rider_id",
            unique=True,
            postgresql_where=text("status = 'IN_PROGRESS'"),
            sqlite_where=text("status = 'IN_PROGRESS'"),
        ),
    )


class Wallet(Base):
    __tablename__ = "wallets"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    rider_id: Mapped[str] = mapped_column(String(64), unique=True)
    balance: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0.00"))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )


class Transaction(Base):
    __tablename__ = "transactions"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    wallet_id: Mapped[str] = mapped_column(ForeignKey("wallets.id"), index=True)
    type: Mapped[TransactionType] = mapped_column(
        Enum(TransactionType, native_enum=False, length=32)
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    fees: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0.00"))
    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    status: Mapped[TransactionStatus] = mapped_column(
        Enum(TransactionStatus, native_enum=False, length=16),
        default=TransactionStatus.PENDING,
    )
    payment_method: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    # "metadata" is reserved on declarative classes
    meta: Mapped[Optional[dict]] = mapped_column("metadata", JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


promotion_plans = Table(
    "promotion_plans",
    Base.metadata,
    Column("promotion_id", ForeignKey("promotions.id"), primary_key=True),
    Column("plan_id", ForeignKey("pricing_plans.id"), primary_key=True),
    UniqueConstraint("promotion_id", "plan_id", name="uq_promotion_plan"),
)


class PricingConfig(Base):
    __tablename__ = "pricing_configs"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(128), default="default")
    unlock_fee: Mapped[float] = mapped_column(Float, default=100)
    base_hourly_rate: Mapped[float] = mapped_column(Float, default=200)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    plans: Mapped[List["PricingPlan"]] = relationship(
        back_populates="config",
        order_by="[PricingPlan.created_at, PricingPlan.id]",
    )
    rules: Mapped[List["PricingRule"]] = relationship(
        back_populates="config",
        order_by="[PricingRule.created_at, PricingRule.id]",
    )
    promotions: Mapped[List["Promotion"]] = relationship(
        back_populates="config",
        order_by="[Promotion.created_at, Promotion.id]",
    )


class PricingPlan(Base):
    __tablename__ = "pricing_plans"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    pricing_config_id: Mapped[str] = mapped_column(
        ForeignKey("pricing_configs.id"), index=True
    )
    name: Mapped[str] = mapped_column(String(128))
    type: Mapped[PlanType] = mapped_column(
        Enum(PlanType, native_enum=False, length=16), default=PlanType.HOURLY
    )
    hourly_rate: Mapped[float] = mapped_column(Float)
    daily_rate: Mapped[float] = mapped_column(Float)
    weekly_rate: Mapped[float] = mapped_column(Float)
    monthly_rate: Mapped[float] = mapped_column(Float)
    minimum_hours: Mapped[int] = mapped_column(Integer, default=1)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    config: Mapped[PricingConfig] = relationship(back_populates="plans")
    # stacking order of promotions is creation order
    promotions: Mapped[List["Promotion"]] = relationship(
        secondary=promotion_plans,
        back_populates="plans",
        order_by="[Promotion.created_at, Promotion.id]",
    )


class PricingRule(Base):
    __tablename__ = "pricing_rules"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    pricing_config_id: Mapped[str] = mapped_column(
        ForeignKey("pricing_configs.id"), index=True
    )
    name: Mapped[str] = mapped_column(String(128))
    day_of_week: Mapped[Optional[int]] = mapped_column(
        Integer, nullable=True
    )  # 0=Sunday .. 6=Saturday
    start_hour: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    end_hour: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    multiplier: Mapped[float] = mapped_column(Float, default=1.0)
    priority: Mapped[int] = mapped_column(Integer, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    config: Mapped[PricingConfig] = relationship(back_populates="rules")


class Promotion(Base):
    __tablename__ = "promotions"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    pricing_config_id: Mapped[str] = mapped_column(
        ForeignKey("pricing_configs.id"), index=True
    )
    name: Mapped[str] = mapped_column(String(128))
    description: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    discount_type: Mapped[DiscountType] = mapped_column(
        Enum(DiscountType, native_enum=False, length=16),
        default=DiscountType.PERCENTAGE,
    )
    discount_value: Mapped[float] = mapped_column(Float)
    start_date: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    end_date: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    usage_limit: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    usage_count: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    config: Mapped[PricingConfig] = relationship(back_populates="promotions")
    plans: Mapped[List[PricingPlan]] = relationship(
        secondary=promotion_plans, back_populates="promotions"
    )
