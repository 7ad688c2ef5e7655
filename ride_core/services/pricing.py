from datetime import datetime, timedelta
from typing import Iterable, List, Optional, Tuple

from loguru import logger

from ride_core.core.exceptions import (
    NoPricingConfigException,
    PromotionExhaustedException,
    PromotionNotActiveException,
    PromotionNotFoundException,
)
from ride_core.core.utils import ensure_utc, round_half_up, utcnow
from ride_core.monitoring.metrics import MetricsCollector
from ride_core.schemas import (
    AdjustedPlan,
    AppliedPromotion,
    PricingConfigData,
    PricingPlanData,
    PricingRuleData,
    PricingSnapshot,
    PromotionData,
    PromotionUsageResponse,
)
from ride_shared.db.enums import DiscountType
from ride_shared.db.repositories.pricing import PricingRepository

HOURS_PER_DAY = 24
HOURS_PER_WEEK = 24 * 7
HOURS_PER_MONTH = 24 * 30


def day_of_week(value: datetime) -> int:
    """0=Sunday .. 6=Saturday, the convention pricing rules are stored in."""
    return (value.weekday() + 1) % 7


def rule_matches(rule: PricingRuleData, weekday: int, hour: int) -> bool:
    if rule.day_of_week is not None and rule.day_of_week != weekday:
        return False

    if rule.start_hour is not None and rule.end_hour is not None:
        if rule.start_hour <= rule.end_hour:
            return rule.start_hour <= hour < rule.end_hour
        # window crosses midnight, e.g. 22 -> 6
        return hour >= rule.start_hour or hour < rule.end_hour

    return True


def select_rule(
    rules: Iterable[PricingRuleData], weekday: int, hour: int
) -> Optional[PricingRuleData]:
    # sorted() is stable: equal priorities keep creation order
    candidates = sorted(
        (r for r in rules if r.is_active), key=lambda r: r.priority, reverse=True
    )
    return next((r for r in candidates if rule_matches(r, weekday, hour)), None)


def promotion_is_valid(promotion: PromotionData, now: datetime) -> bool:
    if not promotion.is_active:
        return False
    if not ensure_utc(promotion.start_date) <= now <= ensure_utc(promotion.end_date):
        return False
    return promotion.usage_limit is None or promotion.usage_count < promotion.usage_limit


def apply_promotion(
    rates: Tuple[float, float, float, float], promotion: PromotionData
) -> Tuple[float, float, float, float]:
    hourly, daily, weekly, monthly = rates
    value = promotion.discount_value

    if promotion.discount_type == DiscountType.PERCENTAGE:
        factor = 1 - value / 100
        return (
            round_half_up(hourly * factor),
            round_half_up(daily * factor),
            round_half_up(weekly * factor),
            round_half_up(monthly * factor),
        )

    # fixed amount is per hour; longer tiers scale it by a flat hour count
    return (
        max(0, hourly - value),
        max(0, daily - value * HOURS_PER_DAY),
        max(0, weekly - value * HOURS_PER_WEEK),
        max(0, monthly - value * HOURS_PER_MONTH),
    )


def adjust_plan(
    plan: PricingPlanData,
    multiplier: float,
    rule: Optional[PricingRuleData],
    now: datetime,
) -> AdjustedPlan:
    rates = (
        round_half_up(plan.hourly_rate * multiplier),
        round_half_up(plan.daily_rate * multiplier),
        round_half_up(plan.weekly_rate * multiplier),
        round_half_up(plan.monthly_rate * multiplier),
    )

    applied: List[AppliedPromotion] = []
    for promotion in plan.promotions:
        if not promotion_is_valid(promotion, now):
            continue
        rates = apply_promotion(rates, promotion)
        applied.append(
            AppliedPromotion(
                id=promotion.id,
                name=promotion.name,
                discount_type=promotion.discount_type,
                discount_value=promotion.discount_value,
            )
        )

    hourly, daily, weekly, monthly = rates
    return AdjustedPlan(
        id=plan.id,
        name=plan.name,
        type=plan.type,
        hourly_rate=hourly,
        daily_rate=daily,
        weekly_rate=weekly,
        monthly_rate=monthly,
        original_hourly_rate=plan.hourly_rate,
        applied_rule=rule.name if rule else None,
        applied_promotions=applied,
    )


def resolve(
    config: PricingConfigData,
    target_date: datetime,
    target_hour: int,
    now: datetime,
) -> PricingSnapshot:
    """Compute the rates in force at ``target_date``/``target_hour``.

    Pure: everything it needs is in ``config``; promotion validity is judged
    against ``now``. Promotions stack in the order they appear on the plan.
    """
    now = ensure_utc(now)
    rule = select_rule(config.rules, day_of_week(target_date), target_hour)
    multiplier = (rule.multiplier if rule else None) or 1

    plans = [
        adjust_plan(plan, multiplier, rule, now)
        for plan in config.plans
        if plan.is_active
    ]

    applied: List[AppliedPromotion] = []
    seen = set()
    for plan in plans:
        for promotion in plan.applied_promotions:
            if promotion.id not in seen:
                seen.add(promotion.id)
                applied.append(promotion)

    day_start = target_date.replace(hour=0, minute=0, second=0, microsecond=0)
    return PricingSnapshot(
        config_id=config.id,
        unlock_fee=config.unlock_fee,
        base_hourly_rate=config.base_hourly_rate,
        multiplier=multiplier,
        applied_rule=rule,
        applied_promotions=applied,
        plans=plans,
        target_date=target_date,
        target_hour=target_hour,
        next_update=day_start + timedelta(hours=target_hour + 1),
    )


class PricingService:
    def __init__(self, pricing_repo: PricingRepository):
        self.pricing_repo = pricing_repo

    def load_active_config(self) -> PricingConfigData:
        config = self.pricing_repo.get_active_config()
        if not config:
            logger.warning("No active pricing configuration")
            raise NoPricingConfigException()
        return PricingConfigData.model_validate(config)

    def resolve_pricing(
        self,
        target_date: Optional[datetime] = None,
        target_hour: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> PricingSnapshot:
        now = now or utcnow()
        target_date = target_date or now
        if target_hour is None:
            target_hour = target_date.hour

        config = self.load_active_config()
        snapshot = resolve(config, target_date, target_hour, now)

        MetricsCollector.record_pricing_resolution(snapshot.applied_rule is not None)
        logger.debug(
            f"Resolved pricing config={config.id} day={day_of_week(target_date)} "
            f"hour={target_hour} multiplier={snapshot.multiplier}"
        )
        return snapshot

    def redeem_promotion(
        self, promotion_id: str, now: Optional[datetime] = None
    ) -> PromotionUsageResponse:
        now = ensure_utc(now or utcnow())
        promotion = self.pricing_repo.get_promotion(promotion_id)
        if not promotion:
            raise PromotionNotFoundException()

        live = promotion.is_active and (
            ensure_utc(promotion.start_date) <= now <= ensure_utc(promotion.end_date)
        )
        if not live:
            logger.info(f"Promotion {promotion_id} is not redeemable at {now.isoformat()}")
            raise PromotionNotActiveException()

        if not self.pricing_repo.increment_promotion_usage(promotion_id, now):
            logger.info(f"Promotion {promotion_id} exhausted")
            raise PromotionExhaustedException()

        logger.info(
            f"Promotion {promotion_id} redeemed: {promotion.usage_count}/{promotion.usage_limit}"
        )
        return PromotionUsageResponse(
            id=promotion.id,
            usage_count=promotion.usage_count,
            usage_limit=promotion.usage_limit,
        )
