import math
from datetime import datetime
from decimal import Decimal
from typing import Optional, Sequence
from zoneinfo import ZoneInfo

from loguru import logger

from ride_core.config.settings import Settings
from ride_core.core.exceptions import InvalidTimeRangeException
from ride_core.core.utils import ensure_utc, round2
from ride_core.schemas import AdjustedPlan, FareQuote, PricingSnapshot, TracePoint
from ride_core.services.pricing import PricingService
from ride_shared.db.enums import PlanType

EARTH_RADIUS_KM = 6371
# a GPS trace longer than this multiple of the straight line is treated as noise
MAX_TRACE_RATIO = 3


def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in kilometres."""
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)

    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1))
        * math.cos(math.radians(lat2))
        * math.sin(d_lon / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def trace_distance(trace: Sequence[TracePoint]) -> float:
    total = 0.0
    for prev, cur in zip(trace, trace[1:]):
        total += haversine_distance(
            prev.latitude, prev.longitude, cur.latitude, cur.longitude
        )
    return total


def reconcile_distance(straight_line: float, trace: Sequence[TracePoint]) -> float:
    """Prefer the path length from the trace when it is plausible.

    The trace total is adopted only if it is longer than the straight line
    and shorter than ``MAX_TRACE_RATIO`` times it; otherwise the straight
    line stands.
    """
    if len(trace) < 2:
        return straight_line

    total = trace_distance(trace)
    if straight_line < total < straight_line * MAX_TRACE_RATIO:
        return total
    return straight_line


def ride_duration_minutes(start: datetime, end: datetime) -> int:
    start, end = ensure_utc(start), ensure_utc(end)
    if end < start:
        raise InvalidTimeRangeException()
    return int((end - start).total_seconds() // 60)


class FareCalculator:
    """Turns a ride duration into a fare.

    ``flat`` mode charges ``fare_per_minute`` per minute plus
    ``fare_unlock_fee``. ``dynamic`` mode resolves pricing for the hour the
    ride started and charges the chosen plan's hourly rate pro rata plus the
    active config's unlock fee.
    """

    def __init__(self, settings: Settings, pricing_service: PricingService):
        self.settings = settings
        self.pricing_service = pricing_service

    def quote(
        self,
        duration_min: int,
        started_at: datetime,
        now: Optional[datetime] = None,
    ) -> FareQuote:
        """``now`` is the instant promotions are checked against; defaults to the wall clock."""
        if self.settings.fare_mode == "dynamic":
            return self._dynamic_quote(duration_min, started_at, now)
        return self._flat_quote(duration_min)

    def _flat_quote(self, duration_min: int) -> FareQuote:
        per_minute = self.settings.fare_per_minute
        unlock_fee = self.settings.fare_unlock_fee
        return FareQuote(
            cost=round2(per_minute * duration_min + unlock_fee),
            mode="flat",
            per_minute_rate=per_minute,
            unlock_fee=unlock_fee,
        )

    def _dynamic_quote(
        self, duration_min: int, started_at: datetime, now: Optional[datetime]
    ) -> FareQuote:
        local_start = ensure_utc(started_at).astimezone(
            ZoneInfo(self.settings.pricing_timezone)
        )
        snapshot = self.pricing_service.resolve_pricing(
            local_start, local_start.hour, now=now
        )

        hourly_rate, plan_name, promotions = self._pick_rate(snapshot)
        per_minute = Decimal(str(hourly_rate)) / 60
        unlock_fee = Decimal(str(snapshot.unlock_fee))
        cost = round2(per_minute * duration_min + unlock_fee)

        logger.debug(
            f"Dynamic fare: plan={plan_name}, hourly={hourly_rate}, "
            f"multiplier={snapshot.multiplier}, duration={duration_min}, cost={cost}"
        )
        return FareQuote(
            cost=cost,
            mode="dynamic",
            per_minute_rate=round2(per_minute),
            unlock_fee=unlock_fee,
            plan_name=plan_name,
            applied_rule=snapshot.applied_rule.name if snapshot.applied_rule else None,
            applied_promotions=promotions,
        )

    def _pick_rate(self, snapshot: PricingSnapshot):
        plan: Optional[AdjustedPlan] = None
        if self.settings.fare_plan_name:
            plan = next(
                (p for p in snapshot.plans if p.name == self.settings.fare_plan_name),
                None,
            )
        if plan is None:
            plan = next((p for p in snapshot.plans if p.type == PlanType.HOURLY), None)

        if plan is None:
            rate = snapshot.base_hourly_rate * snapshot.multiplier
            return rate, None, []
        return plan.hourly_rate, plan.name, [p.name for p in plan.applied_promotions]
