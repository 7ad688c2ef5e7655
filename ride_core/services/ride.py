import math
from decimal import Decimal
from typing import Callable, Optional

from loguru import logger
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ride_core.clients.external import ExternalClient
from ride_core.config.settings import Settings
from ride_core.core.exceptions import (
    BikeNotFoundException,
    BikeUnavailableException,
    InsufficientBalanceException,
    RideAlreadyActiveException,
    RideCoreException,
    RideNotActiveException,
    RideNotFoundException,
    TransactionFailedException,
)
from ride_core.core.utils import ensure_utc, round2, utcnow, uuid4
from ride_core.monitoring.metrics import MetricsCollector
from ride_core.schemas import (
    Location,
    Pagination,
    RideHistoryResponse,
    RideResponse,
    RideStatsResponse,
)
from ride_core.services.fare import (
    FareCalculator,
    haversine_distance,
    reconcile_distance,
    ride_duration_minutes,
)
from ride_core.services.wallet import WalletLedger
from ride_shared.db.enums import BikeStatus, RideStatus
from ride_shared.db.models import Ride
from ride_shared.db.repositories.bike import BikeRepository
from ride_shared.db.repositories.ride import RideRepository


class RideService:
    """Ride lifecycle: start, end (with settlement) and cancel.

    Each transition runs as one unit of work on ``session`` and is committed
    here. The rider's wallet row is locked first, which serializes every
    transition of the same rider. Notifications go out only after commit.
    """

    def __init__(
        self,
        session: Session,
        ride_repo: RideRepository,
        bike_repo: BikeRepository,
        wallet_ledger: WalletLedger,
        fare_calculator: FareCalculator,
        external_client: ExternalClient,
        settings: Settings,
        clock: Callable = utcnow,
    ):
        self.session = session
        self.ride_repo = ride_repo
        self.bike_repo = bike_repo
        self.wallet_ledger = wallet_ledger
        self.fare_calculator = fare_calculator
        self.external_client = external_client
        self.settings = settings
        self.clock = clock

    def _in_transaction(self, operation: str, work: Callable[[], Ride]) -> Ride:
        try:
            ride = work()
            self.session.commit()
            return ride
        except RideCoreException:
            self.session.rollback()
            raise
        except Exception as e:
            self.session.rollback()
            MetricsCollector.record_ride_failure(operation)
            logger.exception(f"Ride {operation} rolled back: {e}")
            raise TransactionFailedException() from e

    # --- Transitions ---

    def start_ride(self, rider_id: str, bike_id: str, location: Location) -> RideResponse:
        logger.info(f"Starting ride for rider {rider_id} on bike {bike_id}")

        def work() -> Ride:
            wallet = self.wallet_ledger.lock(rider_id)

            if self.ride_repo.get_active_for_rider(rider_id):
                raise RideAlreadyActiveException()

            bike = self.bike_repo.get_bike(bike_id)
            if not bike:
                raise BikeNotFoundException()
            if bike.status != BikeStatus.AVAILABLE:
                raise BikeUnavailableException()

            balance = round2(wallet.balance) if wallet else Decimal("0.00")
            if balance < self.settings.min_ride_balance:
                raise InsufficientBalanceException(
                    f"Minimum balance of {self.settings.min_ride_balance} required to start a ride"
                )

            ride = Ride(
                id=uuid4(),
                rider_id=rider_id,
                bike_id=bike_id,
                status=RideStatus.IN_PROGRESS,
                start_time=self.clock(),
                start_latitude=location.latitude,
                start_longitude=location.longitude,
            )
            try:
                self.ride_repo.create_ride(ride)
            except IntegrityError as e:
                raise RideAlreadyActiveException() from e

            if not self.bike_repo.transition_status(
                bike_id, BikeStatus.AVAILABLE, BikeStatus.IN_USE
            ):
                raise BikeUnavailableException()
            return ride

        ride = self._in_transaction("start", work)

        MetricsCollector.record_ride(RideStatus.IN_PROGRESS.value)
        logger.info(f"Ride {ride.id} started")
        self.external_client.publish(
            rider_id,
            "ride_started",
            {"ride_id": ride.id, "bike_id": bike_id, "start_time": ride.start_time},
        )
        return RideResponse.model_validate(ride)

    def end_ride(self, ride_id: str, location: Location) -> RideResponse:
        logger.info(f"Ending ride {ride_id}")
        ended_at = self.clock()

        ride = self._get_in_progress(ride_id)
        rider_id, bike_id = ride.rider_id, ride.bike_id
        start_time = ensure_utc(ride.start_time)
        # fetched before any row lock is taken
        trace = self._fetch_trace(bike_id, start_time, ended_at)

        def work() -> Ride:
            wallet = self.wallet_ledger.lock(rider_id)
            ride = self.ride_repo.get_for_update(ride_id)
            if ride.status != RideStatus.IN_PROGRESS:
                raise RideNotActiveException()

            duration = ride_duration_minutes(start_time, ended_at)
            straight = haversine_distance(
                ride.start_latitude,
                ride.start_longitude,
                location.latitude,
                location.longitude,
            )
            distance = reconcile_distance(straight, trace)
            quote = self.fare_calculator.quote(duration, start_time, now=ended_at)

            balance = round2(wallet.balance) if wallet else Decimal("0.00")
            if balance < quote.cost:
                logger.info(
                    f"Ride {ride_id} not settled: balance {balance} below cost {quote.cost}"
                )
                raise InsufficientBalanceException(
                    f"Insufficient balance: required {quote.cost}, available {balance}"
                )

            ride.status = RideStatus.COMPLETED
            ride.end_time = ended_at
            ride.end_latitude = location.latitude
            ride.end_longitude = location.longitude
            ride.duration = duration
            ride.distance = distance
            ride.cost = quote.cost

            self.wallet_ledger.debit(
                rider_id,
                quote.cost,
                metadata={
                    "ride_id": ride.id,
                    "duration": duration,
                    "distance": distance,
                    "fare_mode": quote.mode,
                    "plan": quote.plan_name,
                    "rule": quote.applied_rule,
                    "promotions": quote.applied_promotions,
                },
                allow_zero=True,
            )

            self._release_bike(bike_id)
            self.bike_repo.set_location(bike_id, location.latitude, location.longitude)
            self.session.flush()
            return ride

        ride = self._in_transaction("end", work)

        MetricsCollector.record_ride_completed(ride.duration, ride.distance)
        logger.info(
            f"Ride {ride.id} completed: duration={ride.duration}min, "
            f"distance={ride.distance:.3f}km, cost={ride.cost}"
        )
        self.external_client.publish(
            rider_id,
            "ride_completed",
            {
                "ride_id": ride.id,
                "cost": ride.cost,
                "distance": ride.distance,
                "duration": ride.duration,
            },
        )
        return RideResponse.model_validate(ride)

    def cancel_ride(self, ride_id: str, rider_id: str) -> RideResponse:
        logger.info(f"Cancelling ride {ride_id} for rider {rider_id}")

        def work() -> Ride:
            self.wallet_ledger.lock(rider_id)
            ride = self.ride_repo.get_for_update(ride_id)
            # someone else's ride is reported as missing
            if not ride or ride.rider_id != rider_id:
                raise RideNotFoundException()
            if ride.status != RideStatus.IN_PROGRESS:
                raise RideNotActiveException()

            ride.status = RideStatus.CANCELLED
            ride.end_time = self.clock()
            self._release_bike(ride.bike_id)
            self.session.flush()
            return ride

        ride = self._in_transaction("cancel", work)

        MetricsCollector.record_ride(RideStatus.CANCELLED.value)
        logger.info(f"Ride {ride.id} cancelled")
        self.external_client.publish(rider_id, "ride_cancelled", {"ride_id": ride.id})
        return RideResponse.model_validate(ride)

    # --- Queries ---

    def get_ride(self, ride_id: str) -> RideResponse:
        ride = self.ride_repo.get_by_id(ride_id)
        if not ride:
            raise RideNotFoundException()
        return RideResponse.model_validate(ride)

    def get_active_ride(self, rider_id: str) -> Optional[RideResponse]:
        ride = self.ride_repo.get_active_for_rider(rider_id)
        return RideResponse.model_validate(ride) if ride else None

    def get_rider_rides(
        self, rider_id: str, page: int = 1, limit: int = 10
    ) -> RideHistoryResponse:
        rides, total = self.ride_repo.list_for_rider(rider_id, page, limit)
        return RideHistoryResponse(
            rides=[RideResponse.model_validate(r) for r in rides],
            pagination=Pagination(
                page=page,
                limit=limit,
                total=total,
                total_pages=math.ceil(total / limit) if limit else 0,
            ),
        )

    def get_ride_stats(self, rider_id: str) -> RideStatsResponse:
        count, distance, duration, cost = self.ride_repo.completed_totals(rider_id)
        return RideStatsResponse(
            total_rides=count,
            total_distance=distance,
            total_duration=duration,
            total_cost=cost,
            average_distance=distance / count if count else 0.0,
            average_duration=round(duration / count) if count else 0,
        )

    # --- Helpers ---

    def _get_in_progress(self, ride_id: str) -> Ride:
        ride = self.ride_repo.get_by_id(ride_id)
        if not ride:
            raise RideNotFoundException()
        if ride.status != RideStatus.IN_PROGRESS:
            logger.info(f"Ride {ride_id} is {ride.status.value}, cannot end")
            raise RideNotActiveException()
        return ride

    def _fetch_trace(self, bike_id: str, start, end):
        if not self.settings.gps_trace_enabled:
            return []
        try:
            return self.external_client.get_trace(bike_id, start, end)
        except Exception as e:
            MetricsCollector.record_gps_fallback()
            logger.warning(
                f"GPS trace unavailable for bike {bike_id}, using straight-line distance: {e}"
            )
            return []

    def _release_bike(self, bike_id: str) -> None:
        if not self.bike_repo.transition_status(
            bike_id, BikeStatus.IN_USE, BikeStatus.AVAILABLE
        ):
            logger.warning(f"Bike {bike_id} was not IN_USE at ride close; status left as is")
