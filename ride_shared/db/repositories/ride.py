from typing import List, Optional, Tuple

from loguru import logger
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ride_shared.db.enums import RideStatus
from ride_shared.db.models import Ride


class RideRepository:
    def __init__(self, session: Session):
        self.session = session

    def get_by_id(self, ride_id: str) -> Optional[Ride]:
        return self.session.get(Ride, ride_id)

    def get_for_update(self, ride_id: str) -> Optional[Ride]:
        """Reload the ride under a row lock, overwriting any stale identity-map state."""
        return self.session.execute(
            select(Ride)
            .where(Ride.id == ride_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def get_active_for_rider(self, rider_id: str) -> Optional[Ride]:
        return self.session.execute(
            select(Ride).where(
                Ride.rider_id == rider_id, Ride.status == RideStatus.IN_PROGRESS
            )
        ).scalar_one_or_none()

    def create_ride(self, ride: Ride) -> None:
        self.session.add(ride)
        self.session.flush()
        logger.debug(f"Created ride {ride.id} for rider {ride.rider_id}")

    def list_for_rider(
        self, rider_id: str, page: int = 1, limit: int = 10
    ) -> Tuple[List[Ride], int]:
        total = self.session.execute(
            select(func.count(Ride.id)).where(Ride.rider_id == rider_id)
        ).scalar_one()
        rides = (
            self.session.execute(
                select(Ride)
                .where(Ride.rider_id == rider_id)
                .order_by(Ride.start_time.desc())
                .offset((page - 1) * limit)
                .limit(limit)
            )
            .scalars()
            .all()
        )
        return list(rides), int(total)

    def completed_totals(self, rider_id: str) -> Tuple[int, float, int, float]:
        """(count, distance, duration, cost) summed over the rider's COMPLETED rides."""
        row = self.session.execute(
            select(
                func.count(Ride.id),
                func.coalesce(func.sum(Ride.distance), 0),
                func.coalesce(func.sum(Ride.duration), 0),
                func.coalesce(func.sum(Ride.cost), 0),
            ).where(Ride.rider_id == rider_id, Ride.status == RideStatus.COMPLETED)
        ).one()
        return int(row[0]), float(row[1]), int(row[2]), float(row[3])
