from datetime import datetime, timezone
from typing import Optional

from loguru import logger
from sqlalchemy import update
from sqlalchemy.orm import Session

from ride_shared.db.enums import BikeStatus
from ride_shared.db.models import Bike


class BikeRepository:
    """Bike registry access used by the ride service.

    Status changes go through ``transition_status`` only, which is a
    conditional UPDATE: it succeeds only if the bike is still in the
    expected status, so two concurrent unlocks of one bike cannot both win.
    """

    def __init__(self, session: Session):
        self.session = session

    def get_bike(self, bike_id: str) -> Optional[Bike]:
        return self.session.get(Bike, bike_id)

    def add_bike(self, bike: Bike) -> None:
        self.session.add(bike)
        self.session.flush()

    def transition_status(
        self, bike_id: str, expected: BikeStatus, new_status: BikeStatus
    ) -> bool:
        result = self.session.execute(
            update(Bike)
            .where(Bike.id == bike_id, Bike.status == expected)
            .values(status=new_status, updated_at=datetime.now(timezone.utc))
        )

        updated = result.rowcount > 0
        if updated:
            logger.info(f"Bike {bike_id}: {expected.value} -> {new_status.value}")
        else:
            logger.warning(
                f"Bike {bike_id} not in {expected.value}, refusing transition to {new_status.value}"
            )
        return updated

    def set_location(self, bike_id: str, latitude: float, longitude: float) -> bool:
        result = self.session.execute(
            update(Bike)
            .where(Bike.id == bike_id)
            .values(
                latitude=latitude,
                longitude=longitude,
                updated_at=datetime.now(timezone.utc),
            )
        )
        return result.rowcount > 0
