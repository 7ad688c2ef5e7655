from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Generator
from unittest.mock import Mock

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from ride_core.config.settings import Settings
from ride_core.services.fare import FareCalculator
from ride_core.services.pricing import PricingService
from ride_core.services.ride import RideService
from ride_core.services.wallet import WalletLedger
from ride_shared.db.enums import BikeStatus
from ride_shared.db.models import Base, Bike
from ride_shared.db.repositories import (
    BikeRepository,
    PricingRepository,
    RideRepository,
    WalletRepository,
)

SQLITE_URL = "sqlite+pysqlite:///:memory:"


class FakeClock:
    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, minutes: int = 0, seconds: int = 0) -> None:
        self.now = self.now + timedelta(minutes=minutes, seconds=seconds)


@pytest.fixture
def engine():
    # one shared connection so the API tests' worker threads see the same data
    eng = create_engine(
        SQLITE_URL,
        future=True,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(
        bind=engine,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
        future=True,
    )


@pytest.fixture
def db_session(session_factory) -> Generator[Session, None, None]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        database_url=SQLITE_URL,
        fare_mode="flat",
        gps_trace_enabled=True,
        pricing_timezone="UTC",
    )


@pytest.fixture
def external_client():
    client = Mock()
    client.get_trace.return_value = []
    client.publish.return_value = (True, None)
    client.get_circuit_breaker_stats.return_value = {}
    return client


@pytest.fixture
def clock() -> FakeClock:
    # a Wednesday
    return FakeClock(datetime(2025, 3, 12, 10, 0, tzinfo=timezone.utc))


@pytest.fixture
def wallet_ledger(db_session) -> WalletLedger:
    return WalletLedger(WalletRepository(db_session))


@pytest.fixture
def pricing_service(db_session) -> PricingService:
    return PricingService(PricingRepository(db_session))


@pytest.fixture
def ride_service_factory(db_session, external_client, clock, wallet_ledger, pricing_service):
    def _build(settings: Settings) -> RideService:
        return RideService(
            db_session,
            RideRepository(db_session),
            BikeRepository(db_session),
            wallet_ledger,
            FareCalculator(settings, pricing_service),
            external_client,
            settings,
            clock=clock,
        )

    return _build


@pytest.fixture
def ride_service(ride_service_factory, settings) -> RideService:
    return ride_service_factory(settings)


@pytest.fixture
def add_bike(db_session):
    def _add(bike_id: str = "bike-a", status: BikeStatus = BikeStatus.AVAILABLE) -> Bike:
        bike = Bike(
            id=bike_id,
            code=f"code-{bike_id}",
            status=status,
            battery_level=90,
            latitude=3.8480,
            longitude=11.5021,
        )
        BikeRepository(db_session).add_bike(bike)
        db_session.commit()
        return bike

    return _add


@pytest.fixture
def fund(db_session, wallet_ledger):
    def _fund(rider_id: str, amount) -> Decimal:
        balance = wallet_ledger.deposit(rider_id, Decimal(str(amount)), "CARD")
        db_session.commit()
        return balance

    return _fund
