from functools import lru_cache

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from ride_core.clients.external import ExternalClient
from ride_core.config.settings import Settings
from ride_core.db.database import get_sessionmaker
from ride_core.services.fare import FareCalculator
from ride_core.services.pricing import PricingService
from ride_core.services.ride import RideService
from ride_core.services.wallet import WalletLedger
from ride_shared.db.repositories import (
    BikeRepository,
    PricingRepository,
    RideRepository,
    WalletRepository,
)


@lru_cache()
def get_settings() -> Settings:
    return Settings()


def get_session(settings: Settings = Depends(get_settings)) -> Session:
    sessionmaker = get_sessionmaker(settings)
    session = sessionmaker()
    try:
        yield session
    finally:
        session.close()


def get_external_client(request: Request) -> ExternalClient:
    return request.app.state.external_client


def get_ride_repository(session: Session = Depends(get_session)) -> RideRepository:
    return RideRepository(session)


def get_bike_repository(session: Session = Depends(get_session)) -> BikeRepository:
    return BikeRepository(session)


def get_wallet_repository(session: Session = Depends(get_session)) -> WalletRepository:
    return WalletRepository(session)


def get_pricing_repository(
    session: Session = Depends(get_session),
) -> PricingRepository:
    return PricingRepository(session)


def get_pricing_service(
    pricing_repo: PricingRepository = Depends(get_pricing_repository),
) -> PricingService:
    return PricingService(pricing_repo)


def get_wallet_ledger(
    wallet_repo: WalletRepository = Depends(get_wallet_repository),
) -> WalletLedger:
    return WalletLedger(wallet_repo)


def get_fare_calculator(
    settings: Settings = Depends(get_settings),
    pricing_service: PricingService = Depends(get_pricing_service),
) -> FareCalculator:
    return FareCalculator(settings, pricing_service)


def get_ride_service(
    session: Session = Depends(get_session),
    ride_repo: RideRepository = Depends(get_ride_repository),
    bike_repo: BikeRepository = Depends(get_bike_repository),
    wallet_ledger: WalletLedger = Depends(get_wallet_ledger),
    fare_calculator: FareCalculator = Depends(get_fare_calculator),
    external_client: ExternalClient = Depends(get_external_client),
    settings: Settings = Depends(get_settings),
) -> RideService:
    return RideService(
        session,
        ride_repo,
        bike_repo,
        wallet_ledger,
        fare_calculator,
        external_client,
        settings,
    )
