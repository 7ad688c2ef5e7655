from .bike import BikeRepository
from .pricing import PricingRepository
from .ride import RideRepository
from .wallet import WalletRepository

__all__ = [
    "RideRepository",
    "BikeRepository",
    "WalletRepository",
    "PricingRepository",
]
