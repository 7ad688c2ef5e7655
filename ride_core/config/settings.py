from decimal import Decimal
from pathlib import Path
from typing import Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


def find_env_file() -> str:
    env_file = ".env" if Path("/.dockerenv").exists() else ".env.local"

    current_path = Path.cwd()

    for path in [current_path] + list(current_path.parents):
        env_path = path / env_file
        if env_path.exists():
            return str(env_path)

    return env_file


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=find_env_file(),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Database: rides, bikes, wallets and pricing live together
    database_url: str = "postgresql+psycopg2://app:app@db:5432/rides"

    # External services (GPS track provider, notification sink)
    external_base: str = "http://external-stubs:3629"
    http_timeout_sec: float = 1.5
    gps_trace_enabled: bool = True

    # Circuit Breaker settings
    cb_gps_fail_max: int = 5
    cb_gps_reset_timeout: int = 30
    cb_notify_fail_max: int = 10
    cb_notify_reset_timeout: int = 15

    # Fares
    fare_mode: Literal["flat", "dynamic"] = "flat"
    fare_per_minute: Decimal = Decimal("0.5")
    fare_unlock_fee: Decimal = Decimal("1")
    fare_plan_name: Optional[str] = None  # dynamic mode: plan to bill with
    min_ride_balance: Decimal = Decimal("5")
    pricing_timezone: str = "UTC"

    # Logging
    log_level: str = "INFO"
