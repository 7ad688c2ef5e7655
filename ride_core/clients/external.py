import json
import time
from datetime import datetime
from typing import List, Optional, Tuple

import requests
from loguru import logger
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from ride_core.config.settings import Settings
from ride_core.core.circuit_breaker import CircuitBreakerConfig
from ride_core.core.utils import json_dumps
from ride_core.monitoring.metrics import MetricsCollector
from ride_core.schemas import TracePoint

GPS_TRACK_PATH = "/gps/track"
NOTIFICATIONS_PATH = "/notifications"


def retrying_session(user_agent: str = "ride-core/1.0") -> requests.Session:
    """requests session retrying connection errors and gateway failures."""
    retry = Retry(
        total=2,
        connect=2,
        read=1,
        backoff_factor=0.2,
        status_forcelist=(500, 502, 503, 504),
        allowed_methods=frozenset({"GET", "POST"}),
        raise_on_status=False,
    )
    session = requests.Session()
    for prefix in ("http://", "https://"):
        session.mount(prefix, HTTPAdapter(max_retries=retry))
    session.headers["User-Agent"] = user_agent
    return session


class ExternalClient:
    """HTTP access to the GPS track provider and the notification sink."""

    def __init__(self, settings: Settings):
        self._base = settings.external_base.rstrip("/")
        self._timeout = settings.http_timeout_sec
        self._session = retrying_session()

        self._breakers = CircuitBreakerConfig(settings)
        self._gps_breaker = self._breakers.get_gps_breaker()
        self._notify_breaker = self._breakers.get_notify_breaker()

    def _request(self, method: str, path: str, **kwargs) -> dict:
        call = self._session.get if method == "GET" else self._session.post
        response = call(f"{self._base}/{path.lstrip('/')}", timeout=self._timeout, **kwargs)
        response.raise_for_status()
        return response.json() if response.content else {}

    def get_trace(
        self, bike_id: str, start: datetime, end: datetime
    ) -> List[TracePoint]:
        """Ordered GPS samples for the bike over [start, end]; may be empty.

        Raises on transport errors or an open breaker; callers decide how to
        degrade.
        """

        @self._gps_breaker
        def _fetch() -> List[TracePoint]:
            started = time.monotonic()
            ok = False
            try:
                data = self._request(
                    "GET",
                    GPS_TRACK_PATH,
                    params={
                        "bike_id": bike_id,
                        "from": start.isoformat(),
                        "to": end.isoformat(),
                    },
                )
                trace = [
                    TracePoint(
                        latitude=float(sample["lat"]),
                        longitude=float(sample["lon"]),
                        timestamp=sample.get("timestamp"),
                    )
                    for sample in data.get("points", [])
                ]
                ok = True
                return trace
            finally:
                MetricsCollector.record_external_api_call(
                    "gps", GPS_TRACK_PATH, time.monotonic() - started, ok
                )

        return _fetch()

    def publish(
        self, rider_id: str, event_type: str, payload: dict
    ) -> Tuple[bool, Optional[str]]:
        """Fire-and-forget event publication; never raises."""
        body = {
            "rider_id": rider_id,
            "event_type": event_type,
            "payload": json.loads(json_dumps(payload)),
        }

        try:
            self._notify_breaker.call(self._request, "POST", NOTIFICATIONS_PATH, json=body)
        except Exception as e:
            logger.warning(f"Event {event_type} for rider {rider_id} dropped: {e}")
            return False, str(e)

        logger.debug(f"Published {event_type} for rider {rider_id}")
        return True, None

    def get_circuit_breaker_stats(self):
        return self._breakers.get_breaker_stats()
