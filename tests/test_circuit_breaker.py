from datetime import datetime, timedelta, timezone
from unittest.mock import Mock

import pytest
import requests
from pybreaker import CircuitBreakerError

from ride_core.clients.external import ExternalClient
from ride_core.config.settings import Settings
from ride_core.core.circuit_breaker import CircuitBreakerConfig

T0 = datetime(2025, 3, 12, 10, 0, tzinfo=timezone.utc)


def _response(payload):
    response = Mock()
    response.raise_for_status.return_value = None
    response.json.return_value = payload
    response.content = b"{}"
    return response


@pytest.fixture
def client():
    settings = Settings(
        external_base="http://gps.local/",
        cb_gps_fail_max=2,
        cb_gps_reset_timeout=60,
        cb_notify_fail_max=1,
        cb_notify_reset_timeout=60,
    )
    external = ExternalClient(settings)
    external._session = Mock()
    return external


def test_breakers_are_built_from_settings():
    config = CircuitBreakerConfig(Settings(cb_gps_fail_max=7, cb_gps_reset_timeout=11))

    gps = config.get_gps_breaker()

    assert gps is config.get_gps_breaker()
    assert gps.fail_max == 7
    assert gps.reset_timeout == 11
    assert gps.current_state == "closed"
    assert set(config.get_breaker_stats()) == {"gps"}


def test_get_trace_parses_points(client):
    client._session.get.return_value = _response(
        {
            "points": [
                {"lat": 3.848, "lon": 11.502, "timestamp": T0.isoformat()},
                {"lat": "3.850", "lon": "11.503", "timestamp": None},
            ]
        }
    )

    points = client.get_trace("bike-a", T0, T0 + timedelta(minutes=5))

    assert [(p.latitude, p.longitude) for p in points] == [(3.848, 11.502), (3.85, 11.503)]
    url = client._session.get.call_args[0][0]
    params = client._session.get.call_args[1]["params"]
    assert url == "http://gps.local/gps/track"
    assert params["bike_id"] == "bike-a"
    assert params["from"] == T0.isoformat()


def test_get_trace_without_points_is_empty(client):
    client._session.get.return_value = _response({})
    assert client.get_trace("bike-a", T0, T0) == []


def test_gps_breaker_opens_after_repeated_outages(client):
    client._session.get.side_effect = requests.ConnectionError("gps down")

    for _ in range(2):
        with pytest.raises(Exception):
            client.get_trace("bike-a", T0, T0)

    with pytest.raises(CircuitBreakerError):
        client.get_trace("bike-a", T0, T0)

    assert client._session.get.call_count == 2
    assert client.get_circuit_breaker_stats()["gps"]["state"] == "open"


def test_malformed_samples_do_not_trip_gps_breaker(client):
    client._session.get.return_value = _response({"points": [{"lat": "north"}]})

    for _ in range(3):
        with pytest.raises((KeyError, ValueError)):
            client.get_trace("bike-a", T0, T0)

    stats = client.get_circuit_breaker_stats()["gps"]
    assert stats["state"] == "closed"
    assert stats["fail_counter"] == 0


def test_publish_posts_event(client):
    client._session.post.return_value = _response({})

    ok, error = client.publish("rider-1", "ride_completed", {"ride_id": "r1", "at": T0})

    assert (ok, error) == (True, None)
    body = client._session.post.call_args[1]["json"]
    assert body["event_type"] == "ride_completed"
    assert body["payload"] == {"ride_id": "r1", "at": T0.isoformat()}


def test_publish_never_raises(client):
    client._session.post.side_effect = requests.Timeout("slow sink")

    ok, error = client.publish("rider-1", "ride_started", {})
    assert ok is False
    assert error

    # breaker is now open; still reported, not raised
    ok, error = client.publish("rider-1", "ride_started", {})
    assert ok is False
    assert client._session.post.call_count == 1
