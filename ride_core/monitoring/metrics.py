from prometheus_client import Counter, Gauge, Histogram, Info
from prometheus_fastapi_instrumentator import Instrumentator

SERVICE_NAME = "ride-core"

# Business metrics
rides_total = Counter(
    "bikeshare_rides_total",
    "Rides by lifecycle transition",
    ["service", "status"],  # status=IN_PROGRESS/COMPLETED/CANCELLED
)

ride_duration_minutes = Histogram(
    "bikeshare_ride_duration_minutes",
    "Duration of completed rides in minutes",
    ["service"],
    buckets=[1, 5, 10, 15, 30, 60, 120, 240, 480, 1440],
)

ride_distance_km = Histogram(
    "bikeshare_ride_distance_km",
    "Distance of completed rides in km",
    ["service"],
    buckets=[0.5, 1, 2, 5, 10, 20, 50],
)

ride_failures_total = Counter(
    "bikeshare_ride_failures_total",
    "Ride operations rolled back on infrastructure failure",
    ["service", "operation"],  # operation=start/end/cancel
)

gps_fallbacks_total = Counter(
    "bikeshare_gps_fallbacks_total",
    "Ride ends that fell back to straight-line distance",
    ["service"],
)

wallet_operations_total = Counter(
    "bikeshare_wallet_operations_total",
    "Wallet ledger operations",
    ["service", "type"],  # type=DEPOSIT/RIDE_PAYMENT/REFUND/...
)

wallet_amount_total = Counter(
    "bikeshare_wallet_amount_total",
    "Wallet amount moved",
    ["service", "type"],
)

pricing_resolutions_total = Counter(
    "bikeshare_pricing_resolutions_total",
    "Pricing resolutions",
    ["service", "rule_applied"],  # rule_applied=yes/no
)

# Dependencies (GPS provider, notification sink)
BREAKER_STATES = {"closed": 0, "open": 1, "half-open": 2, "half_open": 2}

breaker_state = Gauge(
    "bikeshare_breaker_state",
    "Breaker state per dependency: 0 closed, 1 open, 2 half-open",
    ["service", "breaker"],
)

breaker_failures_total = Counter(
    "bikeshare_breaker_failures_total",
    "Failures counted by a breaker",
    ["service", "breaker"],
)

dependency_calls_total = Counter(
    "bikeshare_dependency_calls_total",
    "Calls made to external dependencies",
    ["service", "dependency", "endpoint", "outcome"],
)

dependency_latency_seconds = Histogram(
    "bikeshare_dependency_latency_seconds",
    "Latency of calls to external dependencies",
    ["service", "dependency", "endpoint"],
    buckets=[0.05, 0.1, 0.25, 0.5, 1, 1.5, 3],
)

# Application info
app_info = Info("bikeshare_app_info", "Application information")


def setup_instrumentator() -> Instrumentator:
    return Instrumentator(
        should_group_status_codes=False,
        should_ignore_untemplated=True,
        should_respect_env_var=False,
        should_instrument_requests_inprogress=True,
        excluded_handlers=["/metrics", "/api/v1/health"],
        inprogress_name="http_requests_inprogress",
        inprogress_labels=True,
    )


def init_app_info(version: str = "1.0.0"):
    app_info.info({"version": version, "service": SERVICE_NAME, "component": "api"})


class MetricsCollector:
    SERVICE_NAME = SERVICE_NAME

    @staticmethod
    def record_ride(status: str):
        rides_total.labels(service=MetricsCollector.SERVICE_NAME, status=status).inc()

    @staticmethod
    def record_ride_completed(duration_min: int, distance_km: float):
        rides_total.labels(service=MetricsCollector.SERVICE_NAME, status="COMPLETED").inc()
        ride_duration_minutes.labels(service=MetricsCollector.SERVICE_NAME).observe(
            duration_min
        )
        ride_distance_km.labels(service=MetricsCollector.SERVICE_NAME).observe(
            distance_km
        )

    @staticmethod
    def record_ride_failure(operation: str):
        ride_failures_total.labels(
            service=MetricsCollector.SERVICE_NAME, operation=operation
        ).inc()

    @staticmethod
    def record_gps_fallback():
        gps_fallbacks_total.labels(service=MetricsCollector.SERVICE_NAME).inc()

    @staticmethod
    def record_wallet_operation(tx_type: str, amount: float):
        wallet_operations_total.labels(
            service=MetricsCollector.SERVICE_NAME, type=tx_type
        ).inc()
        wallet_amount_total.labels(
            service=MetricsCollector.SERVICE_NAME, type=tx_type
        ).inc(amount)

    @staticmethod
    def record_pricing_resolution(rule_applied: bool):
        pricing_resolutions_total.labels(
            service=MetricsCollector.SERVICE_NAME,
            rule_applied="yes" if rule_applied else "no",
        ).inc()

    @staticmethod
    def record_external_api_call(
        dependency: str, endpoint: str, duration: float, success: bool
    ):
        labels = dict(
            service=MetricsCollector.SERVICE_NAME, dependency=dependency, endpoint=endpoint
        )
        dependency_calls_total.labels(
            **labels, outcome="ok" if success else "failed"
        ).inc()
        dependency_latency_seconds.labels(**labels).observe(duration)

    @staticmethod
    def record_circuit_breaker_state(breaker: str, state: str):
        breaker_state.labels(service=MetricsCollector.SERVICE_NAME, breaker=breaker).set(
            BREAKER_STATES.get(state, 0)
        )

    @staticmethod
    def record_circuit_breaker_failure(breaker: str):
        breaker_failures_total.labels(
            service=MetricsCollector.SERVICE_NAME, breaker=breaker
        ).inc()
