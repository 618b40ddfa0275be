from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest

VALIDATION_PASSES = Counter(
    "hostward_validation_passes_total",
    "Completed domain validation passes",
    ["outcome", "trigger"],  # outcome: active/failed, trigger: manual/scheduled
)

DNS_LOOKUPS = Counter(
    "hostward_dns_lookups_total",
    "Public DNS lookups",
    ["record_type", "outcome"],  # outcome: ok/empty/error/timeout
)

REGISTRAR_CALLS = Counter(
    "hostward_registrar_calls_total",
    "Registrar adapter calls",
    ["registrar", "operation", "outcome"],
)

HOSTING_API_CALLS = Counter(
    "hostward_hosting_api_calls_total",
    "Hosting platform API calls",
    ["operation", "outcome"],
)

VALIDATION_DURATION = Histogram(
    "hostward_validation_duration_seconds",
    "Validation pass latency (DNS lookups only)",
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
)


def generate_metrics() -> bytes:
    return generate_latest()


def get_content_type() -> str:
    return CONTENT_TYPE_LATEST
