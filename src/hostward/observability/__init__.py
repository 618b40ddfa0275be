from hostward.observability.metrics import (
    DNS_LOOKUPS,
    HOSTING_API_CALLS,
    REGISTRAR_CALLS,
    VALIDATION_DURATION,
    VALIDATION_PASSES,
    generate_metrics,
    get_content_type,
)

__all__ = [
    "VALIDATION_PASSES",
    "DNS_LOOKUPS",
    "REGISTRAR_CALLS",
    "HOSTING_API_CALLS",
    "VALIDATION_DURATION",
    "generate_metrics",
    "get_content_type",
]
