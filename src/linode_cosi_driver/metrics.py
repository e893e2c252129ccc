"""Prometheus metrics for the Linode COSI driver."""

from prometheus_client import Counter, Gauge, Histogram

# COSI call metrics
rpc_total = Counter(
    "linode_cosi_driver_rpc_total",
    "Total number of COSI calls",
    ["method", "code"],
)

rpc_duration_seconds = Histogram(
    "linode_cosi_driver_rpc_duration_seconds",
    "Duration of COSI calls in seconds",
    ["method"],
    buckets=[0.1, 0.5, 1.0, 2.5, 5.0, 10.0],
)

# API call metrics
api_call_total = Counter(
    "linode_cosi_driver_api_call_total",
    "Total number of API calls",
    ["api_type", "operation", "result"],
)

api_call_duration_seconds = Histogram(
    "linode_cosi_driver_api_call_duration_seconds",
    "Duration of API calls in seconds",
    ["api_type", "operation"],
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 2.5, 5.0],
)

# Endpoint cache metrics
endpoint_cache_refresh_total = Counter(
    "linode_cosi_driver_endpoint_cache_refresh_total",
    "Total number of endpoint cache refreshes",
    ["result"],
)

endpoint_cache_entries = Gauge(
    "linode_cosi_driver_endpoint_cache_entries",
    "Number of regions with a known S3 endpoint",
)

# Bucket-scoped key metrics
ephemeral_keys_total = Counter(
    "linode_cosi_driver_ephemeral_keys_total",
    "Bucket-scoped ephemeral key operations",
    ["operation", "result"],
)
