from prometheus_client import Counter, Histogram

REQUEST_COUNT = Counter(
    "porter_requests_total",
    "Total API requests",
    ["endpoint", "status"],
)
REQUEST_LATENCY = Histogram(
    "porter_request_duration_seconds",
    "Request latency in seconds",
    ["endpoint"],
)
OPERATION_COUNT = Counter(
    "porter_operations_total",
    "Export, import and backup operations by terminal status",
    ["operation_type", "status"],
)
