"""Prometheus metrics for the scan workflow and the HTTP layer."""

from prometheus_client import Counter, Histogram

# HTTP
http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "Time spent handling HTTP requests",
    ["method", "route", "status"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

# Scan sessions
scan_sessions_started_total = Counter(
    "scan_sessions_started_total",
    "Scan sessions started",
    ["tenant", "device_type"],
)

scan_sessions_completed_total = Counter(
    "scan_sessions_completed_total",
    "Scan sessions committed",
    ["tenant"],
)

scan_sessions_cancelled_total = Counter(
    "scan_sessions_cancelled_total",
    "Scan sessions cancelled, explicitly or by the idle sweep",
    ["reason"],
)

# Barcode lookups
scan_barcodes_total = Counter(
    "scan_barcodes_total",
    "Barcodes recorded in a session",
    ["tenant", "catalog_duplicate"],
)

scan_barcode_duplicates_total = Counter(
    "scan_barcode_duplicates_total",
    "Barcodes rejected or flagged as duplicates",
    ["tenant", "kind"],
)

# Commit
scan_commit_items_total = Counter(
    "scan_commit_items_total",
    "Scan results materialised into inventory items",
    ["tenant", "outcome"],
)

scan_commit_duration_seconds = Histogram(
    "scan_commit_duration_seconds",
    "Time spent committing a scan session",
    ["tenant"],
    buckets=[0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0],
)

scan_validation_errors_total = Counter(
    "scan_validation_errors_total",
    "Validation errors returned by commit",
    ["tenant", "field"],
)

# Enrichment
enrichment_lookups_total = Counter(
    "enrichment_lookups_total",
    "Barcode enrichment lookups by outcome",
    ["source"],
)
