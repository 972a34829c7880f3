"""Application constants."""

USER_AGENT = "hazard-feed/1.0 (+reference-ingest; contact: configured-email)"
PARTITION_WINDOWS_MS = {
    "hour": 3_600_000,
    "day": 86_400_000,
    "week": 604_800_000,
    "month": 2_592_000_000,
}
PARTITION_KEYS = tuple(PARTITION_WINDOWS_MS)
SEVERITIES = ("major", "moderate", "minor", "unknown")
SEVERITY_RANK = {severity: rank for rank, severity in enumerate(SEVERITIES)}
COMMANDS = ("refresh", "read", "status")
EXIT_SUCCESS = 0
EXIT_PARTIAL = 10
EXIT_HARD_FAIL = 20
JSON_LOG_FIELDS = (
    "timestamp",
    "run_id",
    "stage",
    "partition",
    "source",
    "event",
    "status",
    "attempt",
    "duration_ms",
    "rows_in",
    "rows_out",
    "error_code",
    "message",
)
DEFAULT_FIELD_CANDIDATES = {
    "id": ["id", "stationId", "station_id", "OBJECTID"],
    "longitude": ["longitude", "lon", "long", "x"],
    "latitude": ["latitude", "lat", "y"],
    "is_active": ["isActive", "is_active", "active", "flood"],
    "risk_metric_a": ["riskMetricA", "risk_metric_a"],
    "risk_metric_b": ["riskMetricB", "risk_metric_b"],
    "site_name": ["siteName", "site_name", "name", "label"],
}
