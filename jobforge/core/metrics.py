"""Central Prometheus metrics registry.

All application metrics are defined here to avoid scattered metric definitions
and ensure consistent naming/labeling.
"""

from prometheus_client import Counter, Gauge, Histogram, Info

# Application info
app_info = Info("jobforge_app", "jobforge application info")

# --- HTTP ---
http_requests_total = Counter(
    "jobforge_http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)
http_request_duration_seconds = Histogram(
    "jobforge_http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
)

# --- Remote pipeline API ---
remote_call_duration_seconds = Histogram(
    "jobforge_remote_call_duration_seconds",
    "Duration of calls to the remote pipeline API in seconds",
    ["operation"],
)
remote_call_errors_total = Counter(
    "jobforge_remote_call_errors_total",
    "Remote pipeline API calls that failed",
    ["operation", "kind"],  # kind: rejected | transport
)

# --- Validation ---
validation_requests_total = Counter(
    "jobforge_validation_requests_total",
    "Query validations by result",
    ["result"],  # graph | errors | transport_error
)

# --- Job launches ---
job_launches_total = Counter(
    "jobforge_job_launches_total",
    "Job launch attempts",
    ["mode", "status"],  # mode: preview | pipeline
)

# --- Job status polling ---
job_status_polls_total = Counter(
    "jobforge_job_status_polls_total",
    "Job status fetches made by polling loops",
    ["loop", "status"],  # loop: preview | stop
)

# --- Preview sessions ---
preview_sessions_active = Gauge(
    "jobforge_preview_sessions_active",
    "Preview sessions with a pending poll or open output stream",
)
preview_sessions_total = Counter(
    "jobforge_preview_sessions_total",
    "Preview sessions by terminal outcome",
    ["outcome"],
)
preview_output_records_total = Counter(
    "jobforge_preview_output_records_total",
    "Output records received from preview subscriptions",
)
preview_time_to_running_seconds = Histogram(
    "jobforge_preview_time_to_running_seconds",
    "Time from preview launch to the job being observed running",
    buckets=[0.5, 1, 2, 5, 10, 30, 60, 120, 300],
)

# --- Drafts ---
draft_operations_total = Counter(
    "jobforge_draft_operations_total",
    "Draft repository operations",
    ["operation", "status"],
)

# --- Store health ---
store_health_check_duration_seconds = Histogram(
    "jobforge_store_health_check_duration_seconds",
    "Duration of dependency health check pings in seconds",
    ["store"],
)
store_health_status = Gauge(
    "jobforge_store_health_status",
    "Dependency health status (1=healthy, 0=unhealthy)",
    ["store"],
)
