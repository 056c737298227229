"""
Prometheus metrics for the event sync service.

Metrics exposed:
- Sync pass outcomes and durations
- Per-step run counts and durations
- Data source request counters and latency
- Scheduler status gauge
"""
from prometheus_client import Counter, Gauge, Histogram

# Sync engine
event_sync_passes_total = Counter(
    "event_sync_passes_total",
    "Total event sync passes",
    ["source", "result"]  # result: success, failed, precondition, ambiguous_winner
)

event_sync_pass_duration_seconds = Histogram(
    "event_sync_pass_duration_seconds",
    "Duration of a full event sync pass in seconds",
    ["source"]
)

event_sync_step_runs_total = Counter(
    "event_sync_step_runs_total",
    "Total sync step executions",
    ["step", "result"]
)

event_sync_step_duration_seconds = Histogram(
    "event_sync_step_duration_seconds",
    "Sync step latency in seconds",
    ["step"]
)

tiebreak_failures_total = Counter(
    "tiebreak_failures_total",
    "Playoff matches whose tiebreak could not be resolved",
    ["source"]
)

# Data sources
data_client_requests_total = Counter(
    "data_client_requests_total",
    "Total requests sent to external event data sources",
    ["source", "status"]
)

data_client_request_duration_seconds = Histogram(
    "data_client_request_duration_seconds",
    "External event data source request latency in seconds",
    ["source"]
)

# Scheduler
scheduler_running = Gauge(
    "scheduler_running",
    "Whether the sync scheduler is running (1=running, 0=stopped)"
)

scheduler_jobs_total = Gauge(
    "scheduler_jobs_total",
    "Total number of scheduled jobs"
)


def record_sync_pass(source: str, result: str, duration_seconds: float) -> None:
    """Record the outcome of one event sync pass."""
    event_sync_passes_total.labels(source=source, result=result).inc()
    event_sync_pass_duration_seconds.labels(source=source).observe(duration_seconds)


def record_step_run(step: str, result: str, duration_seconds: float) -> None:
    """Record one sync step execution."""
    event_sync_step_runs_total.labels(step=step, result=result).inc()
    event_sync_step_duration_seconds.labels(step=step).observe(duration_seconds)


def record_data_client_request(source: str, status: int | str, duration_seconds: float) -> None:
    """Record one request to an external data source."""
    data_client_requests_total.labels(source=source, status=str(status)).inc()
    data_client_request_duration_seconds.labels(source=source).observe(duration_seconds)


def update_scheduler_metrics():
    """Update scheduler status gauges."""
    from app.core.scheduler import get_scheduler

    scheduler = get_scheduler()
    if scheduler and scheduler.running:
        scheduler_running.set(1)
        if scheduler.scheduler:
            scheduler_jobs_total.set(len(scheduler.scheduler.get_jobs()))
    else:
        scheduler_running.set(0)
        scheduler_jobs_total.set(0)
