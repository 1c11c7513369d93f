"""Prometheus metrics for the NCC monitor."""

import time

from prometheus_client import Counter, Gauge, Histogram, Info

# Application info
app_info = Info("ncc_monitor", "NCC serial monitor application info")
app_info.info({"version": "0.1.0", "name": "ncc-monitor"})

# Scan metrics
scans_total = Counter(
    "ncc_scans_total",
    "Total number of single-serial scans",
    ["search_type", "status"],
)

fleet_scan_failures_total = Counter(
    "ncc_fleet_scan_failures_total",
    "Serials that failed during a fleet scan",
)

detections_recorded_total = Counter(
    "ncc_detections_recorded_total",
    "Total number of new detections recorded",
    ["source_type", "marketplace"],
)

# Search metrics
search_requests_total = Counter(
    "ncc_search_requests_total",
    "Total number of search backend requests",
    ["scope", "status"],
)

search_duration_seconds = Histogram(
    "ncc_search_duration_seconds",
    "Time spent waiting on the search backend",
    ["scope"],
    buckets=[0.25, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0],
)

# Scheduler metrics
scheduler_runs_total = Counter(
    "ncc_scheduler_runs_total",
    "Total number of scheduler runs",
    ["job_type", "status"],
)

scheduler_last_run_timestamp = Gauge(
    "ncc_scheduler_last_run_timestamp",
    "Timestamp of last scheduler run",
    ["job_type"],
)

# Notification metrics
notifications_sent_total = Counter(
    "ncc_notifications_sent_total",
    "Total number of notifications attempted",
    ["status"],
)


def record_scan(search_type: str, success: bool) -> None:
    """Record a finished scan."""
    status = "success" if success else "failed"
    scans_total.labels(search_type=search_type, status=status).inc()


def record_detection(source_type: str, is_marketplace: bool) -> None:
    """Record a newly stored detection."""
    detections_recorded_total.labels(
        source_type=source_type,
        marketplace="yes" if is_marketplace else "no",
    ).inc()


def record_search(scope: str, success: bool, duration: float) -> None:
    """Record a search backend call."""
    status = "success" if success else "error"
    search_requests_total.labels(scope=scope, status=status).inc()
    search_duration_seconds.labels(scope=scope).observe(duration)


def record_notification(success: bool) -> None:
    """Record a notification attempt."""
    notifications_sent_total.labels(status="sent" if success else "failed").inc()


def record_scheduler_run(job_type: str, success: bool):
    """Record a scheduler job run."""
    status = "success" if success else "error"
    scheduler_runs_total.labels(job_type=job_type, status=status).inc()
    scheduler_last_run_timestamp.labels(job_type=job_type).set(time.time())
