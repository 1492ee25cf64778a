"""
Prometheus metrics for the Shopfloor API
"""

from prometheus_client import Counter, Gauge, Histogram, generate_latest, CONTENT_TYPE_LATEST

# Request counters
REQUESTS_TOTAL = Counter(
    'shopfloor_requests_total',
    'Total number of HTTP requests',
    ['status_class']
)

REQUEST_LATENCY_SECONDS = Histogram(
    'shopfloor_request_latency_seconds',
    'HTTP request latency in seconds',
    buckets=[0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 2.0, 5.0]
)

# Job lifecycle
JOBS_CREATED_TOTAL = Counter(
    'shopfloor_jobs_created_total',
    'Total number of jobs created'
)

JOBS_DELETED_TOTAL = Counter(
    'shopfloor_jobs_deleted_total',
    'Total number of jobs purged without archiving'
)

JOBS_ARCHIVED_TOTAL = Counter(
    'shopfloor_jobs_archived_total',
    'Total number of jobs moved to the archive'
)

STATUS_CHANGES_TOTAL = Counter(
    'shopfloor_status_changes_total',
    'Job status changes by target status',
    ['status']
)

# Timers
TIMERS_STARTED_TOTAL = Counter(
    'shopfloor_timers_started_total',
    'Total number of timers started'
)

TIMERS_STOPPED_TOTAL = Counter(
    'shopfloor_timers_stopped_total',
    'Total number of timers stopped'
)

TIMER_CONFLICTS_TOTAL = Counter(
    'shopfloor_timer_conflicts_total',
    'Start requests rejected because a timer was already active'
)

TRACKED_MINUTES_TOTAL = Counter(
    'shopfloor_tracked_minutes_total',
    'Total closed work minutes recorded'
)

# Notification fan-out
EVENTS_PUBLISHED_TOTAL = Counter(
    'shopfloor_events_published_total',
    'Domain events published',
    ['event']
)

EVENTS_DROPPED_TOTAL = Counter(
    'shopfloor_events_dropped_total',
    'Events dropped for a slow subscriber'
)

EVENT_SUBSCRIBERS = Gauge(
    'shopfloor_event_subscribers',
    'Currently connected event stream subscribers'
)


class PrometheusMetrics:
    """Thin facade over the module-level collectors."""

    def record_request(self, status_code: int, latency_ms: float):
        REQUESTS_TOTAL.labels(status_class=f"{status_code // 100}xx").inc()
        REQUEST_LATENCY_SECONDS.observe(latency_ms / 1000.0)

    def increment_jobs_created(self):
        JOBS_CREATED_TOTAL.inc()

    def increment_jobs_deleted(self):
        JOBS_DELETED_TOTAL.inc()

    def increment_jobs_archived(self):
        JOBS_ARCHIVED_TOTAL.inc()

    def increment_status_change(self, status: str):
        STATUS_CHANGES_TOTAL.labels(status=status).inc()

    def increment_timers_started(self):
        TIMERS_STARTED_TOTAL.inc()

    def increment_timers_stopped(self, minutes: int):
        TIMERS_STOPPED_TOTAL.inc()
        TRACKED_MINUTES_TOTAL.inc(minutes)

    def increment_timer_conflicts(self):
        TIMER_CONFLICTS_TOTAL.inc()

    def increment_events_published(self, event: str):
        EVENTS_PUBLISHED_TOTAL.labels(event=event).inc()

    def increment_events_dropped(self, count: int = 1):
        EVENTS_DROPPED_TOTAL.inc(count)

    def set_event_subscribers(self, count: int):
        EVENT_SUBSCRIBERS.set(count)

    def get_metrics(self) -> bytes:
        """Get Prometheus metrics in text format."""
        return generate_latest()

    def get_content_type(self) -> str:
        """Get the content type for Prometheus metrics."""
        return CONTENT_TYPE_LATEST


# Global metrics instance
prometheus_metrics = PrometheusMetrics()
