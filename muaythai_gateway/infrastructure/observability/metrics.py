"""Prometheus metrics for webhook processing, cron tasks and email delivery"""

from prometheus_client import Counter, Histogram

# Webhook metrics
webhook_event_counter = Counter(
    "muaythai_webhook_events_total",
    "Payment provider webhook events received",
    ["event_type", "outcome"],  # processed | ignored | failed
)

webhook_signature_failures_counter = Counter(
    "muaythai_webhook_signature_failures_total",
    "Webhook deliveries rejected at verification",
)

best_effort_failures_counter = Counter(
    "muaythai_best_effort_failures_total",
    "Secondary side effects that failed without aborting the unit of work",
    ["effect"],
)

# Cron metrics
cron_task_counter = Counter(
    "muaythai_cron_task_runs_total",
    "Dispatcher task runs",
    ["task", "outcome"],  # success | failure
)

cron_task_duration_histogram = Histogram(
    "muaythai_cron_task_duration_seconds",
    "Dispatcher task duration",
    ["task"],
    buckets=[0.1, 0.5, 1.0, 5.0, 15.0, 30.0, 60.0],
)

cron_auth_failures_counter = Counter(
    "muaythai_cron_auth_failures_total",
    "Rejected cron invocations",
)

# Email metrics
email_counter = Counter(
    "muaythai_emails_total",
    "Queued email delivery attempts",
    ["outcome"],  # sent | requeued | failed
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_webhook(event_type: str, outcome: str) -> None:
    """Record a webhook outcome, folding unknown event types into one label"""
    webhook_event_counter.labels(event_type=event_type, outcome=outcome).inc()


def record_task(task: str, success: bool, duration_seconds: float) -> None:
    cron_task_counter.labels(task=task, outcome="success" if success else "failure").inc()
    cron_task_duration_histogram.labels(task=task).observe(duration_seconds)
