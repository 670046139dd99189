"""
Prometheus metrics for the reconciliation pipeline.

Defines metrics tracking archive throughput, matches and run
outcomes.
"""

from prometheus_client import Counter, Gauge, Histogram

from utils.metrics import get_or_create_metric

ARCHIVES_PROCESSED = get_or_create_metric(
    lambda: Counter(
        "car_archives_total",
        "CAR archives handled by workers",
        ["status"],  # scanned, missing, failed
    ),
    "car_archives",
)

MATCHES_FOUND = get_or_create_metric(
    lambda: Counter(
        "car_matches_total",
        "Blocks whose CID matched an unmatched file range",
    ),
    "car_matches",
)

ASSOCIATIONS_INSERTED = get_or_create_metric(
    lambda: Counter(
        "car_associations_inserted_total",
        "file_range_car rows inserted inside the run transaction",
    ),
    "car_associations_inserted",
)

RUN_OUTCOMES = get_or_create_metric(
    lambda: Counter(
        "car_reconciliation_runs_total",
        "Reconciliation runs by terminal state",
        ["state"],  # COMMITTED, ABORTED
    ),
    "car_reconciliation_runs",
)

RUN_DURATION = get_or_create_metric(
    lambda: Histogram(
        "car_reconciliation_run_seconds",
        "Wall time of a reconciliation run",
        buckets=[1, 5, 10, 30, 60, 300, 900, 1800, 3600, 7200, 21600],
    ),
    "car_reconciliation_run_seconds",
)

ACTIVE_WORKERS = get_or_create_metric(
    lambda: Gauge(
        "car_reconciliation_active_workers",
        "Worker threads currently scanning archives",
    ),
    "car_reconciliation_active_workers",
)

PROGRESS_COMPLETED = get_or_create_metric(
    lambda: Gauge(
        "car_progress_completed_archives",
        "Archives fully scanned in the current run",
    ),
    "car_progress_completed_archives",
)
