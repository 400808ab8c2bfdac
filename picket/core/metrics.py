# picket/core/metrics.py
"""Prometheus counters for the worker process, served on /metrics."""

from prometheus_client import Counter, Gauge

jobs_claimed = Counter('picket_jobs_claimed_total', 'Jobs claimed', ['job_type'])
jobs_succeeded = Counter('picket_jobs_succeeded_total', 'Jobs succeeded', ['job_type'])
jobs_failed = Counter(
    'picket_jobs_failed_total', 'Jobs failed permanently', ['job_type']
)
retries_scheduled = Counter(
    'picket_retries_scheduled_total', 'Failed attempts requeued with backoff', ['job_type']
)
claim_races_lost = Counter(
    'picket_claim_races_lost_total', 'Candidates claimed by another worker first'
)
reservation_errors = Counter(
    'picket_reservation_errors_total', 'Reservation attempts that could not read candidates'
)
stale_locks_reclaimed = Counter(
    'picket_stale_locks_reclaimed_total', 'Running jobs returned to the queue by the stale sweep', ['job_type']
)
shutdown_requeues = Counter(
    'picket_shutdown_requeues_total', 'In-flight jobs force-requeued at shutdown'
)
jobs_in_flight = Gauge('picket_jobs_in_flight', 'Jobs currently being processed')
