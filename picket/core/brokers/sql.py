"""SQL constants for the PostgreSQL job store."""

from __future__ import annotations

from sqlalchemy import text

JOB_COLUMNS = """
    id, job_type, status, payload, priority, run_at, attempts, max_attempts,
    locked_at, lock_token, last_error, progress_completed, progress_total,
    created_at, updated_at, completed_at
"""


SCHEMA_ADVISORY_LOCK_SQL = text("""
    SELECT pg_advisory_xact_lock(CAST(:key AS BIGINT))
""")


# ---------- Reservation ----------
# Plain read, no row locks: workers race on the conditional claim below.
# Order is (priority, created_at) as of this read, best effort only.

SELECT_CANDIDATES_SQL = text("""
    SELECT id
    FROM scraper_jobs
    WHERE status = 'queued'
      AND job_type = ANY(:job_types)
      AND run_at <= now()
      AND lock_token IS NULL
    ORDER BY priority ASC, created_at ASC
    LIMIT :lim
""")

# Re-checks every claimability condition at write time; zero rows
# returned means another worker won the race.
CLAIM_JOB_SQL = text(f"""
    UPDATE scraper_jobs
    SET lock_token = :lock_token,
        status = 'running',
        attempts = attempts + 1,
        locked_at = now(),
        last_error = NULL,
        updated_at = now()
    WHERE id = :id
      AND status = 'queued'
      AND run_at <= now()
      AND lock_token IS NULL
    RETURNING {JOB_COLUMNS}
""")


# ---------- Completion (owner only) ----------

MARK_SUCCEEDED_SQL = text("""
    UPDATE scraper_jobs
    SET status = 'succeeded',
        completed_at = now(),
        lock_token = NULL,
        locked_at = NULL,
        last_error = NULL,
        updated_at = now()
    WHERE id = :id
      AND lock_token = :lock_token
      AND status = 'running'
    RETURNING id
""")

REQUEUE_JOB_SQL = text("""
    UPDATE scraper_jobs
    SET status = 'queued',
        run_at = :run_at,
        last_error = :last_error,
        lock_token = NULL,
        locked_at = NULL,
        updated_at = now()
    WHERE id = :id
      AND lock_token = :lock_token
      AND status = 'running'
    RETURNING id
""")

MARK_FAILED_SQL = text("""
    UPDATE scraper_jobs
    SET status = 'failed',
        completed_at = now(),
        last_error = :last_error,
        lock_token = NULL,
        locked_at = NULL,
        updated_at = now()
    WHERE id = :id
      AND lock_token = :lock_token
      AND status = 'running'
    RETURNING id
""")

# Runs in the worker's finally block. Every outcome write already clears
# the lock, so on the worker's own paths this matches no row. It only
# clears a lock left behind when another writer (a dashboard status edit)
# moved the row out of 'running' without clearing lock_token. A row still
# 'running' means the completion write did not land; it keeps its lock so
# the stale sweep can recover it.
RELEASE_LOCK_SQL = text("""
    UPDATE scraper_jobs
    SET lock_token = NULL,
        locked_at = NULL,
        updated_at = now()
    WHERE id = :id
      AND lock_token = :lock_token
      AND status <> 'running'
    RETURNING id
""")


# ---------- Recovery ----------

RECLAIM_STALE_SQL = text("""
    UPDATE scraper_jobs
    SET status = 'queued',
        lock_token = NULL,
        locked_at = NULL,
        last_error = :last_error,
        run_at = now(),
        updated_at = now()
    WHERE status = 'running'
      AND job_type = :job_type
      AND locked_at < now() - CAST(:timeout_ms || ' milliseconds' AS INTERVAL)
    RETURNING id
""")

# Attempts are left alone: the claim already consumed one.
FORCE_REQUEUE_SQL = text("""
    UPDATE scraper_jobs
    SET status = 'queued',
        lock_token = NULL,
        locked_at = NULL,
        last_error = :last_error,
        run_at = now(),
        updated_at = now()
    WHERE id = :id
      AND lock_token = :lock_token
      AND status = 'running'
    RETURNING id
""")


# ---------- Application-level operations ----------

UPDATE_PROGRESS_SQL = text("""
    UPDATE scraper_jobs
    SET progress_completed = :completed,
        progress_total = COALESCE(:total, progress_total),
        updated_at = now()
    WHERE id = :id
""")

CANCEL_JOB_SQL = text(f"""
    UPDATE scraper_jobs
    SET status = 'cancelled',
        completed_at = now(),
        lock_token = NULL,
        locked_at = NULL,
        updated_at = now()
    WHERE id = :id
      AND status IN ('queued', 'running')
    RETURNING {JOB_COLUMNS}
""")

SELECT_JOB_SQL = text(f"""
    SELECT {JOB_COLUMNS}
    FROM scraper_jobs
    WHERE id = :id
""")

SELECT_EVENTS_SQL = text("""
    SELECT id, job_id, event_type, payload, created_at
    FROM scraper_job_events
    WHERE job_id = :job_id
    ORDER BY created_at ASC, id ASC
""")

HEALTH_CHECK_SQL = text('SELECT 1')
