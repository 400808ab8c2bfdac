from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import (
    BigInteger,
    DateTime,
    Enum as SQLAlchemyEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from picket.core.types.status import JobStatus


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for PostgreSQL models"""

    pass


def _enum_values(enum_cls: type[JobStatus]) -> list[str]:
    # Store 'queued', not 'QUEUED': raw SQL in brokers/sql.py compares values
    return [member.value for member in enum_cls]


class JobModel(Base):
    """
    One unit of work in the shared queue.

    - id: str # uuid4
    - job_type: str # fwc_lookup, mapping_sheet_scan, incolink_sync
    - status: JobStatus # queued, running, succeeded, failed, cancelled
    - payload: dict # job-type specific input, validated by models/payloads.py
    - priority: int # 1..10, lower is served first
    - run_at: datetime # earliest time the job may be claimed
    - attempts: int # claims taken so far, incremented only by the claim update
    - max_attempts: int # attempts allowed before the job fails permanently
    - locked_at: datetime # when the current claim was taken
    - lock_token: str # proof of ownership of the current claim, NULL when unclaimed
    - last_error: str # most recent failure message
    - progress_completed: int # items done, reported by processors
    - progress_total: int # items expected
    - created_at / updated_at / completed_at: datetime # bookkeeping
    """

    __tablename__ = 'scraper_jobs'
    __table_args__ = (
        # Candidate scan: status + type filter, ordered by priority then age
        Index(
            'idx_scraper_jobs_claimable',
            'status',
            'job_type',
            'priority',
            'created_at',
        ),
        # Stale lock sweep
        Index(
            'idx_scraper_jobs_running_locked_at',
            'locked_at',
            postgresql_where=text("status = 'running'"),
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    job_type: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[JobStatus] = mapped_column(
        SQLAlchemyEnum(
            JobStatus,
            native_enum=False,
            length=16,
            values_callable=_enum_values,
        ),
        nullable=False,
        default=JobStatus.QUEUED,
        server_default=text("'queued'"),
    )
    payload: Mapped[dict[str, Any]] = mapped_column(
        JSONB, nullable=False, server_default=text("'{}'::jsonb"),
    )
    priority: Mapped[int] = mapped_column(
        Integer, nullable=False, default=5, server_default=text('5'),
    )
    run_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=text('NOW()'),
    )

    # Retry budget
    attempts: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=text('0'),
    )
    max_attempts: Mapped[int] = mapped_column(
        Integer, nullable=False, default=5, server_default=text('5'),
    )

    # Claim
    locked_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    lock_token: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    last_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    progress_completed: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=text('0'),
    )
    progress_total: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=text('NOW()'),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=text('NOW()'),
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )


class JobEventModel(Base):
    """Append-only audit trail of job lifecycle events."""

    __tablename__ = 'scraper_job_events'
    __table_args__ = (
        Index('idx_scraper_job_events_job_created', 'job_id', 'created_at'),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    job_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey('scraper_jobs.id', ondelete='CASCADE'),
        nullable=False,
    )
    event_type: Mapped[str] = mapped_column(String(64), nullable=False)
    payload: Mapped[Optional[dict[str, Any]]] = mapped_column(JSONB, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=text('NOW()'),
    )
