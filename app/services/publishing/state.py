"""Job and row state transitions.

Every mutation here is a single-row conditional UPDATE keyed by primary key
and the expected prior state, so overlapping ticks never apply the same
transition twice. Callers own the transaction and must commit.
"""

import logging
import uuid
from collections.abc import Iterable, Mapping
from datetime import timedelta

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.models.common import utcnow
from app.models.job import Job
from app.models.job_row import JobRow

logger = logging.getLogger(__name__)

JOB_PENDING = "pending"
JOB_RUNNING = "running"
JOB_PARTIAL = "partial"
JOB_COMPLETED = "completed"
JOB_FAILED = "failed"

ROW_PENDING = "pending"
ROW_IN_FLIGHT = "in_flight"
ROW_SUCCESS = "success"
ROW_FAILED = "failed"

ACTIVE_JOB_STATUSES = (JOB_PENDING, JOB_RUNNING, JOB_PARTIAL)
UNFINISHED_ROW_STATUSES = (ROW_PENDING, ROW_IN_FLIGHT)
FINAL_ROW_STATUSES = (ROW_SUCCESS, ROW_FAILED)


def derive_job_status(current: str, counts: Mapping[str, int]) -> str:
    """Project a job status from the multiset of its row statuses.

    Unfinished work keeps the current status. Once every row is resolved the
    job is ``partial`` if any row failed, otherwise ``completed``.
    """
    unfinished = sum(counts.get(status, 0) for status in UNFINISHED_ROW_STATUSES)
    if unfinished > 0:
        return current
    if counts.get(ROW_FAILED, 0) > 0:
        return JOB_PARTIAL
    return JOB_COMPLETED


def row_status_counts(db: Session, job_id: str) -> dict[str, int]:
    rows = db.execute(
        select(JobRow.status, func.count(JobRow.id)).where(JobRow.job_id == job_id).group_by(JobRow.status)
    ).all()
    return {status: int(count) for status, count in rows}


def reconcile_job(db: Session, job_id: str) -> str | None:
    """Re-derive a job's status from its rows. Returns the new status when it changed."""
    current = db.scalar(select(Job.status).where(Job.id == job_id))
    if current is None:
        return None
    new_status = derive_job_status(current, row_status_counts(db, job_id))
    if new_status == current:
        return None
    result = db.execute(
        update(Job)
        .where(Job.id == job_id, Job.status == current)
        .values(status=new_status, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        return None
    logger.info("job_reconciled", extra={"job_id": job_id, "from_status": current, "to_status": new_status})
    return new_status


def mark_running(db: Session, job_ids: Iterable[str]) -> int:
    ids = list(job_ids)
    if not ids:
        return 0
    result = db.execute(
        update(Job)
        .where(Job.id.in_(ids), Job.status == JOB_PENDING)
        .values(status=JOB_RUNNING, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    return result.rowcount or 0


def claim_pending_rows(db: Session, job_ids: Iterable[str], limit: int) -> list[tuple[str, str]]:
    """Claim up to ``limit`` pending rows, oldest job first, in batch order.

    Returns ``(row_id, claim_token)`` pairs for the rows this caller won.
    """
    ids = list(job_ids)
    if not ids or limit < 1:
        return []
    candidates = db.scalars(
        select(JobRow.id)
        .join(Job, Job.id == JobRow.job_id)
        .where(JobRow.job_id.in_(ids), JobRow.status == ROW_PENDING)
        .order_by(Job.created_at, Job.id, JobRow.row_index)
        .limit(limit)
    ).all()
    claimed: list[tuple[str, str]] = []
    now = utcnow()
    for row_id in candidates:
        token = str(uuid.uuid4())
        result = db.execute(
            update(JobRow)
            .where(JobRow.id == row_id, JobRow.status == ROW_PENDING)
            .values(status=ROW_IN_FLIGHT, claimed_at=now, claim_token=token, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            claimed.append((row_id, token))
    return claimed


def release_claim(db: Session, row_id: str, claim_token: str) -> bool:
    result = db.execute(
        update(JobRow)
        .where(JobRow.id == row_id, JobRow.status == ROW_IN_FLIGHT, JobRow.claim_token == claim_token)
        .values(status=ROW_PENDING, claimed_at=None, claim_token=None, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def release_stale_claims(db: Session, job_ids: Iterable[str]) -> int:
    ids = list(job_ids)
    if not ids:
        return 0
    cutoff = utcnow() - timedelta(seconds=get_settings().claim_ttl_seconds)
    result = db.execute(
        update(JobRow)
        .where(
            JobRow.job_id.in_(ids),
            JobRow.status == ROW_IN_FLIGHT,
            JobRow.claimed_at < cutoff,
        )
        .values(status=ROW_PENDING, claimed_at=None, claim_token=None, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    released = result.rowcount or 0
    if released:
        logger.warning("stale_claims_released", extra={"released": released})
    return released


def finalize_row(
    db: Session,
    row_id: str,
    claim_token: str,
    status: str,
    *,
    post_id: int | None = None,
    media_id: int | None = None,
    error_code: str | None = None,
    error_message: str | None = None,
) -> bool:
    """Resolve a claimed row. Only the holder of the current claim can win."""
    if status not in FINAL_ROW_STATUSES:
        raise ValueError(f"Not a final row status: {status}")
    result = db.execute(
        update(JobRow)
        .where(JobRow.id == row_id, JobRow.status == ROW_IN_FLIGHT, JobRow.claim_token == claim_token)
        .values(
            status=status,
            post_id=post_id,
            media_id=media_id,
            error_code=error_code,
            error_message=error_message,
            updated_at=utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def increment_processed_rows(db: Session, job_id: str) -> bool:
    result = db.execute(
        update(Job)
        .where(Job.id == job_id, Job.processed_rows < Job.total_rows)
        .values(processed_rows=Job.processed_rows + 1, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1
