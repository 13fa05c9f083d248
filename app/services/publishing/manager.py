"""Tick-driven batch processor.

There is no long-running worker: each call to :func:`process_tick` claims a
bounded slice of pending rows across all active jobs, drives every claimed
row through generate -> optional image -> publish concurrently, records the
outcome and reconciles job status from row statuses. Callers invoke it
repeatedly (cron, Celery beat, manual trigger) until nothing is pending.
"""

import json
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Callable

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.db.session import SessionLocal
from app.models.job import Job
from app.models.job_row import JobRow
from app.services.llm import generate_image_bytes, generate_post_content
from app.services.publishing.errors import PublishingError, SiteConfigMissing
from app.services.publishing.state import (
    ACTIVE_JOB_STATUSES,
    FINAL_ROW_STATUSES,
    ROW_FAILED,
    ROW_SUCCESS,
    claim_pending_rows,
    finalize_row,
    increment_processed_rows,
    mark_running,
    reconcile_job,
    release_claim,
    release_stale_claims,
)
from app.services.publishing.types import RowOutcome, TickIdle
from app.services.sites import get_site_config, resolve_openai_api_key
from app.services.wordpress import publish_post, upload_media

logger = logging.getLogger(__name__)

NO_ACTIVE_JOBS = "No active jobs"
NO_PENDING_ROWS = "No pending rows"
PUBLISH_DISPOSITION = "publish"

OUTCOME_SKIPPED = "skipped"
OUTCOME_DEFERRED = "deferred"


def process_tick(
    limit: int | None = None,
    *,
    session_factory: Callable[[], Session] = SessionLocal,
    budget_seconds: float | None = None,
) -> list[RowOutcome] | TickIdle:
    settings = get_settings()
    limit = settings.tick_default_limit if limit is None else limit
    if limit < 1:
        raise ValueError("limit must be at least 1")
    budget = settings.tick_budget_seconds if budget_seconds is None else budget_seconds
    deadline = time.monotonic() + budget

    db = session_factory()
    try:
        active_ids = list(
            db.scalars(select(Job.id).where(Job.status.in_(ACTIVE_JOB_STATUSES)).order_by(Job.created_at, Job.id)).all()
        )
        if not active_ids:
            return TickIdle(NO_ACTIVE_JOBS)

        release_stale_claims(db, active_ids)
        claims = claim_pending_rows(db, active_ids, limit)
        db.commit()

        if not claims:
            for job_id in active_ids:
                reconcile_job(db, job_id)
            db.commit()
            return TickIdle(NO_PENDING_ROWS)
    finally:
        db.close()

    logger.info("tick_started", extra={"limit": limit, "claimed": len(claims), "active_jobs": len(active_ids)})
    workers = max(1, min(len(claims), settings.tick_max_concurrency))
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="tick-row") as pool:
        futures = [pool.submit(_run_row, row_id, token, session_factory, deadline) for row_id, token in claims]
        outcomes = [future.result() for future in futures]

    # Deferred and skipped rows did no work, so their jobs stay pending.
    worked_ids = sorted(
        {outcome.job_id for outcome in outcomes if outcome.job_id and outcome.status in FINAL_ROW_STATUSES}
    )
    db = session_factory()
    try:
        mark_running(db, worked_ids)
        db.commit()
        for job_id in sorted({outcome.job_id for outcome in outcomes if outcome.job_id}):
            reconcile_job(db, job_id)
        db.commit()
    finally:
        db.close()

    logger.info(
        "tick_finished",
        extra={
            "processed": len(outcomes),
            "succeeded": sum(1 for outcome in outcomes if outcome.status == ROW_SUCCESS),
            "failed": sum(1 for outcome in outcomes if outcome.status == ROW_FAILED),
        },
    )
    return outcomes


def _run_row(row_id: str, claim_token: str, session_factory: Callable[[], Session], deadline: float) -> RowOutcome:
    db = session_factory()
    try:
        row = db.get(JobRow, row_id)
        if row is None:
            return RowOutcome(row_id=row_id, status=OUTCOME_SKIPPED, error="Row not found")
        job_id = row.job_id

        if time.monotonic() >= deadline:
            release_claim(db, row_id, claim_token)
            db.commit()
            logger.info("row_deferred", extra={"row_id": row_id, "job_id": job_id})
            return RowOutcome(row_id=row_id, status=OUTCOME_DEFERRED, job_id=job_id)

        job = db.get(Job, job_id)
        if job is None:
            release_claim(db, row_id, claim_token)
            db.commit()
            logger.warning("row_skipped_missing_job", extra={"row_id": row_id, "job_id": job_id})
            return RowOutcome(row_id=row_id, status=OUTCOME_SKIPPED, error="Job not found")

        try:
            post_id, media_id = _publish_row(db, job, row)
        except SQLAlchemyError:
            raise
        except Exception as exc:  # noqa: BLE001
            error_code = exc.code if isinstance(exc, PublishingError) else "unexpected_error"
            error_message = str(exc) or exc.__class__.__name__
            logger.warning(
                "row_failed",
                extra={"row_id": row_id, "job_id": job_id, "error_code": error_code, "error": error_message},
            )
            won = finalize_row(
                db,
                row_id,
                claim_token,
                ROW_FAILED,
                error_code=error_code,
                error_message=error_message,
            )
            outcome = RowOutcome(row_id=row_id, status=ROW_FAILED, job_id=job_id, error=error_message)
        else:
            won = finalize_row(db, row_id, claim_token, ROW_SUCCESS, post_id=post_id, media_id=media_id)
            outcome = RowOutcome(row_id=row_id, status=ROW_SUCCESS, job_id=job_id)

        if won:
            increment_processed_rows(db, job_id)
        else:
            logger.warning("row_claim_lost", extra={"row_id": row_id, "job_id": job_id})
        db.commit()

        reconcile_job(db, job_id)
        db.commit()
        return outcome
    except SQLAlchemyError:
        db.rollback()
        logger.exception("row_store_error", extra={"row_id": row_id})
        raise
    finally:
        db.close()


def _publish_row(db: Session, job: Job, row: JobRow) -> tuple[int, int | None]:
    row_data = json.loads(row.input_data or "{}")
    job_id, instructions = job.id, job.instructions
    row_id, row_index = row.id, row.row_index
    text_model_id, image_model_id = row.text_model_id, row.image_model_id

    site = get_site_config(db, job.site_id)
    if site is None:
        raise SiteConfigMissing(f"Site config not found for site_id: {job.site_id}")
    api_key = resolve_openai_api_key(db)
    # Release the read transaction before the remote calls.
    db.commit()

    generated = generate_post_content(row_data, instructions, text_model_id, api_key=api_key)

    media_id = None
    if image_model_id:
        image_prompt = generated.image_instruction or generated.title
        image_bytes = generate_image_bytes(image_prompt, image_model_id, api_key=api_key)
        media_id = upload_media(site, image_bytes, filename=f"job-{job_id[:8]}-row-{row_index + 1}.png")

    post_id = publish_post(site, generated.title, generated.body, media_id=media_id, status=PUBLISH_DISPOSITION)
    logger.info("row_published", extra={"row_id": row_id, "job_id": job_id, "post_id": post_id, "media_id": media_id})
    return post_id, media_id
