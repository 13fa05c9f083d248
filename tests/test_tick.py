import threading
import time
from datetime import timedelta

import pytest
from sqlalchemy import create_engine, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from app.core.config import get_settings
from app.db.session import SessionLocal
from app.models.common import utcnow
from app.models.job import Job
from app.models.job_row import JobRow
from app.services.publishing.dispatcher import dispatch_job
from app.services.publishing.manager import (
    NO_ACTIVE_JOBS,
    NO_PENDING_ROWS,
    _run_row,
    process_tick,
)
from app.services.publishing.state import claim_pending_rows, release_stale_claims
from app.services.publishing.types import TickIdle


def _dispatch(db, rows, image_model_id=None, site_id="site_1"):
    return dispatch_job(
        db,
        site_id=site_id,
        text_model_id="gpt-4o-mini",
        image_model_id=image_model_id,
        rows=rows,
        instructions="Write a friendly post.",
    )


def _job(db, job_id):
    db.expire_all()
    return db.scalar(select(Job).where(Job.id == job_id))


def _rows(db, job_id):
    db.expire_all()
    return db.scalars(select(JobRow).where(JobRow.job_id == job_id).order_by(JobRow.row_index)).all()


def test_tick_without_active_jobs_is_a_noop(db, site):
    assert process_tick(2) == TickIdle(NO_ACTIVE_JOBS)

    job_id = _dispatch(db, [{"topic": "a"}])
    db.execute(update(Job).where(Job.id == job_id).values(status="completed"))
    db.commit()
    before = _job(db, job_id).updated_at

    assert process_tick(2) == TickIdle(NO_ACTIVE_JOBS)
    assert _job(db, job_id).updated_at == before
    assert _rows(db, job_id)[0].status == "pending"


def test_three_rows_two_ticks_complete(db, site, fake_remotes):
    job_id = _dispatch(db, [{"topic": "a"}, {"topic": "b"}, {"topic": "c"}])

    first = process_tick(2)
    assert len(first) == 2
    assert {outcome.status for outcome in first} == {"success"}
    job = _job(db, job_id)
    assert job.status == "running"
    assert job.processed_rows == 2

    second = process_tick(2)
    assert len(second) == 1
    assert second[0].status == "success"
    job = _job(db, job_id)
    assert job.status == "completed"
    assert job.processed_rows == 3

    rows = _rows(db, job_id)
    assert all(row.status == "success" and row.post_id for row in rows)
    assert {outcome.row_id for outcome in first + second} == {row.id for row in rows}
    assert fake_remotes.generated[0]["instructions"] == "Write a friendly post."


def test_last_row_failure_makes_job_partial(db, site):
    job_id = _dispatch(db, [{"topic": "a"}, {"topic": "b"}, {"topic": "c", "fail_stage": "generate"}])

    process_tick(2)
    assert _job(db, job_id).status == "running"

    [outcome] = process_tick(2)
    assert outcome.status == "failed"
    assert outcome.error
    job = _job(db, job_id)
    assert job.status == "partial"
    assert job.processed_rows == 3


def test_generation_failure_is_recorded_on_row(db, site, fake_remotes):
    job_id = _dispatch(db, [{"topic": "a", "fail_stage": "generate"}, {"topic": "b"}])

    outcomes = process_tick(5)

    by_status = {outcome.status: outcome for outcome in outcomes}
    assert set(by_status) == {"failed", "success"}
    failed_row, ok_row = _rows(db, job_id)
    assert failed_row.status == "failed"
    assert failed_row.error_code == "remote_error"
    assert "upstream error" in failed_row.error_message
    assert failed_row.post_id is None
    assert ok_row.status == "success"
    job = _job(db, job_id)
    assert job.processed_rows == 2
    assert job.status == "partial"
    assert len(fake_remotes.published) == 1


def test_timeout_is_a_row_failure(db, site):
    job_id = _dispatch(db, [{"topic": "slow", "fail_stage": "timeout"}])
    [outcome] = process_tick(1)
    assert outcome.status == "failed"
    [row] = _rows(db, job_id)
    assert row.error_code == "timeout"
    assert "timed out" in row.error_message


def test_image_flow_uploads_and_attaches_media(db, site, fake_remotes):
    job_id = _dispatch(
        db,
        [{"topic": "cats", "image_hint": "a cat on a sofa"}, {"topic": "dogs"}],
        image_model_id="gpt-image-1",
    )

    outcomes = process_tick(2)

    assert {outcome.status for outcome in outcomes} == {"success"}
    assert sorted(fake_remotes.images) == [("Post about dogs", "gpt-image-1"), ("a cat on a sofa", "gpt-image-1")]
    assert len(fake_remotes.uploads) == 2
    assert all(post["media_id"] is not None for post in fake_remotes.published)
    assert all(post["status"] == "publish" for post in fake_remotes.published)
    rows = _rows(db, job_id)
    assert all(row.media_id is not None and row.post_id is not None for row in rows)


def test_image_failure_fails_whole_row(db, site, fake_remotes):
    job_id = _dispatch(db, [{"topic": "x", "image_hint": "broken image"}], image_model_id="gpt-image-1")

    [outcome] = process_tick(1)

    assert outcome.status == "failed"
    assert fake_remotes.published == []
    [row] = _rows(db, job_id)
    assert row.status == "failed"
    assert row.post_id is None
    assert row.media_id is None


def test_publish_failure_fails_row(db, site):
    job_id = _dispatch(db, [{"topic": "publish me"}])
    [outcome] = process_tick(1)
    assert outcome.status == "failed"
    assert "HTTP 500" in _rows(db, job_id)[0].error_message


def test_missing_site_config_fails_row(db):
    job_id = _dispatch(db, [{"topic": "a"}], site_id="unknown-site")

    [outcome] = process_tick(1)

    assert outcome.status == "failed"
    [row] = _rows(db, job_id)
    assert row.error_code == "site_config_missing"
    assert "unknown-site" in row.error_message
    assert _job(db, job_id).status == "partial"


def test_missing_api_key_fails_row(db, site, monkeypatch):
    monkeypatch.setattr(get_settings(), "openai_api_key", "")
    job_id = _dispatch(db, [{"topic": "a"}])

    [outcome] = process_tick(1)

    assert outcome.status == "failed"
    assert _rows(db, job_id)[0].error_code == "api_key_missing"


def test_resolved_rows_are_never_reprocessed(db, site, fake_remotes):
    job_id = _dispatch(db, [{"topic": "a"}, {"topic": "b"}])

    process_tick(5)
    assert _job(db, job_id).status == "completed"
    # A completed job is no longer active.
    assert process_tick(5) == TickIdle(NO_ACTIVE_JOBS)
    assert process_tick(5) == TickIdle(NO_ACTIVE_JOBS)

    assert len(fake_remotes.generated) == 2
    assert _job(db, job_id).processed_rows == 2


def test_idle_tick_reconciles_resolved_jobs(db, site):
    job_id = _dispatch(db, [{"topic": "a"}, {"topic": "b"}])
    db.execute(update(JobRow).where(JobRow.job_id == job_id, JobRow.row_index == 0).values(status="success"))
    db.execute(update(JobRow).where(JobRow.job_id == job_id, JobRow.row_index == 1).values(status="failed"))
    db.execute(update(Job).where(Job.id == job_id).values(status="running", processed_rows=2))
    db.commit()

    assert process_tick(2) == TickIdle(NO_PENDING_ROWS)
    assert _job(db, job_id).status == "partial"

    assert process_tick(2) == TickIdle(NO_PENDING_ROWS)
    assert _job(db, job_id).status == "partial"


def test_rows_are_selected_oldest_job_first(db, site):
    first_job = _dispatch(db, [{"topic": "a"}, {"topic": "b"}])
    time.sleep(0.01)
    second_job = _dispatch(db, [{"topic": "c"}])

    outcomes = process_tick(2)

    assert {outcome.job_id for outcome in outcomes} == {first_job}
    assert _job(db, first_job).status == "completed"
    # No row of the second job ran, so it is still pending.
    assert _job(db, second_job).status == "pending"
    assert _rows(db, second_job)[0].status == "pending"


def test_expired_budget_leaves_rows_pending(db, site, fake_remotes):
    job_id = _dispatch(db, [{"topic": "a"}, {"topic": "b"}])

    outcomes = process_tick(2, budget_seconds=0)

    assert [outcome.status for outcome in outcomes] == ["deferred", "deferred"]
    assert fake_remotes.generated == []
    rows = _rows(db, job_id)
    assert all(row.status == "pending" and row.claim_token is None for row in rows)
    job = _job(db, job_id)
    assert job.processed_rows == 0
    assert job.status == "pending"

    assert {outcome.status for outcome in process_tick(2)} == {"success"}


def test_row_of_vanished_job_is_skipped_without_changes(db, site):
    job_id = _dispatch(db, [{"topic": "a"}])
    [(row_id, token)] = claim_pending_rows(db, [job_id], limit=1)
    db.execute(update(JobRow).where(JobRow.id == row_id).values(job_id="ghost-job"))
    db.commit()

    outcome = _run_row(row_id, token, SessionLocal, time.monotonic() + 60)

    assert outcome.status == "skipped"
    assert outcome.error == "Job not found"
    db.expire_all()
    row = db.get(JobRow, row_id)
    assert row.status == "pending"
    assert row.error_message is None


def test_store_failure_propagates(tmp_path):
    broken_engine = create_engine(f"sqlite:///{tmp_path / 'missing' / 'store.db'}")
    broken_factory = sessionmaker(bind=broken_engine)

    with pytest.raises(SQLAlchemyError):
        process_tick(2, session_factory=broken_factory)


def test_invalid_limit_is_rejected():
    with pytest.raises(ValueError):
        process_tick(0)


def test_overlapping_ticks_process_each_row_once(db, site, fake_remotes, monkeypatch):
    job_id = _dispatch(db, [{"topic": f"t{index}"} for index in range(6)])

    def slow_generate(*args, **kwargs):
        time.sleep(0.05)
        return fake_remotes.generate_post_content(*args, **kwargs)

    monkeypatch.setattr("app.services.publishing.manager.generate_post_content", slow_generate)
    errors = []

    def run_tick():
        try:
            process_tick(3)
        except Exception as exc:  # noqa: BLE001
            errors.append(exc)

    threads = [threading.Thread(target=run_tick) for _ in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    assert errors == []

    # Drain anything the overlapping ticks left behind.
    for _ in range(6):
        if process_tick(3) == TickIdle(NO_ACTIVE_JOBS):
            break

    topics = sorted(entry["row_data"]["topic"] for entry in fake_remotes.generated)
    assert topics == [f"t{index}" for index in range(6)]
    job = _job(db, job_id)
    assert job.processed_rows == 6
    assert job.status == "completed"


def test_row_finished_after_losing_its_claim_is_not_counted(db, site, fake_remotes):
    job_id = _dispatch(db, [{"topic": "a"}])
    [(row_id, old_token)] = claim_pending_rows(db, [job_id], limit=1)
    ttl = get_settings().claim_ttl_seconds
    db.execute(update(JobRow).where(JobRow.id == row_id).values(claimed_at=utcnow() - timedelta(seconds=ttl + 1)))
    db.commit()
    assert release_stale_claims(db, [job_id]) == 1
    [(_, new_token)] = claim_pending_rows(db, [job_id], limit=1)
    db.commit()

    _run_row(row_id, old_token, SessionLocal, time.monotonic() + 60)

    assert len(fake_remotes.published) == 1
    [row] = _rows(db, job_id)
    assert row.status == "in_flight"
    assert row.claim_token == new_token
    assert row.post_id is None
    job = _job(db, job_id)
    assert job.processed_rows == 0
    assert job.status == "pending"
