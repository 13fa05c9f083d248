from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.models.job import Job
from app.models.job_row import JobRow
from app.schemas.job import JobDetail, JobRead, JobRowRead
from app.services.publishing.state import reconcile_job, row_status_counts

router = APIRouter(prefix="/jobs", tags=["jobs"])


@router.get("", response_model=list[JobRead])
def list_jobs(
    status_filter: str | None = Query(default=None, alias="status"),
    limit: int = Query(default=50, ge=1, le=500),
    db: Session = Depends(get_db),
) -> list[Job]:
    query = select(Job).order_by(Job.created_at.desc()).limit(limit)
    if status_filter:
        query = query.where(Job.status == status_filter)
    return list(db.scalars(query).all())


@router.get("/{job_id}", response_model=JobDetail)
def get_job(job_id: str, db: Session = Depends(get_db)) -> JobDetail:
    job = _get_job_or_404(db, job_id)
    return JobDetail(
        id=job.id,
        site_id=job.site_id,
        status=job.status,
        total_rows=job.total_rows,
        processed_rows=job.processed_rows,
        created_at=job.created_at,
        updated_at=job.updated_at,
        instructions=job.instructions,
        row_counts=row_status_counts(db, job.id),
    )


@router.get("/{job_id}/rows", response_model=list[JobRowRead])
def list_job_rows(job_id: str, db: Session = Depends(get_db)) -> list[JobRow]:
    _get_job_or_404(db, job_id)
    return list(db.scalars(select(JobRow).where(JobRow.job_id == job_id).order_by(JobRow.row_index)).all())


@router.post("/{job_id}/reconcile")
def reconcile(job_id: str, db: Session = Depends(get_db)) -> dict:
    _get_job_or_404(db, job_id)
    changed_to = reconcile_job(db, job_id)
    db.commit()
    current = db.scalar(select(Job.status).where(Job.id == job_id))
    return {"job_id": job_id, "status": current, "changed": changed_to is not None}


@router.delete("/{job_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_job(job_id: str, db: Session = Depends(get_db)) -> None:
    job = _get_job_or_404(db, job_id)
    db.delete(job)
    db.commit()
    return None


def _get_job_or_404(db: Session, job_id: str) -> Job:
    job = db.scalar(select(Job).where(Job.id == job_id))
    if not job:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found")
    return job
