import json
import logging
from collections.abc import Mapping, Sequence
from datetime import date, datetime, time
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.models.job import Job
from app.models.job_row import JobRow
from app.services.publishing.errors import EmptyBatch, MissingSiteReference, MissingTextModel
from app.services.publishing.state import JOB_PENDING, ROW_PENDING

logger = logging.getLogger(__name__)


def serialize_row_payload(row: Mapping[str, Any]) -> str:
    """Canonical text form of a batch record; field order is preserved."""
    return json.dumps(dict(row), ensure_ascii=False, default=_json_default)


def _json_default(value: object) -> str:
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    return str(value)


def dispatch_job(
    db: Session,
    *,
    site_id: str,
    rows: Sequence[Mapping[str, Any]],
    text_model_id: str | None = None,
    image_model_id: str | None = None,
    instructions: str | None = None,
) -> str:
    settings = get_settings()
    rows = list(rows)
    if not rows:
        raise EmptyBatch("The uploaded batch contains no rows.")
    if not (site_id or "").strip():
        raise MissingSiteReference("A target site is required.")
    resolved_text_model = (text_model_id or "").strip() or settings.default_text_model.strip()
    if not resolved_text_model:
        raise MissingTextModel("A text model is required and no default is configured.")

    resolved_instructions = (instructions or "").strip() or settings.default_generation_instructions
    job = Job(
        site_id=site_id.strip(),
        status=JOB_PENDING,
        total_rows=len(rows),
        processed_rows=0,
        instructions=resolved_instructions,
    )
    try:
        db.add(job)
        db.flush()
        db.add_all(
            [
                JobRow(
                    job_id=job.id,
                    row_index=index,
                    status=ROW_PENDING,
                    text_model_id=resolved_text_model,
                    image_model_id=(image_model_id or "").strip() or None,
                    input_data=serialize_row_payload(row),
                )
                for index, row in enumerate(rows)
            ]
        )
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise

    logger.info("job_dispatched", extra={"job_id": job.id, "site_id": job.site_id, "total_rows": job.total_rows})
    return job.id
