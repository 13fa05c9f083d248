from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.schemas.publish import PublishResponse
from app.services.parsing import parse_batch_file
from app.services.publishing.dispatcher import dispatch_job
from app.services.publishing.errors import PublishingError
from app.services.storage import read_batch_upload

router = APIRouter(prefix="/publish", tags=["publish"])


@router.post("", response_model=PublishResponse, status_code=status.HTTP_201_CREATED)
async def create_publish_job(
    file: UploadFile = File(...),
    site_id: str = Form(default=""),
    text_model_id: str = Form(default=""),
    image_model_id: str | None = Form(default=None),
    system_prompt: str | None = Form(default=None),
    db: Session = Depends(get_db),
) -> PublishResponse:
    raw_bytes = await read_batch_upload(file)
    try:
        parsed = parse_batch_file(file.filename or "", raw_bytes)
        job_id = dispatch_job(
            db,
            site_id=site_id,
            text_model_id=text_model_id,
            image_model_id=image_model_id,
            rows=parsed.rows,
            instructions=system_prompt,
        )
    except PublishingError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return PublishResponse(job_id=job_id, total_rows=len(parsed.rows))
