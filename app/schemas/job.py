from datetime import datetime

from pydantic import BaseModel, Field


class JobRead(BaseModel):
    id: str
    site_id: str
    status: str
    total_rows: int
    processed_rows: int
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class JobDetail(JobRead):
    instructions: str
    row_counts: dict[str, int] = Field(default_factory=dict)


class JobRowRead(BaseModel):
    id: str
    job_id: str
    row_index: int
    status: str
    error_code: str | None
    error_message: str | None
    text_model_id: str
    image_model_id: str | None
    post_id: int | None
    media_id: int | None

    model_config = {"from_attributes": True}
