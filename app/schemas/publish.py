from pydantic import BaseModel


class PublishResponse(BaseModel):
    job_id: str
    total_rows: int
    message: str = "Job created successfully"
