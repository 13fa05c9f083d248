from pydantic import BaseModel


class RowOutcomeRead(BaseModel):
    row_id: str
    status: str
    job_id: str | None = None
    error: str | None = None

    model_config = {"from_attributes": True}


class TickMessage(BaseModel):
    message: str
