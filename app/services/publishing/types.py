from dataclasses import dataclass


@dataclass(slots=True)
class RowOutcome:
    row_id: str
    status: str
    job_id: str | None = None
    error: str | None = None


@dataclass(slots=True)
class TickIdle:
    message: str
