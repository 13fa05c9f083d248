from app.models.job import Job
from app.models.job_row import JobRow
from app.models.setting import Setting
from app.models.site import Site

__all__ = ["Job", "JobRow", "Site", "Setting"]
