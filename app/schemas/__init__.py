from app.schemas.generation import GeneratedPost
from app.schemas.job import JobDetail, JobRead, JobRowRead
from app.schemas.publish import PublishResponse
from app.schemas.setting import SettingDelete, SettingStatus, SettingUpdate
from app.schemas.site import SiteCreate, SiteRead, SiteUpdate
from app.schemas.tick import RowOutcomeRead, TickMessage

__all__ = [
    "GeneratedPost",
    "JobRead",
    "JobDetail",
    "JobRowRead",
    "PublishResponse",
    "RowOutcomeRead",
    "TickMessage",
    "SiteCreate",
    "SiteUpdate",
    "SiteRead",
    "SettingUpdate",
    "SettingDelete",
    "SettingStatus",
]
