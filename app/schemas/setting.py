from pydantic import BaseModel, Field


class SettingUpdate(BaseModel):
    key: str
    value: str = Field(min_length=1)


class SettingDelete(BaseModel):
    key: str


class SettingStatus(BaseModel):
    has_key: bool
    masked_key: str | None = None
