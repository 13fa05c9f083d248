from datetime import datetime

from pydantic import BaseModel, Field, HttpUrl


class SiteCreate(BaseModel):
    id: str | None = Field(default=None, min_length=1, max_length=36)
    name: str = Field(min_length=1, max_length=255)
    url: HttpUrl
    username: str = Field(min_length=1, max_length=255)
    app_password: str = Field(min_length=1)


class SiteUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    url: HttpUrl | None = None
    username: str | None = Field(default=None, min_length=1, max_length=255)
    app_password: str | None = Field(default=None, min_length=1)


class SiteRead(BaseModel):
    id: str
    name: str
    url: str
    username: str
    created_at: datetime

    model_config = {"from_attributes": True}
