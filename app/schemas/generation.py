from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class GeneratedPost(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    title: str = Field(min_length=1, max_length=500)
    body: str = Field(min_length=1, validation_alias=AliasChoices("content_html", "body", "content"))
    image_instruction: str | None = Field(
        default=None,
        validation_alias=AliasChoices("image_prompt", "image_instruction"),
    )
