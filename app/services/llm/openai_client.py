import base64
import binascii
import json
import re
from collections.abc import Iterator
from contextlib import contextmanager

import openai
from openai import OpenAI
from pydantic import ValidationError

from app.core.config import get_settings
from app.schemas.generation import GeneratedPost
from app.services.publishing.errors import MalformedGeneration, RemoteCallFailed, RemoteTimeout

MAX_IMAGE_PROMPT_CHARS = 1000

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)

DEVELOPER_PROMPT = (
    "Return JSON only. Match this exact schema with correct types: "
    "{title:str, content_html:str, image_prompt:str}. "
    "content_html is the full post body as HTML without <html> or <body> tags. "
    "image_prompt is one sentence describing a featured image for the post."
)


def generate_post_content(row_data: dict, instructions: str, model_id: str, *, api_key: str) -> GeneratedPost:
    client = _client(api_key)
    with _remote_errors("Text generation"):
        completion = client.chat.completions.create(
            model=model_id,
            response_format={"type": "json_object"},
            messages=[
                {"role": "system", "content": instructions},
                {"role": "system", "content": DEVELOPER_PROMPT},
                {"role": "user", "content": json.dumps({"input_data": row_data}, ensure_ascii=False)},
            ],
        )
    content = completion.choices[0].message.content if completion.choices else None
    return parse_generated_post(content or "")


def parse_generated_post(text: str) -> GeneratedPost:
    cleaned = _FENCE_RE.sub("", text.strip()).strip()
    try:
        payload = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        raise MalformedGeneration("Generation response is not valid JSON.") from exc
    if not isinstance(payload, dict):
        raise MalformedGeneration("Generation response must be a JSON object.")
    try:
        return GeneratedPost.model_validate(payload)
    except ValidationError as exc:
        fields = ", ".join(sorted({str(err["loc"][0]) for err in exc.errors() if err.get("loc")}))
        raise MalformedGeneration(f"Generation response failed validation: {fields or 'unknown fields'}.") from exc


def generate_image_bytes(prompt: str, model_id: str, *, api_key: str) -> bytes:
    settings = get_settings()
    client = _client(api_key)
    kwargs = {"model": model_id, "prompt": prompt[:MAX_IMAGE_PROMPT_CHARS], "n": 1, "size": settings.image_size}
    if model_id.startswith("dall-e"):
        kwargs["response_format"] = "b64_json"
    with _remote_errors("Image generation"):
        response = client.images.generate(**kwargs)
    data = response.data or []
    encoded = data[0].b64_json if data else None
    if not encoded:
        raise MalformedGeneration("Image generation returned no image data.")
    try:
        return base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise MalformedGeneration("Image generation returned undecodable image data.") from exc


def list_remote_models(api_key: str) -> list[str]:
    client = _client(api_key)
    with _remote_errors("Model listing"):
        page = client.models.list()
    return sorted({model.id for model in page})


def _client(api_key: str) -> OpenAI:
    settings = get_settings()
    return OpenAI(api_key=api_key, timeout=settings.remote_timeout_seconds, max_retries=0)


@contextmanager
def _remote_errors(stage: str) -> Iterator[None]:
    try:
        yield
    except openai.APITimeoutError as exc:
        timeout = get_settings().remote_timeout_seconds
        raise RemoteTimeout(f"{stage} timed out after {timeout:g}s.") from exc
    except openai.OpenAIError as exc:
        raise RemoteCallFailed(f"{stage} failed: {exc}") from exc
