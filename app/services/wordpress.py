"""WordPress REST client used by the publish stage.

Authenticates with per-site application passwords (HTTP Basic) against
``{site.url}/wp-json/wp/v2``. Every request carries the configured remote
timeout and no retries.
"""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass

import httpx

from app.core.config import get_settings
from app.services.publishing.errors import RemoteCallFailed, RemoteTimeout

logger = logging.getLogger(__name__)

MAX_ERROR_BODY_CHARS = 300


@dataclass(slots=True)
class SiteConfig:
    id: str
    url: str
    username: str
    app_password: str

    @property
    def api_root(self) -> str:
        return f"{self.url.rstrip('/')}/wp-json/wp/v2"


def upload_media(site: SiteConfig, image_bytes: bytes, filename: str = "image.png") -> int:
    with _client(site) as client, _remote_errors("Media upload", site):
        response = client.post(
            "/media",
            content=image_bytes,
            headers={
                "Content-Disposition": f'attachment; filename="{filename}"',
                "Content-Type": "image/png",
            },
        )
        response.raise_for_status()
        return _extract_id(response, "Media upload")


def publish_post(
    site: SiteConfig,
    title: str,
    body: str,
    media_id: int | None = None,
    status: str = "publish",
) -> int:
    payload: dict = {"title": title, "content": body, "status": status}
    if media_id is not None:
        payload["featured_media"] = media_id
    with _client(site) as client, _remote_errors("Post publish", site):
        response = client.post("/posts", json=payload)
        response.raise_for_status()
        return _extract_id(response, "Post publish")


def _client(site: SiteConfig) -> httpx.Client:
    return httpx.Client(
        base_url=site.api_root,
        auth=(site.username, site.app_password),
        timeout=get_settings().remote_timeout_seconds,
    )


def _extract_id(response: httpx.Response, stage: str) -> int:
    try:
        return int(response.json()["id"])
    except (ValueError, KeyError, TypeError) as exc:
        raise RemoteCallFailed(f"{stage} returned no identifier.") from exc


@contextmanager
def _remote_errors(stage: str, site: SiteConfig) -> Iterator[None]:
    try:
        yield
    except httpx.TimeoutException as exc:
        timeout = get_settings().remote_timeout_seconds
        raise RemoteTimeout(f"{stage} timed out after {timeout:g}s.") from exc
    except httpx.HTTPStatusError as exc:
        detail = exc.response.text[:MAX_ERROR_BODY_CHARS]
        logger.warning(
            "wordpress_request_rejected",
            extra={"site_id": site.id, "stage": stage, "status_code": exc.response.status_code},
        )
        raise RemoteCallFailed(f"{stage} failed with HTTP {exc.response.status_code}: {detail}") from exc
    except httpx.HTTPError as exc:
        raise RemoteCallFailed(f"{stage} failed: {exc}") from exc
