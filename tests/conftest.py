import os
import threading
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

os.environ["DATABASE_URL"] = "sqlite:///./test.db"
os.environ["AUTO_CREATE_TABLES"] = "true"
os.environ["ENCRYPTION_KEY"] = "aLxM0wHk0w0oVx3G9iYfn7lr5J2v3xH5cM8D6lQ1t2Q="
os.environ["OPENAI_API_KEY"] = "test-key"
os.environ["CRON_SECRET"] = ""
os.environ["MODELS_FILE"] = "./test-models.json"
os.environ["RATE_LIMIT_PER_MINUTE"] = "1000"
os.environ["TICK_MAX_CONCURRENCY"] = "4"

from app.core.security import encrypt_text
from app.db.base import Base
from app.db.session import SessionLocal, engine
from app.main import create_app
from app.models.site import Site
from app.schemas.generation import GeneratedPost
from app.services.publishing.errors import RemoteCallFailed, RemoteTimeout


class FakeRemotes:
    """Stands in for the generation and WordPress clients.

    Rows steer failures through their payload: ``{"fail_stage": "generate"}``
    (or ``image``, ``upload``, ``publish``, ``timeout``).
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._next_id = 100
        self.generated: list[dict] = []
        self.images: list[tuple[str, str]] = []
        self.uploads: list[tuple[str, str]] = []
        self.published: list[dict] = []

    def _new_id(self) -> int:
        with self._lock:
            self._next_id += 1
            return self._next_id

    def generate_post_content(self, row_data, instructions, model_id, *, api_key):
        with self._lock:
            self.generated.append({"row_data": row_data, "instructions": instructions, "model_id": model_id})
        stage = row_data.get("fail_stage")
        if stage == "generate":
            raise RemoteCallFailed("Text generation failed: upstream error")
        if stage == "timeout":
            raise RemoteTimeout("Text generation timed out after 20s.")
        topic = row_data.get("topic", "untitled")
        return GeneratedPost(
            title=f"Post about {topic}",
            body=f"<p>{topic}</p>",
            image_instruction=row_data.get("image_hint"),
        )

    def generate_image_bytes(self, prompt, model_id, *, api_key):
        with self._lock:
            self.images.append((prompt, model_id))
        if "broken" in prompt:
            raise RemoteCallFailed("Image generation failed: content policy")
        return b"\x89PNG fake"

    def upload_media(self, site, image_bytes, filename="image.png"):
        with self._lock:
            self.uploads.append((site.id, filename))
        return self._new_id()

    def publish_post(self, site, title, body, media_id=None, status="publish"):
        if "publish" in title:
            raise RemoteCallFailed("Post publish failed with HTTP 500: oops")
        with self._lock:
            self.published.append({"site_id": site.id, "title": title, "media_id": media_id, "status": status})
        return self._new_id()


@pytest.fixture(autouse=True)
def fake_remotes(monkeypatch):
    fakes = FakeRemotes()
    target = "app.services.publishing.manager"
    monkeypatch.setattr(f"{target}.generate_post_content", fakes.generate_post_content)
    monkeypatch.setattr(f"{target}.generate_image_bytes", fakes.generate_image_bytes)
    monkeypatch.setattr(f"{target}.upload_media", fakes.upload_media)
    monkeypatch.setattr(f"{target}.publish_post", fakes.publish_post)
    return fakes


@pytest.fixture(autouse=True)
def reset_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)
    # Pooled connections would keep writing to the unlinked file.
    engine.dispose()
    for leftover in (Path("test.db"), Path("test-models.json")):
        if leftover.exists():
            leftover.unlink()


@pytest.fixture()
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def site(db):
    record = Site(
        id="site_1",
        name="Main Blog",
        url="https://blog.example.com",
        username="editor",
        encrypted_app_password=encrypt_text("abcd efgh ijkl"),
    )
    db.add(record)
    db.commit()
    return record


@pytest.fixture()
def client():
    app = create_app()
    with TestClient(app) as test_client:
        yield test_client
