import copy
import json
import logging
from pathlib import Path

from app.core.config import get_settings
from app.services.llm import list_remote_models

logger = logging.getLogger(__name__)

DEFAULT_CATALOG = {
    "text_models": [
        {"id": "gpt-4o-mini", "label": "GPT-4o mini", "type": "text", "default": True},
        {"id": "gpt-4o", "label": "GPT-4o", "type": "text"},
    ],
    "image_models": [
        {"id": "gpt-image-1", "label": "GPT Image 1", "type": "image", "default": True},
        {"id": "dall-e-3", "label": "DALL-E 3", "type": "image"},
    ],
}

IMAGE_MODEL_PREFIXES = ("dall-e", "gpt-image")
TEXT_MODEL_PREFIXES = ("gpt-", "o1", "o3", "o4")
EXCLUDED_MARKERS = ("audio", "realtime", "transcribe", "tts", "embedding", "search", "moderation")


def load_model_catalog() -> dict:
    path = Path(get_settings().models_file)
    if not path.exists():
        return copy.deepcopy(DEFAULT_CATALOG)
    payload = json.loads(path.read_text(encoding="utf-8"))
    return {
        "text_models": list(payload.get("text_models", [])),
        "image_models": list(payload.get("image_models", [])),
    }


def sync_model_catalog(api_key: str) -> dict:
    """Merge models reported by the provider into the stored catalogue."""
    catalog = load_model_catalog()
    known = {entry["id"] for entry in catalog["text_models"] + catalog["image_models"]}
    added = 0
    for model_id in list_remote_models(api_key):
        if model_id in known or any(marker in model_id for marker in EXCLUDED_MARKERS):
            continue
        if model_id.startswith(IMAGE_MODEL_PREFIXES):
            catalog["image_models"].append({"id": model_id, "label": model_id, "type": "image"})
        elif model_id.startswith(TEXT_MODEL_PREFIXES):
            catalog["text_models"].append({"id": model_id, "label": model_id, "type": "text"})
        else:
            continue
        known.add(model_id)
        added += 1

    path = Path(get_settings().models_file)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(catalog, indent=2), encoding="utf-8")
    logger.info("model_catalog_synced", extra={"added": added, "total": len(known)})
    return catalog
