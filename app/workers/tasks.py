from dataclasses import asdict

from app.core.config import get_settings
from app.services.publishing.manager import process_tick
from app.services.publishing.types import TickIdle
from app.workers.celery_app import celery_app


@celery_app.task(name="app.workers.tasks.process_tick_job")
def process_tick_job(limit: int | None = None) -> dict:
    settings = get_settings()
    effective_limit = min(limit or settings.tick_default_limit, settings.tick_max_limit)
    result = process_tick(effective_limit)
    if isinstance(result, TickIdle):
        return {"message": result.message}
    return {"outcomes": [asdict(outcome) for outcome in result]}
