from celery import Celery

from app.core.config import get_settings

settings = get_settings()

celery_app = Celery(
    "bulkpublisher",
    broker=settings.get_celery_broker_url(),
    backend=settings.get_celery_result_backend(),
    include=["app.workers.tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_time_limit=int(settings.tick_budget_seconds) + 30,
)

celery_app.conf.beat_schedule = {
    "publish-tick": {
        "task": "app.workers.tasks.process_tick_job",
        "schedule": settings.tick_schedule_seconds,
        "options": {"expires": settings.tick_schedule_seconds},
    }
}
