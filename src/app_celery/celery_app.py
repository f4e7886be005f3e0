from celery import Celery
from celery.signals import worker_process_init
from src.core.config import settings
from src.core.database_sync import mongodb_sync

celery_app = Celery(
    "vod_site",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=["src.app_celery.tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    result_expires=3600,
    task_default_queue=settings.CELERY_VIEWS_QUEUE,
    # publishing happens inside a request; give up quickly when the broker is down
    broker_connection_timeout=settings.CELERY_PUBLISH_TIMEOUT_SECONDS,
    task_publish_retry_policy={
        "max_retries": settings.CELERY_PUBLISH_MAX_RETRIES,
        "interval_start": 0,
        "interval_step": 0.2,
        "interval_max": 0.5,
    },
)


@worker_process_init.connect
def init_worker(**kwargs):
    # one pymongo client per forked worker process
    mongodb_sync.connect()
