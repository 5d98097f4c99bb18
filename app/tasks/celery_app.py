from celery import Celery
from app.config import settings


celery_app = Celery(
    "file_vault",
    broker=settings.CELERY_BROKER_URL,
    include=[
        "app.tasks.activity",
        ]
)
celery_app.autodiscover_tasks(["app.tasks"])


celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_ignore_result=True,
    # a dead broker must fail the publish fast, not stall the request
    broker_connection_timeout=2,
    task_publish_retry=False,
)
