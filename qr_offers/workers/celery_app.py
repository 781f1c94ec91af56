from celery import Celery

from qr_offers.core.config import get_settings
from qr_offers.core.logging import configure_logging

settings = get_settings()
configure_logging(settings.log_level)

celery_app = Celery(
    "qr_offers",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=[
        "qr_offers.workers.tasks.maintenance",
    ],
)

celery_app.conf.update(
    task_default_queue="q_normal",
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
)


@celery_app.task(name="qr_offers.workers.celery_app.ping")
def ping() -> str:
    return "pong"
