"""
Celery application instance and configuration.
"""

from celery import Celery
from celery.schedules import crontab
from celery.signals import worker_process_init

from kbsearch.core.config import settings
from kbsearch.core.logging import setup_logging

# Create Celery application
celery_app = Celery(
    "kbsearch",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
)

# Configure Celery
celery_app.conf.update(
    task_serializer=settings.CELERY_TASK_SERIALIZER,
    result_serializer=settings.CELERY_RESULT_SERIALIZER,
    accept_content=settings.celery_accept_content_list,
    timezone=settings.CELERY_TIMEZONE,
    enable_utc=settings.CELERY_ENABLE_UTC,
    task_track_started=True,
    task_time_limit=30 * 60,  # 30 minutes
    task_soft_time_limit=25 * 60,  # 25 minutes
    result_expires=3600,  # 1 hour
)

# Celery Beat Schedule (Periodic Tasks)
celery_app.conf.beat_schedule = {
    'reembed-stale-content': {
        'task': 'embedding.reembed_stale_content',
        'schedule': crontab(minute=f'*/{settings.REEMBED_INTERVAL_MINUTES}'),
        'kwargs': {'limit': settings.REEMBED_BATCH_SIZE},
        'options': {'queue': 'embedding'},
    },
}

# Task routing
celery_app.conf.task_routes = {
    'embedding.*': {'queue': 'embedding'},
}

# Auto-discover tasks from kbsearch.tasks
celery_app.autodiscover_tasks(['kbsearch.tasks'])


@worker_process_init.connect
def configure_worker_logging(**kwargs) -> None:
    setup_logging()
