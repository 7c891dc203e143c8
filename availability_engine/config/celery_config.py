"""Celery application factory"""
from celery import Celery
from celery.schedules import crontab
from kombu import Queue

from availability_engine.config.settings import get_settings

settings = get_settings()


def create_celery_app() -> Celery:
    """Create and configure the Celery application"""
    celery_app = Celery(
        "availability_engine",
        broker=settings.CELERY_BROKER_URL,
        backend=settings.CELERY_RESULT_BACKEND,
        include=[
            "availability_engine.tasks.event_tasks",
            "availability_engine.tasks.waitlist_tasks",
        ],
    )

    # Configure Celery
    celery_app.conf.update(
        task_serializer=settings.CELERY_TASK_SERIALIZER,
        accept_content=["json"],
        result_serializer="json",
        timezone="UTC",
        enable_utc=True,
        task_always_eager=settings.CELERY_TASK_ALWAYS_EAGER,

        # Task routing
        task_routes={
            "availability_engine.tasks.event_tasks.*": {"queue": "events"},
            "availability_engine.tasks.waitlist_tasks.*": {"queue": "maintenance"},
        },

        # Queue definitions
        task_queues=(
            Queue("events", routing_key="events"),
            Queue("maintenance", routing_key="maintenance"),
        ),

        # Worker settings
        worker_max_tasks_per_child=1000,
        worker_prefetch_multiplier=1,
        task_acks_late=True,

        broker_connection_retry_on_startup=True,

        beat_schedule={
            "dispatch-domain-events": {
                "task": "availability_engine.tasks.event_tasks.dispatch_domain_events",
                "schedule": 30.0,
            },
            "retry-webhook-deliveries": {
                "task": "availability_engine.tasks.event_tasks.retry_webhook_deliveries",
                "schedule": 60.0,
            },
            "expire-waitlist-entries": {
                "task": "availability_engine.tasks.waitlist_tasks.expire_waitlist_entries",
                "schedule": crontab(minute=0),
            },
        },
    )

    return celery_app


# Create the Celery app instance
celery_app = create_celery_app()
