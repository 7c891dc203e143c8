"""
Celery worker entry point
Dispatches domain events, retries webhooks and expires waitlist entries
"""
import logging
from celery.signals import worker_ready, worker_shutdown

from availability_engine.config.celery_config import celery_app
from availability_engine.config.settings import get_settings
from availability_engine.utils.my_logging import setup_logging

# Setup logging first
settings = get_settings()
setup_logging(verbose=settings.DEBUG)
logger = logging.getLogger(__name__)


@worker_ready.connect
def worker_ready_handler(sender=None, **kwargs):
    logger.info("Celery worker ready")
    logger.info(f"Registered tasks: {sorted(name for name in celery_app.tasks if name.startswith('availability_engine'))}")


@worker_shutdown.connect
def worker_shutdown_handler(sender=None, **kwargs):
    logger.info("Celery worker shutting down")


if __name__ == "__main__":
    celery_app.start([
        'worker',
        '--loglevel=info',
        '--queues=events,maintenance',
        '--concurrency=4',
        '--max-tasks-per-child=1000'
    ])
