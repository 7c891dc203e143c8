# ===== availability_engine/tasks/event_tasks.py =====
from kombu.exceptions import OperationalError as BrokerError
import logging

from availability_engine.config.celery_config import celery_app
from availability_engine.config.database import SessionLocal
from availability_engine.config.settings import get_settings
from availability_engine.services.events.event_dispatcher import get_event_dispatcher
from availability_engine.services.webhook.webhook_service import WebhookService

logger = logging.getLogger(__name__)
settings = get_settings()


@celery_app.task(bind=True, max_retries=3)
def dispatch_domain_events(self, batch_size: int = None):
    """Hand pending outbox events to the waitlist consumer and webhook endpoints"""
    db = SessionLocal()
    try:
        dispatched = get_event_dispatcher().dispatch_pending(db, batch_size=batch_size)
        return {"status": "success", "dispatched": dispatched}
    except Exception as exc:
        logger.error(f"Domain event dispatch failed: {exc}", exc_info=True)
        raise self.retry(exc=exc, countdown=30 * (self.request.retries + 1))
    finally:
        db.close()


@celery_app.task(bind=True, max_retries=3)
def retry_webhook_deliveries(self, batch_size: int = 50):
    """Re-send webhook deliveries whose backoff has elapsed"""
    db = SessionLocal()
    service = WebhookService(db)
    try:
        processed = service.retry_pending_deliveries(batch_size=batch_size)
        if processed:
            logger.info(f"Retried {processed} webhook deliveries")
        return {"status": "success", "processed": processed}
    except Exception as exc:
        logger.error(f"Webhook retry run failed: {exc}", exc_info=True)
        raise self.retry(exc=exc, countdown=60 * (self.request.retries + 1))
    finally:
        service.close()
        db.close()


def schedule_event_dispatch() -> None:
    """
    Ask a worker to dispatch the outbox right away. The events are already
    persisted, so a broker outage only delays them until the next beat run.
    """
    if not settings.EVENT_DISPATCH_ON_COMMIT:
        return
    try:
        dispatch_domain_events.delay()
    except BrokerError as e:
        logger.warning(f"Could not queue event dispatch, leaving it to the periodic run: {e}")
