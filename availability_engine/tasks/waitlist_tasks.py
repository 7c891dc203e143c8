# ===== availability_engine/tasks/waitlist_tasks.py =====
import logging

from availability_engine.config.celery_config import celery_app
from availability_engine.config.database import SessionLocal
from availability_engine.services.waitlist.waitlist_service import WaitlistService

logger = logging.getLogger(__name__)


@celery_app.task(bind=True, max_retries=3)
def expire_waitlist_entries(self):
    """Mark waitlist entries past their expiry as expired"""
    db = SessionLocal()
    try:
        expired = WaitlistService.expire_entries(db)
        return {"status": "success", "expired": expired}
    except Exception as exc:
        logger.error(f"Waitlist expiry failed: {exc}", exc_info=True)
        raise self.retry(exc=exc, countdown=300)
    finally:
        db.close()
