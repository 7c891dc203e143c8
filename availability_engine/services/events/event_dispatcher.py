# availability_engine/services/events/event_dispatcher.py
"""
Delivers outbox events to subscribers.

Subscribers are plain callables taking (db, event). An event is marked
dispatched once every subscriber returned; a raising subscriber leaves it
pending for the next run until EVENT_MAX_ATTEMPTS is reached. Subscribers
commit their own work, so each must tolerate receiving the same event again.
"""
import logging
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

import httpx
from sqlalchemy.orm import Session

from availability_engine.config.settings import get_settings
from availability_engine.models.domain_event import DomainEvent
from availability_engine.services.events import event_publisher
from availability_engine.services.waitlist.waitlist_service import WaitlistService
from availability_engine.services.webhook.webhook_service import WebhookService

logger = logging.getLogger(__name__)
settings = get_settings()

Handler = Callable[[Session, DomainEvent], Any]
ALL_EVENTS = "*"


class EventDispatcher:

    def __init__(self):
        self._subscribers: Dict[str, List[Handler]] = defaultdict(list)

    def subscribe(self, event_type: str, handler: Handler) -> None:
        self._subscribers[event_type].append(handler)

    def handlers_for(self, event_type: str) -> List[Handler]:
        return list(self._subscribers.get(event_type, [])) + list(self._subscribers.get(ALL_EVENTS, []))

    def dispatch(self, db: Session, event: DomainEvent) -> bool:
        try:
            for handler in self.handlers_for(event.event_type):
                handler(db, event)
        except Exception as e:
            db.rollback()
            event.attempts = (event.attempts or 0) + 1
            event.last_error = str(e)[:1000]
            event.status = "failed" if event.attempts >= settings.EVENT_MAX_ATTEMPTS else "pending"
            db.commit()
            logger.error(f"Dispatch of {event.event_type} {event.id} failed (attempt {event.attempts})", exc_info=True)
            return False

        event.status = "dispatched"
        event.attempts = (event.attempts or 0) + 1
        event.dispatched_at = datetime.now(timezone.utc)
        db.commit()
        return True

    def dispatch_pending(self, db: Session, batch_size: Optional[int] = None) -> int:
        """Dispatch pending events oldest first; returns how many succeeded"""
        events = db.query(DomainEvent).filter(
            DomainEvent.status == "pending"
        ).order_by(DomainEvent.created_at.asc()).limit(batch_size or settings.EVENT_DISPATCH_BATCH_SIZE).all()

        dispatched = sum(1 for event in events if self.dispatch(db, event))
        if events:
            logger.info(f"Dispatched {dispatched}/{len(events)} domain events")
        return dispatched


def _notify_waitlist(db: Session, event: DomainEvent) -> None:
    WaitlistService.handle_booking_cancelled(db, event)


def _webhook_handler(http_client: Optional[httpx.Client]) -> Handler:
    def handle(db: Session, event: DomainEvent) -> None:
        service = WebhookService(db, http_client)
        try:
            service.handle_event(event)
        finally:
            service.close()
    return handle


def get_event_dispatcher(http_client: Optional[httpx.Client] = None) -> EventDispatcher:
    """Dispatcher wired with the waitlist consumer and webhook fan-out"""
    dispatcher = EventDispatcher()
    dispatcher.subscribe(event_publisher.BOOKING_CANCELLED, _notify_waitlist)
    dispatcher.subscribe(event_publisher.BOOKING_RESCHEDULED, _notify_waitlist)
    dispatcher.subscribe(ALL_EVENTS, _webhook_handler(http_client))
    return dispatcher
