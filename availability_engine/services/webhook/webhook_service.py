# availability_engine/services/webhook/webhook_service.py
import hashlib
import hmac
import json
import logging
import secrets
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import httpx
from sqlalchemy import or_
from sqlalchemy.orm import Session

from availability_engine.config.settings import get_settings
from availability_engine.core.exceptions import NotFoundError, ValidationError
from availability_engine.models.domain_event import DomainEvent
from availability_engine.models.webhook_delivery import WebhookDelivery
from availability_engine.models.webhook_endpoint import WebhookEndpoint
from availability_engine.services.events.event_publisher import VALID_EVENT_TYPES

logger = logging.getLogger(__name__)
settings = get_settings()

# Delay before attempt N+1: 1min, 5min, 15min, 1hour, 6hours
RETRY_BACKOFF_MINUTES = [1, 5, 15, 60, 360]


class WebhookService:
    """Fans domain events out to business webhook endpoints"""

    def __init__(self, db: Session, http_client: Optional[httpx.Client] = None):
        self.db = db
        self._owns_client = http_client is None
        self.http_client = http_client or httpx.Client(
            timeout=settings.WEBHOOK_TIMEOUT_SECONDS,
            follow_redirects=True
        )

    # ------------------------------------------------------------------
    # Endpoints
    # ------------------------------------------------------------------

    def create_endpoint(
            self,
            business_id: uuid.UUID,
            url: str,
            enabled_events: Optional[List[str]] = None,
            description: Optional[str] = None
    ) -> WebhookEndpoint:
        enabled_events = enabled_events or ["*"]
        unknown = [e for e in enabled_events if e != "*" and e not in VALID_EVENT_TYPES]
        if unknown:
            raise ValidationError(f"Unknown event types: {', '.join(unknown)}", code="invalid_event_type")

        endpoint = WebhookEndpoint(
            id=uuid.uuid4(),
            business_id=business_id,
            url=url,
            description=description,
            enabled_events=enabled_events,
            secret=secrets.token_hex(32),
            is_active=True,
            consecutive_failures=0,
        )
        self.db.add(endpoint)
        self.db.commit()
        logger.info(f"Registered webhook endpoint {endpoint.id} for business {business_id}")
        return endpoint

    def list_endpoints(self, business_id: uuid.UUID) -> List[WebhookEndpoint]:
        return self.db.query(WebhookEndpoint).filter(
            WebhookEndpoint.business_id == business_id
        ).order_by(WebhookEndpoint.created_at.asc()).all()

    def get_endpoint(self, endpoint_id: uuid.UUID) -> WebhookEndpoint:
        endpoint = self.db.get(WebhookEndpoint, endpoint_id)
        if not endpoint:
            raise NotFoundError(f"Webhook endpoint {endpoint_id} not found", code="webhook_endpoint_not_found")
        return endpoint

    def delete_endpoint(self, endpoint_id: uuid.UUID) -> None:
        self.db.delete(self.get_endpoint(endpoint_id))
        self.db.commit()

    def get_endpoint_deliveries(self, endpoint_id: uuid.UUID, status: Optional[str] = None, limit: int = 100):
        """Delivery log of one endpoint, newest first"""
        query = self.db.query(WebhookDelivery).filter(WebhookDelivery.webhook_endpoint_id == endpoint_id)
        if status:
            query = query.filter(WebhookDelivery.status == status)
        return query.order_by(WebhookDelivery.created_at.desc()).limit(limit).all()

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    def handle_event(self, event: DomainEvent) -> List[WebhookDelivery]:
        """Event dispatcher subscriber: queue and send deliveries for ``event``"""
        deliveries = self.enqueue_for_event(event)
        for delivery in deliveries:
            self.deliver(delivery)
        return deliveries

    def enqueue_for_event(self, event: DomainEvent) -> List[WebhookDelivery]:
        endpoints = self._get_subscribed_endpoints(event.business_id, event.event_type)

        # Redispatch of the same event: existing deliveries go through retry_pending_deliveries
        queued = {
            endpoint_id for (endpoint_id,) in self.db.query(WebhookDelivery.webhook_endpoint_id).filter(
                WebhookDelivery.domain_event_id == event.id
            )
        }
        endpoints = [endpoint for endpoint in endpoints if endpoint.id not in queued]
        if not endpoints:
            return []

        payload = self._build_payload(event)
        deliveries = []
        for endpoint in endpoints:
            delivery = WebhookDelivery(
                id=uuid.uuid4(),
                webhook_endpoint_id=endpoint.id,
                domain_event_id=event.id,
                business_id=event.business_id,
                event_type=event.event_type,
                event_data=payload,
                status="pending",
                attempts=0,
                max_attempts=len(RETRY_BACKOFF_MINUTES),
            )
            self.db.add(delivery)
            deliveries.append(delivery)

        self.db.commit()
        return deliveries

    def deliver(self, delivery: WebhookDelivery) -> bool:
        """
        Attempt a single delivery.

        Returns:
            True if the endpoint answered 2xx
        """
        endpoint = self.db.get(WebhookEndpoint, delivery.webhook_endpoint_id)
        if not endpoint or not endpoint.is_active:
            delivery.status = "failed"
            delivery.error_message = "Endpoint not found or inactive"
            delivery.failed_at = datetime.now(timezone.utc)
            self.db.commit()
            return False

        payload_json = json.dumps(delivery.event_data, sort_keys=True)
        headers = {
            "Content-Type": "application/json",
            "X-Webhook-Signature": self.sign_payload(payload_json, endpoint.secret),
            "X-Webhook-Event": delivery.event_type,
            "X-Webhook-Id": str(delivery.id),
            "User-Agent": "AvailabilityEngine-Webhook/1.0"
        }

        delivery.attempts = (delivery.attempts or 0) + 1
        delivery.last_attempt_at = datetime.now(timezone.utc)
        delivery.status = "retrying"
        started = datetime.now(timezone.utc)

        try:
            response = self.http_client.post(endpoint.url, content=payload_json, headers=headers)
        except httpx.TimeoutException:
            delivery.error_message = f"Request timeout ({settings.WEBHOOK_TIMEOUT_SECONDS}s)"
            self._handle_failed_delivery(delivery, endpoint)
            return False
        except httpx.HTTPError as e:
            delivery.error_message = f"Request error: {str(e)[:200]}"
            self._handle_failed_delivery(delivery, endpoint)
            return False

        delivery.response_status_code = response.status_code
        delivery.response_body = response.text[:1000]
        delivery.response_time_ms = int((datetime.now(timezone.utc) - started).total_seconds() * 1000)

        if 200 <= response.status_code < 300:
            delivery.status = "delivered"
            delivery.delivered_at = datetime.now(timezone.utc)
            endpoint.consecutive_failures = 0
            endpoint.last_success_at = delivery.delivered_at
            self.db.commit()
            return True

        delivery.error_message = f"HTTP {response.status_code}: {response.text[:200]}"
        self._handle_failed_delivery(delivery, endpoint)
        return False

    def _handle_failed_delivery(self, delivery: WebhookDelivery, endpoint: WebhookEndpoint) -> None:
        now = datetime.now(timezone.utc)
        endpoint.consecutive_failures = (endpoint.consecutive_failures or 0) + 1
        endpoint.last_failure_at = now
        endpoint.last_failure_reason = (delivery.error_message or "")[:500]

        if endpoint.consecutive_failures >= (endpoint.max_consecutive_failures or 10):
            endpoint.is_active = False
            endpoint.auto_disabled_at = now
            delivery.status = "failed"
            delivery.failed_at = now
            logger.warning(f"Webhook endpoint {endpoint.id} disabled after {endpoint.consecutive_failures} failures")
        elif delivery.attempts < delivery.max_attempts:
            delay = RETRY_BACKOFF_MINUTES[min(delivery.attempts - 1, len(RETRY_BACKOFF_MINUTES) - 1)]
            delivery.next_retry_at = now + timedelta(minutes=delay)
            delivery.status = "pending"
        else:
            delivery.status = "failed"
            delivery.failed_at = now

        logger.info(f"Webhook delivery {delivery.id} failed ({delivery.error_message}), status {delivery.status}")
        self.db.commit()

    def retry_pending_deliveries(self, batch_size: int = 50, now: Optional[datetime] = None) -> int:
        """
        Re-send pending deliveries whose retry time has come.

        Returns:
            Number of deliveries attempted
        """
        now = now or datetime.now(timezone.utc)
        pending = self.db.query(WebhookDelivery).filter(
            WebhookDelivery.status == "pending",
            or_(WebhookDelivery.next_retry_at.is_(None), WebhookDelivery.next_retry_at <= now),
            WebhookDelivery.attempts < WebhookDelivery.max_attempts
        ).order_by(WebhookDelivery.created_at.asc()).limit(batch_size).all()

        for delivery in pending:
            self.deliver(delivery)
        return len(pending)

    def _get_subscribed_endpoints(self, business_id: uuid.UUID, event_type: str) -> List[WebhookEndpoint]:
        endpoints = self.db.query(WebhookEndpoint).filter(
            WebhookEndpoint.business_id == business_id,
            WebhookEndpoint.is_active.is_(True)
        ).all()
        return [
            endpoint for endpoint in endpoints
            if "*" in (endpoint.enabled_events or []) or event_type in (endpoint.enabled_events or [])
        ]

    @staticmethod
    def _build_payload(event: DomainEvent) -> Dict[str, Any]:
        return {
            "id": str(event.id),
            "event": event.event_type,
            "timestamp": event.created_at.isoformat() if event.created_at else None,
            "business_id": str(event.business_id),
            "calendar_id": str(event.calendar_id),
            "data": event.payload,
        }

    @staticmethod
    def sign_payload(payload_json: str, secret: str) -> str:
        """HMAC-SHA256 signature sent in X-Webhook-Signature"""
        signature = hmac.new(secret.encode(), payload_json.encode(), hashlib.sha256).hexdigest()
        return f"sha256={signature}"

    @staticmethod
    def verify_signature(payload_json: str, signature: str, secret: str) -> bool:
        return hmac.compare_digest(signature, WebhookService.sign_payload(payload_json, secret))

    def close(self):
        if self._owns_client:
            self.http_client.close()
