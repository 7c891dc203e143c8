# ===== availability_engine/models/webhook_delivery.py =====
from sqlalchemy import Column, String, Integer, Text, JSON, ForeignKey, Index, Uuid
import uuid

from availability_engine.models.base import Base
from availability_engine.models.types import UTCDateTime, utcnow


class WebhookDelivery(Base):
    """Log of all webhook delivery attempts"""
    __tablename__ = "webhook_deliveries"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    webhook_endpoint_id = Column(Uuid, ForeignKey("webhook_endpoints.id", ondelete="CASCADE"), nullable=False)
    domain_event_id = Column(Uuid, ForeignKey("domain_events.id", ondelete="CASCADE"), nullable=True)
    business_id = Column(Uuid, nullable=False)

    # Event details
    event_type = Column(String(50), nullable=False)
    event_data = Column(JSON, nullable=False)  # The actual payload sent

    # Delivery tracking
    status = Column(String(20), nullable=False)  # "pending", "delivered", "failed", "retrying"
    attempts = Column(Integer, default=0)
    max_attempts = Column(Integer, default=5)

    # Response tracking
    response_status_code = Column(Integer)
    response_body = Column(Text)
    response_time_ms = Column(Integer)

    # Error tracking
    error_message = Column(Text)
    last_attempt_at = Column(UTCDateTime)
    next_retry_at = Column(UTCDateTime)

    created_at = Column(UTCDateTime, default=utcnow)
    delivered_at = Column(UTCDateTime)
    failed_at = Column(UTCDateTime)

    __table_args__ = (
        Index('ix_webhook_deliveries_status', 'status', 'next_retry_at'),
        Index('ix_webhook_deliveries_endpoint_status', 'webhook_endpoint_id', 'status'),
    )
