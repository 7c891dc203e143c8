# ===== availability_engine/models/webhook_endpoint.py =====
from sqlalchemy import Column, String, Boolean, JSON, Integer, ForeignKey, Index, Uuid
import uuid

from availability_engine.models.base import Base
from availability_engine.models.types import UTCDateTime, utcnow


class WebhookEndpoint(Base):
    __tablename__ = "webhook_endpoints"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    business_id = Column(Uuid, ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False)

    # Endpoint configuration
    url = Column(String(500), nullable=False)
    description = Column(String(500))

    # Events to listen for
    enabled_events = Column(JSON, default=list)  # ["booking.created", "booking.cancelled", "*"]

    # Security
    secret = Column(String(128), nullable=False)  # For HMAC signature verification

    # Status
    is_active = Column(Boolean, default=True)

    # Health tracking
    consecutive_failures = Column(Integer, default=0)
    last_success_at = Column(UTCDateTime)
    last_failure_at = Column(UTCDateTime)
    last_failure_reason = Column(String(500))

    # Auto-disable after N failures
    max_consecutive_failures = Column(Integer, default=10)
    auto_disabled_at = Column(UTCDateTime)

    created_at = Column(UTCDateTime, default=utcnow)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index('ix_webhook_endpoints_business_active', 'business_id', 'is_active'),
    )
