# availability_engine/schemas/webhook.py
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


class WebhookEndpointCreate(BaseModel):
    business_id: str
    url: str = Field(..., max_length=500)
    description: Optional[str] = Field(None, max_length=500)
    enabled_events: List[str] = Field(default_factory=lambda: ["*"])

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        if not v.startswith(("https://", "http://")):
            raise ValueError("Webhook URL must be http(s)")
        return v


class WebhookEndpointResponse(BaseModel):
    id: str
    business_id: str
    url: str
    description: Optional[str]
    enabled_events: List[str]
    is_active: bool
    consecutive_failures: int
    secret: Optional[str] = Field(None, description="Only returned when the endpoint is created")


class WebhookDeliveryResponse(BaseModel):
    id: str
    event_type: str
    status: str
    attempts: int
    response_status_code: Optional[int]
    error_message: Optional[str]
    created_at: Optional[str]
    delivered_at: Optional[str]
