# ============================================================================
# FILE: availability_engine/api/v1/webhooks.py
# Business webhook endpoints for domain events
# ============================================================================
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from availability_engine.config.database import get_db
from availability_engine.schemas.webhook import (
    WebhookDeliveryResponse,
    WebhookEndpointCreate,
    WebhookEndpointResponse,
)
from availability_engine.services.calendar.calendar_service import CalendarService
from availability_engine.services.webhook.webhook_service import WebhookService

router = APIRouter()


def _endpoint_to_response(endpoint, include_secret: bool = False) -> WebhookEndpointResponse:
    return WebhookEndpointResponse(
        id=str(endpoint.id),
        business_id=str(endpoint.business_id),
        url=endpoint.url,
        description=endpoint.description,
        enabled_events=endpoint.enabled_events or [],
        is_active=bool(endpoint.is_active),
        consecutive_failures=endpoint.consecutive_failures or 0,
        secret=endpoint.secret if include_secret else None,
    )


def _delivery_to_response(delivery) -> WebhookDeliveryResponse:
    return WebhookDeliveryResponse(
        id=str(delivery.id),
        event_type=delivery.event_type,
        status=delivery.status,
        attempts=delivery.attempts or 0,
        response_status_code=delivery.response_status_code,
        error_message=delivery.error_message,
        created_at=delivery.created_at.isoformat() if delivery.created_at else None,
        delivered_at=delivery.delivered_at.isoformat() if delivery.delivered_at else None,
    )


@router.post("/webhooks", response_model=WebhookEndpointResponse, status_code=201)
def create_webhook_endpoint(request: WebhookEndpointCreate, db: Session = Depends(get_db)):
    """Register an endpoint; the signing secret is shown once"""
    business = CalendarService.get_business(db, request.business_id)
    service = WebhookService(db)
    try:
        endpoint = service.create_endpoint(
            business.id, request.url, enabled_events=request.enabled_events, description=request.description
        )
    finally:
        service.close()
    return _endpoint_to_response(endpoint, include_secret=True)


@router.get("/businesses/{business_id}/webhooks", response_model=List[WebhookEndpointResponse])
def list_webhook_endpoints(business_id: str, db: Session = Depends(get_db)):
    business = CalendarService.get_business(db, business_id)
    service = WebhookService(db)
    try:
        return [_endpoint_to_response(e) for e in service.list_endpoints(business.id)]
    finally:
        service.close()


@router.get("/webhooks/{endpoint_id}/deliveries", response_model=List[WebhookDeliveryResponse])
def list_webhook_deliveries(
        endpoint_id: str,
        status: Optional[str] = Query(None),
        limit: int = Query(100, ge=1, le=500),
        db: Session = Depends(get_db)
):
    service = WebhookService(db)
    try:
        endpoint = service.get_endpoint(CalendarService.parse_id(endpoint_id, "endpoint_id"))
        return [_delivery_to_response(d) for d in service.get_endpoint_deliveries(endpoint.id, status, limit)]
    finally:
        service.close()


@router.delete("/webhooks/{endpoint_id}", status_code=204)
def delete_webhook_endpoint(endpoint_id: str, db: Session = Depends(get_db)):
    service = WebhookService(db)
    try:
        service.delete_endpoint(CalendarService.parse_id(endpoint_id, "endpoint_id"))
    finally:
        service.close()
