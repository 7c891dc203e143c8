"""
Tests for outbox dispatch and webhook delivery
"""
import json
from datetime import timedelta

import httpx
import pytest
from kombu.exceptions import OperationalError as BrokerError

from availability_engine.config.settings import get_settings
from availability_engine.core.exceptions import ValidationError
from availability_engine.models.domain_event import DomainEvent
from availability_engine.services.booking.booking_service import BookingService
from availability_engine.services.events.event_dispatcher import EventDispatcher, get_event_dispatcher
from availability_engine.services.webhook.webhook_service import WebhookService
from availability_engine.tasks import event_tasks
from conftest import NOW, at

settings = get_settings()
HOOK_URL = "https://hooks.example.com/bookings"


class RecordingTransport:
    """Answers every request with a fixed status and keeps what was sent"""

    def __init__(self, status_code=200):
        self.status_code = status_code
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code, text="ok" if self.status_code < 300 else "boom")


@pytest.fixture
def transport():
    return RecordingTransport()


@pytest.fixture
def http_client(transport):
    client = httpx.Client(transport=httpx.MockTransport(transport))
    yield client
    client.close()


@pytest.fixture
def endpoint(db, business, http_client):
    return WebhookService(db, http_client).create_endpoint(business.id, HOOK_URL, description="CRM sync")


@pytest.fixture
def booking(db, calendar, weekday_schedule, service_type):
    return BookingService.create_booking(db, calendar.id, service_type.id, at(2, 10), customer_name="Anna", now=NOW)


def pending_event(db):
    return db.query(DomainEvent).filter(DomainEvent.status == "pending").one()


class TestSignatures:

    def test_sign_and_verify(self):
        payload = json.dumps({"event": "booking.created"}, sort_keys=True)
        signature = WebhookService.sign_payload(payload, "s3cret")

        assert signature.startswith("sha256=")
        assert WebhookService.verify_signature(payload, signature, "s3cret")
        assert not WebhookService.verify_signature(payload, signature, "other")
        assert not WebhookService.verify_signature(payload + " ", signature, "s3cret")


class TestWebhookEndpoints:

    def test_unknown_event_type_rejected(self, db, business, http_client):
        with pytest.raises(ValidationError) as exc_info:
            WebhookService(db, http_client).create_endpoint(business.id, HOOK_URL, enabled_events=["booking.moved"])
        assert exc_info.value.code == "invalid_event_type"

    def test_secret_generated(self, endpoint):
        assert len(endpoint.secret) == 64
        assert endpoint.enabled_events == ["*"]


class TestDispatch:

    def test_created_event_is_delivered_signed(self, db, endpoint, booking, http_client, transport):
        dispatched = get_event_dispatcher(http_client).dispatch_pending(db)

        assert dispatched == 1
        assert len(transport.requests) == 1
        request = transport.requests[0]
        body = request.content.decode()
        assert str(request.url) == HOOK_URL
        assert request.headers["X-Webhook-Event"] == "booking.created"
        assert WebhookService.verify_signature(body, request.headers["X-Webhook-Signature"], endpoint.secret)

        data = json.loads(body)
        assert data["event"] == "booking.created"
        assert data["data"]["id"] == str(booking.id)

        event = db.query(DomainEvent).one()
        assert event.status == "dispatched"
        assert event.dispatched_at is not None

        deliveries = WebhookService(db, http_client).get_endpoint_deliveries(endpoint.id)
        assert [d.status for d in deliveries] == ["delivered"]

    def test_endpoint_filters_event_types(self, db, business, booking, http_client, transport):
        WebhookService(db, http_client).create_endpoint(business.id, HOOK_URL, enabled_events=["booking.cancelled"])
        get_event_dispatcher(http_client).dispatch_pending(db)
        assert transport.requests == []

        BookingService.cancel_booking(db, booking.id, now=NOW)
        get_event_dispatcher(http_client).dispatch_pending(db)
        assert [r.headers["X-Webhook-Event"] for r in transport.requests] == ["booking.cancelled"]

    def test_failed_delivery_is_retried_later(self, db, endpoint, booking, http_client, transport):
        transport.status_code = 500
        get_event_dispatcher(http_client).dispatch_pending(db)

        service = WebhookService(db, http_client)
        delivery = service.get_endpoint_deliveries(endpoint.id)[0]
        assert delivery.status == "pending"
        assert delivery.attempts == 1
        assert delivery.response_status_code == 500
        assert delivery.next_retry_at > delivery.last_attempt_at
        assert service.get_endpoint(endpoint.id).consecutive_failures == 1

        # Not due yet
        assert service.retry_pending_deliveries(now=delivery.last_attempt_at) == 0

        transport.status_code = 200
        assert service.retry_pending_deliveries(now=delivery.next_retry_at + timedelta(seconds=1)) == 1
        assert service.get_endpoint_deliveries(endpoint.id)[0].status == "delivered"
        assert service.get_endpoint(endpoint.id).consecutive_failures == 0

    def test_endpoint_disabled_after_repeated_failures(self, db, endpoint, booking, http_client, transport):
        endpoint.max_consecutive_failures = 1
        db.commit()
        transport.status_code = 503

        get_event_dispatcher(http_client).dispatch_pending(db)

        service = WebhookService(db, http_client)
        assert service.get_endpoint(endpoint.id).is_active is False
        assert service.get_endpoint_deliveries(endpoint.id)[0].status == "failed"

    def test_failing_subscriber_keeps_event_pending(self, db, booking):
        dispatcher = EventDispatcher()
        calls = []

        def broken(session, event):
            calls.append(event.event_type)
            raise RuntimeError("CRM is down")

        dispatcher.subscribe("booking.created", broken)

        assert dispatcher.dispatch_pending(db) == 0
        event = pending_event(db)
        assert event.attempts == 1
        assert "CRM is down" in event.last_error

        for _ in range(settings.EVENT_MAX_ATTEMPTS - 1):
            dispatcher.dispatch(db, event)
        assert event.status == "failed"
        assert len(calls) == settings.EVENT_MAX_ATTEMPTS

    def test_redispatch_does_not_duplicate_deliveries(self, db, endpoint, booking, http_client, transport):
        event = pending_event(db)
        failures = ["CRM is down"]

        def flaky(session, evt):
            if failures:
                raise RuntimeError(failures.pop())

        dispatcher = get_event_dispatcher(http_client)
        dispatcher.subscribe("*", flaky)

        assert dispatcher.dispatch(db, event) is False
        assert dispatcher.dispatch(db, event) is True
        assert len(transport.requests) == 1
        assert len(WebhookService(db, http_client).get_endpoint_deliveries(endpoint.id)) == 1

    def test_subscribers_by_type_and_wildcard(self, db, booking):
        dispatcher = EventDispatcher()
        seen = []
        dispatcher.subscribe("booking.created", lambda session, event: seen.append(("typed", event.event_type)))
        dispatcher.subscribe("booking.cancelled", lambda session, event: seen.append(("other", event.event_type)))
        dispatcher.subscribe("*", lambda session, event: seen.append(("all", event.event_type)))

        assert dispatcher.dispatch_pending(db) == 1
        assert seen == [("typed", "booking.created"), ("all", "booking.created")]


class TestScheduleDispatch:

    class FakeTask:
        def __init__(self, error=None):
            self.error = error
            self.calls = 0

        def delay(self):
            self.calls += 1
            if self.error:
                raise self.error

    def test_disabled_by_setting(self, monkeypatch):
        task = self.FakeTask()
        monkeypatch.setattr(event_tasks, "dispatch_domain_events", task)
        monkeypatch.setattr(event_tasks.settings, "EVENT_DISPATCH_ON_COMMIT", False)

        event_tasks.schedule_event_dispatch()
        assert task.calls == 0

    def test_broker_outage_is_not_fatal(self, monkeypatch):
        task = self.FakeTask(error=BrokerError("connection refused"))
        monkeypatch.setattr(event_tasks, "dispatch_domain_events", task)
        monkeypatch.setattr(event_tasks.settings, "EVENT_DISPATCH_ON_COMMIT", True)

        event_tasks.schedule_event_dispatch()
        assert task.calls == 1
