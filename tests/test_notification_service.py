"""
Tests for the notification dispatcher and the email client

- Each notification is delivered at most once per booking (or per payment)
- Settings toggles and admin recipient resolution
- Delivery failures are recorded, never raised
"""

import pytest
from unittest.mock import MagicMock, patch

import httpx

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from app.config import settings
from app.models.app_settings import AppSettings
from app.models.booking_event import BookingEvent
from app.services.email_client import EmailClient, EmailResult
from app.services import email_templates as templates
from app.services.notification_service import (
    DispatchStatus,
    NotificationService,
    NotificationType,
)


def ledger_rows(db, booking_id, event_type):
    return db.query(BookingEvent).filter(
        BookingEvent.booking_id == booking_id,
        BookingEvent.event_type == event_type,
    ).all()


class TestDispatchDedupe:

    def test_confirmed_twice_sends_one_email(self, db, make_booking, email_client):
        booking = make_booking()
        service = NotificationService(db, email_client=email_client)

        first = service.notify_booking_event(booking, NotificationType.BOOKING_CONFIRMED)
        second = service.notify_booking_event(booking, NotificationType.BOOKING_CONFIRMED)

        assert first.status == DispatchStatus.SENT
        assert second.status == DispatchStatus.ALREADY_SENT
        assert email_client.send.call_count == 1
        rows = ledger_rows(db, booking.id, "email_sent_booking_confirmed")
        assert len(rows) == 1
        assert rows[0].event_payload["recipients"] == ["guest@example.com"]

    def test_payment_received_once_per_intent(self, db, make_booking, email_client):
        booking = make_booking(total=100000, amount_paid=25000)
        service = NotificationService(db, email_client=email_client)

        service.notify_payment_received(booking, "pi_1", paid_amount=25000, remaining_amount=75000)
        service.notify_payment_received(booking, "pi_1", paid_amount=25000, remaining_amount=75000)
        service.notify_payment_received(booking, "pi_2", paid_amount=75000, remaining_amount=0)

        assert email_client.send.call_count == 2
        assert len(ledger_rows(db, booking.id, "email_sent_payment_received")) == 2

    def test_unsupported_admin_event(self, db, make_booking, email_client):
        booking = make_booking()
        service = NotificationService(db, email_client=email_client)
        with pytest.raises(ValueError):
            service.notify_booking_event(booking, NotificationType.PAYMENT_RECEIVED)


class TestRecipients:

    def test_booking_created_goes_to_customer_and_admin(self, db, make_booking, email_client):
        db.add(AppSettings(singleton_key="default", admin_notify_email="ops@example.com"))
        db.commit()
        booking = make_booking()
        service = NotificationService(db, email_client=email_client)

        result = service.notify_booking_created(booking)

        assert result.status == DispatchStatus.SENT
        assert sorted(result.recipients) == ["guest@example.com", "ops@example.com"]
        subjects = [c.args[1] for c in email_client.send.call_args_list]
        assert f"Booking Received - {booking.reference_code}" in subjects
        assert f"New Booking Received - {booking.reference_code}" in subjects

    def test_admin_equal_to_sender_is_skipped(self, db, make_booking, email_client, monkeypatch):
        monkeypatch.setattr(settings, "email_from", "bookings@example.com")
        db.add(AppSettings(singleton_key="default", admin_notify_email="Bookings@Example.com"))
        db.commit()
        booking = make_booking()
        service = NotificationService(db, email_client=email_client)

        result = service.notify_booking_created(booking)

        assert result.recipients == ["guest@example.com"]

    def test_toggle_off_disables_without_ledger_row(self, db, make_booking, email_client):
        db.add(AppSettings(singleton_key="default", email_toggles={"booking_confirmed": False}))
        db.commit()
        booking = make_booking()
        service = NotificationService(db, email_client=email_client)

        result = service.notify_booking_event(booking, NotificationType.BOOKING_CONFIRMED)

        assert result.status == DispatchStatus.DISABLED
        email_client.send.assert_not_called()
        assert ledger_rows(db, booking.id, "email_sent_booking_confirmed") == []

    def test_missing_toggle_counts_as_enabled(self, db, make_booking, email_client):
        db.add(AppSettings(singleton_key="default", email_toggles={"booking_cancelled": False}))
        db.commit()
        booking = make_booking()
        service = NotificationService(db, email_client=email_client)

        result = service.notify_booking_event(booking, NotificationType.BOOKING_CONFIRMED)
        assert result.status == DispatchStatus.SENT


class TestDeliveryFailure:

    def test_failure_is_recorded_and_not_retried(self, db, make_booking):
        booking = make_booking()
        client = MagicMock()
        client.send.return_value = EmailResult(success=False, recipients=["guest@example.com"], error="HTTP 500")
        service = NotificationService(db, email_client=client)

        first = service.notify_booking_event(booking, NotificationType.BOOKING_CANCELLED)
        second = service.notify_booking_event(booking, NotificationType.BOOKING_CANCELLED)

        assert first.status == DispatchStatus.FAILED
        assert first.errors == ["customer: HTTP 500"]
        assert second.status == DispatchStatus.ALREADY_SENT
        rows = ledger_rows(db, booking.id, "email_sent_booking_cancelled")
        assert rows[0].event_payload["errors"] == ["customer: HTTP 500"]
        assert rows[0].event_payload["recipients"] == []

    def test_unexpected_error_is_swallowed(self, db, make_booking):
        booking = make_booking()
        client = MagicMock()
        client.send.side_effect = RuntimeError("boom")
        service = NotificationService(db, email_client=client)

        result = service.notify_booking_event(booking, NotificationType.BOOKING_CONFIRMED)

        assert result.status == DispatchStatus.FAILED
        assert "boom" in result.errors[0]


class TestEmailClient:

    def test_not_configured(self):
        client = EmailClient(api_key="", sender_email="")
        result = client.send(["guest@example.com"], "Hi", "<p>Hi</p>")
        assert result.success is False
        assert result.error == "email not configured"

    def test_no_recipients(self):
        client = EmailClient(api_key="key", sender_email="bookings@example.com")
        result = client.send(["", None], "Hi", "<p>Hi</p>")
        assert result.success is False

    @patch("app.services.email_client.httpx.Client")
    def test_successful_send(self, mock_client_cls):
        response = MagicMock()
        response.status_code = 201
        response.json.return_value = {"messageId": "<msg-1@brevo>"}
        http = mock_client_cls.return_value.__enter__.return_value
        http.post.return_value = response

        client = EmailClient(api_key="key", sender_email="bookings@example.com", sender_name="Bookings")
        result = client.send(["guest@example.com"], "Booking Received - ABC", "<p>x</p>", "x")

        assert result.success is True
        assert result.message_id == "<msg-1@brevo>"
        _, kwargs = http.post.call_args
        assert kwargs["headers"]["api-key"] == "key"
        assert kwargs["json"]["to"] == [{"email": "guest@example.com"}]
        assert kwargs["json"]["sender"] == {"email": "bookings@example.com", "name": "Bookings"}
        assert kwargs["json"]["textContent"] == "x"

    @patch("app.services.email_client.httpx.Client")
    def test_api_error(self, mock_client_cls):
        response = MagicMock()
        response.status_code = 401
        response.text = "unauthorized"
        mock_client_cls.return_value.__enter__.return_value.post.return_value = response

        client = EmailClient(api_key="bad", sender_email="bookings@example.com")
        result = client.send(["guest@example.com"], "Hi", "<p>Hi</p>")

        assert result.success is False
        assert result.status_code == 401

    @patch("app.services.email_client.httpx.Client")
    def test_network_error(self, mock_client_cls):
        mock_client_cls.return_value.__enter__.return_value.post.side_effect = httpx.ConnectError("down")

        client = EmailClient(api_key="key", sender_email="bookings@example.com")
        result = client.send(["guest@example.com"], "Hi", "<p>Hi</p>")

        assert result.success is False
        assert "down" in result.error


class TestTemplates:

    def test_currency_format(self):
        assert templates.format_currency(25000) == "¥25,000"

    def test_payment_received_shows_remaining(self, make_booking):
        booking = make_booking(total=100000, amount_paid=25000)
        rendered = templates.payment_received_customer(booking, 25000, 75000)
        assert rendered.subject == f"Payment Received - {booking.reference_code}"
        assert "¥75,000" in rendered.html

    def test_customer_text_is_escaped(self, make_booking):
        booking = make_booking()
        booking.customer_name = "<b>Eve</b>"
        rendered = templates.booking_confirmed_customer(booking)
        assert "<b>Eve</b>" not in rendered.html

    def test_review_link(self, make_booking):
        booking = make_booking()
        rendered = templates.review_request_customer(booking, "tok123", ["Kyoto Day Tour 1"])
        assert "/review?token=tok123" in rendered.html
