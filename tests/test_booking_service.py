"""
Tests for booking creation, guest access, tracking and admin transitions
"""

import pytest
from datetime import date
from itertools import product

from fastapi import HTTPException
from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from app.models.booking import BookingStatus, PaymentStatus
from app.models.booking_event import BookingEvent
from app.schemas.booking import BookingCreate
from app.services.booking_service import AdminAction, BookingService, check_transition
from app.services.notification_service import NotificationType


def booking_payload(**overrides):
    data = {
        "customer_name": "Taro Yamada",
        "customer_email": "Taro@Example.com",
        "customer_phone": "+81 90 0000 0000",
        "deposit_choice": 25,
        "items": [
            {
                "item_type": "tour",
                "item_id": "tour-kyoto",
                "title": "Kyoto Highlights",
                "subtotal_amount": 60000,
                "travel_date": "2026-11-20",
                "pickup_location": "Kyoto Station",
                "passengers_count": 2,
            },
            {
                "item_type": "transfer",
                "item_id": "transfer-kix",
                "title": "KIX Airport Transfer",
                "subtotal_amount": 40000,
                "travel_date": "2026-11-21",
                "flight_number": "NH123",
            },
        ],
    }
    data.update(overrides)
    return BookingCreate(**data)


class TestCreateBooking:

    def test_creates_pending_booking_with_items(self, db, notifier):
        booking = BookingService(db, notifier=notifier).create_booking(booking_payload())

        assert len(booking.reference_code) == 8
        assert booking.reference_code.isalnum() and booking.reference_code.isupper()
        assert booking.customer_email == "taro@example.com"
        assert booking.total_amount == 100000
        assert booking.amount_paid == 0
        assert booking.remaining_amount == 100000
        assert booking.deposit_choice == 25
        assert booking.booking_status == BookingStatus.PENDING.value
        assert booking.payment_status == PaymentStatus.UNPAID.value
        assert booking.travel_date == date(2026, 11, 20)
        assert len(booking.items) == 2
        transfer = next(i for i in booking.items if i.item_id == "transfer-kix")
        assert transfer.meta == {"flight_number": "NH123"}
        assert booking.public_view_token

    def test_writes_timeline_and_notifies(self, db, notifier):
        booking = BookingService(db, notifier=notifier).create_booking(booking_payload())

        events = db.query(BookingEvent).filter(BookingEvent.booking_id == booking.id).all()
        assert [e.event_type for e in events] == ["booking_created"]
        notifier.notify_booking_created.assert_called_once_with(booking)

    def test_links_signed_in_user(self, db, notifier, make_user):
        user = make_user()
        booking = BookingService(db, notifier=notifier).create_booking(booking_payload(), user=user)
        assert booking.user_id == user.id

    def test_total_mismatch_rejected(self):
        with pytest.raises(ValidationError):
            booking_payload(total_amount=90000)

    def test_zero_total_rejected(self):
        with pytest.raises(ValidationError):
            booking_payload(items=[{
                "item_type": "tour", "item_id": "free", "title": "Free walk", "subtotal_amount": 0,
            }])

    def test_invalid_deposit_choice_rejected(self):
        with pytest.raises(ValidationError):
            booking_payload(deposit_choice=30)

    def test_package_end_before_start_rejected(self):
        with pytest.raises(ValidationError):
            booking_payload(items=[{
                "item_type": "package", "item_id": "pkg", "title": "Hokkaido 3 days",
                "subtotal_amount": 90000, "start_date": "2026-12-05", "end_date": "2026-12-01",
            }])

    def test_script_tags_stripped(self):
        data = booking_payload(special_requests="<script>alert(1)</script>Window seat")
        assert data.special_requests == "Window seat"


class TestCustomerAccess:

    def test_public_view_with_token(self, db, make_booking, notifier):
        booking = make_booking()
        found = BookingService(db, notifier=notifier).get_public_booking(booking.id, booking.public_view_token)
        assert found.id == booking.id

    def test_public_view_wrong_token(self, db, make_booking, notifier):
        booking = make_booking()
        with pytest.raises(HTTPException) as exc:
            BookingService(db, notifier=notifier).get_public_booking(booking.id, "wrong")
        assert exc.value.status_code == 404

    def test_owner_needs_no_token(self, db, make_booking, make_user, notifier):
        user = make_user()
        booking = make_booking(user_id=user.id)
        found = BookingService(db, notifier=notifier).get_public_booking(booking.id, None, user=user)
        assert found.id == booking.id

    def test_track_is_case_insensitive(self, db, make_booking, notifier):
        booking = make_booking(email="guest@example.com")
        service = BookingService(db, notifier=notifier)
        service.mark_paid(booking.id, admin=_admin())

        found, events = service.track_booking(booking.reference_code.lower(), "GUEST@example.com")

        assert found.id == booking.id
        assert events[0]["event_type"] == "payment_marked_paid"
        assert events[0]["summary"] == "Payment marked as paid"

    def test_track_wrong_email(self, db, make_booking, notifier):
        booking = make_booking(email="guest@example.com")
        with pytest.raises(HTTPException) as exc:
            BookingService(db, notifier=notifier).track_booking(booking.reference_code, "other@example.com")
        assert exc.value.status_code == 404

    def test_list_user_bookings(self, db, make_booking, make_user, notifier):
        user = make_user()
        mine = make_booking(user_id=user.id)
        make_booking()
        bookings = BookingService(db, notifier=notifier).list_user_bookings(user)
        assert [b.id for b in bookings] == [mine.id]


def _admin():
    class Admin:
        id = "admin-1"
    return Admin()


class TestAdminTransitions:

    def test_transition_table_is_exhaustive(self):
        actions = [AdminAction.CONFIRM, AdminAction.CANCEL, AdminAction.COMPLETE, AdminAction.MARK_PAID]
        for action, booking_status, payment_status in product(actions, BookingStatus, PaymentStatus):
            result = check_transition(action, booking_status, payment_status)
            assert result is None or isinstance(result, str)

    def test_confirm_notifies(self, db, make_booking, notifier):
        booking = make_booking()
        confirmed = BookingService(db, notifier=notifier).confirm(booking.id, _admin())

        assert confirmed.booking_status == BookingStatus.CONFIRMED.value
        notifier.notify_booking_event.assert_called_once_with(confirmed, NotificationType.BOOKING_CONFIRMED)

    def test_confirm_twice_rejected(self, db, make_booking, notifier):
        booking = make_booking()
        service = BookingService(db, notifier=notifier)
        service.confirm(booking.id, _admin())
        with pytest.raises(HTTPException) as exc:
            service.confirm(booking.id, _admin())
        assert exc.value.status_code == 400

    def test_cancel(self, db, make_booking, notifier):
        booking = make_booking(booking_status=BookingStatus.CONFIRMED)
        cancelled = BookingService(db, notifier=notifier).cancel(booking.id, _admin())
        assert cancelled.booking_status == BookingStatus.CANCELLED.value
        notifier.notify_booking_event.assert_called_once_with(cancelled, NotificationType.BOOKING_CANCELLED)

    def test_cannot_complete_unpaid(self, db, make_booking, notifier):
        booking = make_booking(booking_status=BookingStatus.CONFIRMED)
        with pytest.raises(HTTPException) as exc:
            BookingService(db, notifier=notifier).complete(booking.id, _admin())
        assert exc.value.status_code == 400

    def test_mark_paid_keeps_invariant(self, db, make_booking, notifier):
        booking = make_booking(total=100000, amount_paid=25000)
        paid = BookingService(db, notifier=notifier).mark_paid(booking.id, _admin())

        assert paid.amount_paid == 100000
        assert paid.remaining_amount == 0
        assert paid.payment_status == PaymentStatus.PAID.value
        event = db.query(BookingEvent).filter(
            BookingEvent.booking_id == booking.id,
            BookingEvent.event_type == "payment_marked_paid",
        ).one()
        assert event.event_payload["previous_amount_paid"] == 25000

    def test_complete_sends_review_request(self, db, make_booking, notifier):
        booking = make_booking(total=100000, amount_paid=100000, booking_status=BookingStatus.CONFIRMED)
        completed = BookingService(db, notifier=notifier).complete(booking.id, _admin())

        assert completed.booking_status == BookingStatus.COMPLETED.value
        notifier.send_review_request.assert_called_once()

    def test_cannot_cancel_completed(self, db, make_booking, notifier):
        booking = make_booking(amount_paid=100000, booking_status=BookingStatus.COMPLETED)
        with pytest.raises(HTTPException):
            BookingService(db, notifier=notifier).cancel(booking.id, _admin())

    def test_update_notes(self, db, make_booking, notifier):
        booking = make_booking()
        updated = BookingService(db, notifier=notifier).update_notes(booking.id, "VIP guest", _admin())
        assert updated.admin_notes == "VIP guest"
        assert updated.last_action_at is not None

    def test_unknown_booking(self, db, notifier):
        with pytest.raises(HTTPException) as exc:
            BookingService(db, notifier=notifier).confirm("missing", _admin())
        assert exc.value.status_code == 404


class TestAmountConstraints:

    def test_negative_amount_paid_rejected_by_database(self, db, make_booking):
        booking = make_booking(total=100000)
        booking.amount_paid = -1
        with pytest.raises(IntegrityError):
            db.commit()
        db.rollback()
