"""
Tests for the booking event ledger

- Deduplicated rows exist at most once per (booking, type, key)
- Timeline rows (NULL key) may repeat
- A lost insert race is reported as "already exists"
"""

import pytest
from unittest.mock import patch

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from app.models.booking_event import BookingEvent, BookingEventType, ONCE, summarize_event
from app.services.booking_ledger import BookingLedger


def count_events(db, booking_id, event_type):
    return db.query(BookingEvent).filter(
        BookingEvent.booking_id == booking_id,
        BookingEvent.event_type == event_type,
    ).count()


class TestLedgerClaim:

    def test_claim_once(self, db, make_booking):
        booking = make_booking()
        ledger = BookingLedger(db)

        first = ledger.claim(booking.id, BookingEventType.EMAIL_SENT_BOOKING_CONFIRMED)
        second = ledger.claim(booking.id, BookingEventType.EMAIL_SENT_BOOKING_CONFIRMED)

        assert first is not None
        assert first.dedupe_key == ONCE
        assert second is None
        assert count_events(db, booking.id, "email_sent_booking_confirmed") == 1

    def test_distinct_keys_are_independent(self, db, make_booking):
        booking = make_booking()
        ledger = BookingLedger(db)

        assert ledger.claim(booking.id, BookingEventType.STRIPE_PAYMENT_RECORDED, "pi_1") is not None
        assert ledger.claim(booking.id, BookingEventType.STRIPE_PAYMENT_RECORDED, "pi_2") is not None
        assert ledger.claim(booking.id, BookingEventType.STRIPE_PAYMENT_RECORDED, "pi_1") is None
        assert count_events(db, booking.id, "stripe_payment_recorded") == 2

    def test_same_key_on_other_booking(self, db, make_booking):
        a = make_booking()
        b = make_booking()
        ledger = BookingLedger(db)

        assert ledger.claim(a.id, "email_sent_booking_created") is not None
        assert ledger.claim(b.id, "email_sent_booking_created") is not None

    def test_lost_race_returns_none(self, db, make_booking):
        """Pre-check misses, unique index still rejects the duplicate"""
        booking = make_booking()
        ledger = BookingLedger(db)
        ledger.claim(booking.id, BookingEventType.EMAIL_SENT_PAYMENT_RECEIVED, "pi_9")

        with patch.object(BookingLedger, "has_event", return_value=False):
            result = ledger.claim(booking.id, BookingEventType.EMAIL_SENT_PAYMENT_RECEIVED, "pi_9")

        assert result is None
        assert count_events(db, booking.id, "email_sent_payment_received") == 1

    def test_has_event(self, db, make_booking):
        booking = make_booking()
        ledger = BookingLedger(db)
        assert not ledger.has_event(booking.id, BookingEventType.REFUND_PROCESSED, "ch_1")
        ledger.claim(booking.id, BookingEventType.REFUND_PROCESSED, "ch_1")
        assert ledger.has_event(booking.id, BookingEventType.REFUND_PROCESSED, "ch_1")
        assert not ledger.has_event(booking.id, BookingEventType.REFUND_PROCESSED, "ch_2")


class TestLedgerTimeline:

    def test_timeline_rows_repeat(self, db, make_booking):
        booking = make_booking()
        ledger = BookingLedger(db)

        ledger.record(booking.id, BookingEventType.ADMIN_NOTE_ADDED, {"n": 1})
        ledger.record(booking.id, BookingEventType.ADMIN_NOTE_ADDED, {"n": 2})

        assert count_events(db, booking.id, "admin_note_added") == 2

    def test_timeline_limit(self, db, make_booking):
        booking = make_booking()
        ledger = BookingLedger(db)
        for i in range(25):
            ledger.add(booking.id, BookingEventType.ADMIN_NOTE_ADDED, {"n": i})
        db.commit()

        assert len(ledger.timeline(booking.id, limit=20)) == 20

    def test_update_payload_merges(self, db, make_booking):
        booking = make_booking()
        ledger = BookingLedger(db)
        event = ledger.claim(booking.id, "email_sent_booking_created", payload={"notification": "booking_created"})

        ledger.update_payload(event, recipients=["guest@example.com"], errors=[])

        db.refresh(event)
        assert event.event_payload == {
            "notification": "booking_created",
            "recipients": ["guest@example.com"],
            "errors": [],
        }


class TestEventSummaries:

    def test_known_event(self):
        assert summarize_event("stripe_payment_recorded") == "Payment received"
        assert summarize_event("webhook_anomaly") == "Payment update under review"

    def test_unknown_event_falls_back_to_title_case(self):
        assert summarize_event("something_new") == "Something New"
