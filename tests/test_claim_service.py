"""
Tests for guest booking claim

Order of checks: rate limit -> not found -> email mismatch -> already claimed
"""

import pytest

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from app.models.booking_event import BookingEvent
from app.services.claim_service import ClaimError, ClaimService
from app.utils.rate_limiter import UserRateLimiter


@pytest.fixture
def limiter():
    return UserRateLimiter("5/minute", namespace="test_claim")


class TestClaim:

    def test_claim_links_booking(self, db, make_user, make_booking, limiter):
        user = make_user()
        booking = make_booking(email="guest@example.com")

        claimed = ClaimService(db, limiter=limiter).claim(user, booking.reference_code, "guest@example.com")

        assert claimed.user_id == user.id
        event = db.query(BookingEvent).filter(
            BookingEvent.booking_id == booking.id,
            BookingEvent.event_type == "booking_claimed",
        ).one()
        assert event.event_payload == {"user_id": user.id}

    def test_reference_and_email_are_normalized(self, db, make_user, make_booking, limiter):
        user = make_user()
        booking = make_booking(email="guest@example.com")

        claimed = ClaimService(db, limiter=limiter).claim(
            user, f"  {booking.reference_code.lower()} ", "GUEST@Example.com "
        )
        assert claimed.user_id == user.id

    def test_wrong_email(self, db, make_user, make_booking, limiter):
        user = make_user()
        booking = make_booking(email="guest@example.com")

        with pytest.raises(ClaimError) as exc:
            ClaimService(db, limiter=limiter).claim(user, booking.reference_code, "someone@example.com")

        assert exc.value.code == "email_mismatch"
        assert exc.value.status_code == 403
        db.refresh(booking)
        assert booking.user_id is None

    def test_not_found(self, db, make_user, limiter):
        user = make_user()
        with pytest.raises(ClaimError) as exc:
            ClaimService(db, limiter=limiter).claim(user, "NOPE1234", "guest@example.com")
        assert exc.value.code == "not_found"
        assert exc.value.status_code == 404

    def test_already_claimed(self, db, make_user, make_booking, limiter):
        owner = make_user(email="owner@example.com")
        other = make_user(email="other@example.com")
        booking = make_booking(email="guest@example.com", user_id=owner.id)

        with pytest.raises(ClaimError) as exc:
            ClaimService(db, limiter=limiter).claim(other, booking.reference_code, "guest@example.com")

        assert exc.value.code == "already_claimed"
        assert exc.value.status_code == 409
        db.refresh(booking)
        assert booking.user_id == owner.id

    def test_sixth_attempt_is_rate_limited(self, db, make_user, limiter):
        user = make_user()
        service = ClaimService(db, limiter=limiter)

        for _ in range(5):
            with pytest.raises(ClaimError) as exc:
                service.claim(user, "NOPE1234", "guest@example.com")
            assert exc.value.code == "not_found"

        with pytest.raises(ClaimError) as exc:
            service.claim(user, "NOPE1234", "guest@example.com")
        assert exc.value.code == "rate_limited"
        assert exc.value.status_code == 429

    def test_rate_limit_is_per_user(self, db, make_user, make_booking, limiter):
        noisy = make_user(email="noisy@example.com")
        quiet = make_user(email="quiet@example.com")
        booking = make_booking(email="guest@example.com")
        service = ClaimService(db, limiter=limiter)

        for _ in range(6):
            with pytest.raises(ClaimError):
                service.claim(noisy, "NOPE1234", "guest@example.com")

        assert service.claim(quiet, booking.reference_code, "guest@example.com").user_id == quiet.id

    def test_rate_limit_checked_before_lookup(self, db, make_user, make_booking, limiter):
        user = make_user()
        booking = make_booking(email="guest@example.com")
        service = ClaimService(db, limiter=limiter)
        for _ in range(5):
            with pytest.raises(ClaimError):
                service.claim(user, "NOPE1234", "guest@example.com")

        # Even a correct claim is refused while the window is full
        with pytest.raises(ClaimError) as exc:
            service.claim(user, booking.reference_code, "guest@example.com")
        assert exc.value.code == "rate_limited"
