"""
Shared fixtures: in-memory SQLite session, model factories, API client.
"""

import pytest
from datetime import date
from unittest.mock import MagicMock

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.database import Base
from app import models  # noqa: F401
from app.models.booking import Booking, BookingItem, BookingStatus, PaymentStatus
from app.models.user import User
from app.services.email_client import EmailResult
from app.services.notification_service import NotificationResult, DispatchStatus
from app.utils.security import hash_password, generate_public_view_token, generate_reference_code


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    Session = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = Session()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_user(db):
    def _make_user(email="traveler@example.com", password="secret123", is_admin=False):
        user = User(
            email=email,
            hashed_password=hash_password(password),
            full_name="Test Traveler",
            is_admin=is_admin,
            is_active=True,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user
    return _make_user


@pytest.fixture
def make_booking(db):
    def _make_booking(
        total=100000,
        amount_paid=0,
        email="guest@example.com",
        booking_status=BookingStatus.PENDING,
        payment_status=None,
        user_id=None,
        items=1,
        **fields
    ):
        remaining = max(total - amount_paid, 0)
        if payment_status is None:
            if remaining == 0:
                payment_status = PaymentStatus.PAID
            elif amount_paid > 0:
                payment_status = PaymentStatus.PARTIAL
            else:
                payment_status = PaymentStatus.UNPAID
        booking = Booking(
            reference_code=generate_reference_code(),
            user_id=user_id,
            customer_name="Hanako Guest",
            customer_email=email,
            travel_date=date(2026, 11, 20),
            total_amount=total,
            amount_paid=amount_paid,
            remaining_amount=remaining,
            deposit_choice=100,
            booking_status=booking_status.value,
            payment_status=payment_status.value,
            public_view_token=generate_public_view_token(),
            **fields
        )
        share = total // items if items else 0
        for i in range(items):
            booking.items.append(BookingItem(
                item_type="tour",
                item_id=f"tour-{i + 1}",
                title=f"Kyoto Day Tour {i + 1}",
                subtotal_amount=share,
                travel_date=date(2026, 11, 20),
            ))
        db.add(booking)
        db.commit()
        db.refresh(booking)
        return booking
    return _make_booking


@pytest.fixture
def email_client():
    """Email client double that always succeeds"""
    client = MagicMock()
    client.send.side_effect = lambda to, subject, html, text=None: EmailResult(success=True, recipients=list(to))
    return client


@pytest.fixture
def notifier():
    """Notification service double; every dispatch reports sent"""
    mock = MagicMock()
    sent = NotificationResult(DispatchStatus.SENT, recipients=["guest@example.com"])
    for name in (
        "notify_booking_created", "notify_booking_event", "notify_payment_received",
        "notify_payment_pending", "notify_payment_failed", "send_review_request",
    ):
        getattr(mock, name).return_value = sent
    return mock
