"""
Booking Ledger

Thin API over booking_events. The unique index on
(booking_id, event_type, dedupe_key) is the source of truth for
"has this already happened"; has_event() is only a fast pre-check.
"""

import logging
from typing import Optional, Union

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..models.booking_event import BookingEvent, BookingEventType, ONCE

logger = logging.getLogger(__name__)

EventType = Union[BookingEventType, str]


def _type_value(event_type: EventType) -> str:
    return event_type.value if isinstance(event_type, BookingEventType) else event_type


class BookingLedger:
    def __init__(self, db: Session):
        self.db = db

    def has_event(self, booking_id: str, event_type: EventType, dedupe_key: Optional[str] = ONCE) -> bool:
        query = self.db.query(BookingEvent.id).filter(
            BookingEvent.booking_id == booking_id,
            BookingEvent.event_type == _type_value(event_type),
        )
        if dedupe_key is None:
            query = query.filter(BookingEvent.dedupe_key.is_(None))
        else:
            query = query.filter(BookingEvent.dedupe_key == dedupe_key)
        return query.first() is not None

    def add(
        self,
        booking_id: str,
        event_type: EventType,
        payload: Optional[dict] = None,
        dedupe_key: Optional[str] = None
    ) -> BookingEvent:
        """
        Stage a row in the current transaction. The caller commits, so the
        row lands atomically with whatever else the caller changed.
        """
        event = BookingEvent(
            booking_id=booking_id,
            event_type=_type_value(event_type),
            event_payload=payload or {},
            dedupe_key=dedupe_key,
        )
        self.db.add(event)
        return event

    def record(
        self,
        booking_id: str,
        event_type: EventType,
        payload: Optional[dict] = None
    ) -> BookingEvent:
        """Append a plain timeline row (may repeat) and commit."""
        event = self.add(booking_id, event_type, payload, dedupe_key=None)
        self.db.commit()
        return event

    def claim(
        self,
        booking_id: str,
        event_type: EventType,
        dedupe_key: str = ONCE,
        payload: Optional[dict] = None
    ) -> Optional[BookingEvent]:
        """
        Insert a deduplicated row and commit.

        Returns the new row, or None if an equal row already exists
        (including one inserted concurrently by another worker).
        """
        if self.has_event(booking_id, event_type, dedupe_key):
            return None
        try:
            event = self.add(booking_id, event_type, payload, dedupe_key=dedupe_key)
            self.db.commit()
            return event
        except IntegrityError:
            self.db.rollback()
            logger.info(
                f"Ledger claim lost race: booking={booking_id} type={_type_value(event_type)} key={dedupe_key!r}"
            )
            return None

    def update_payload(self, event: BookingEvent, **changes) -> None:
        """Merge delivery details into a claimed row (email recipients, errors)."""
        payload = dict(event.event_payload or {})
        payload.update(changes)
        event.event_payload = payload
        self.db.commit()

    def timeline(self, booking_id: str, limit: int = 20):
        return (
            self.db.query(BookingEvent)
            .filter(BookingEvent.booking_id == booking_id)
            .order_by(BookingEvent.created_at.desc())
            .limit(limit)
            .all()
        )
