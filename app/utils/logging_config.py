"""
Structured Logging Configuration

JSON log lines carry the request id and the signed-in user (set by the
request middleware and auth dependencies) plus the booking the line is about,
so one booking's payment/email trail can be grepped out of production logs.
"""

import logging
import json
import sys
from datetime import datetime, timezone
from typing import Optional, Any, Dict, List
from contextvars import ContextVar

request_id_var: ContextVar[str] = ContextVar('request_id', default='')
user_id_var: ContextVar[str] = ContextVar('user_id', default='')

# LogRecord attributes copied into the JSON line when present
_RECORD_FIELDS = ("booking_id", "reference_code", "event", "data")

NOISY_LOGGERS = ("httpx", "httpcore", "stripe", "sqlalchemy.engine")


class JSONFormatter(logging.Formatter):
    """One JSON object per line"""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "where": f"{record.module}:{record.funcName}:{record.lineno}",
        }

        context = {"request_id": request_id_var.get(), "user_id": user_id_var.get()}
        entry.update({k: v for k, v in context.items() if v})

        for field in _RECORD_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                entry[field] = value

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, ensure_ascii=False, default=str)


class BookingLogger(logging.LoggerAdapter):
    """
    Adapter with one helper per booking milestone.

    Each helper logs at INFO with `booking_id`, an `event` name and a
    `data` dict, which JSONFormatter lifts into top-level keys.
    """

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple:
        kwargs['extra'] = {**self.extra, **kwargs.get('extra', {})}
        return msg, kwargs

    def milestone(self, event: str, booking_id: str, msg: str, **data):
        self.info(msg, extra={"event": event, "booking_id": booking_id, "data": data or None})

    def booking_created(self, booking_id: str, reference_code: str, total_amount: int):
        self.milestone(
            "booking_created", booking_id,
            f"Booking {reference_code} created (total {total_amount})",
            reference_code=reference_code, total_amount=total_amount
        )

    def booking_status_changed(self, booking_id: str, old_status: str, new_status: str):
        self.milestone(
            "booking_status_changed", booking_id,
            f"Booking status {old_status} -> {new_status}",
            old_status=old_status, new_status=new_status
        )

    def payment_recorded(self, booking_id: str, payment_intent_id: str, amount: int, payment_status: str):
        self.milestone(
            "payment_recorded", booking_id,
            f"Payment of {amount} recorded, booking now {payment_status}",
            payment_intent_id=payment_intent_id, amount=amount, payment_status=payment_status
        )

    def email_sent(self, booking_id: str, notification: str, recipients: List[str]):
        self.milestone(
            "email_sent", booking_id,
            f"{notification} email sent to {len(recipients)} recipient(s)",
            notification=notification, recipients=recipients
        )


def setup_logging(level: str = "INFO", json_format: bool = True) -> None:
    """Install a single stdout handler on the root and uvicorn loggers."""
    log_level = getattr(logging, level.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)
    if json_format:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter('%(asctime)s %(levelname)s [%(name)s] %(message)s'))

    root = logging.getLogger()
    root.setLevel(log_level)
    root.handlers = [handler]

    for name in ("uvicorn", "uvicorn.access", "uvicorn.error"):
        logging.getLogger(name).handlers = [handler]

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> BookingLogger:
    return BookingLogger(logging.getLogger(name), {})


def set_request_context(request_id: str, user_id: Optional[str] = None):
    request_id_var.set(request_id)
    if user_id:
        user_id_var.set(user_id)


def clear_request_context():
    request_id_var.set('')
    user_id_var.set('')
