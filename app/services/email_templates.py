"""
Email templates for booking lifecycle notifications.

Each builder returns a RenderedEmail(subject, html, text). User-supplied
strings are HTML-escaped; the text part is left as-is.
"""

import html
from datetime import date, datetime
from typing import Iterable, List, NamedTuple, Optional, Tuple

from ..config import settings
from ..models.booking import Booking
from .payment_calculator import round_half_up


class RenderedEmail(NamedTuple):
    subject: str
    html: str
    text: str


Row = Tuple[str, Optional[object]]


def format_currency(amount: Optional[int]) -> str:
    """JPY has no minor unit: 25000 -> ¥25,000"""
    value = int(amount or 0)
    if settings.payment_currency == "jpy":
        return f"¥{value:,}"
    return f"{value:,} {settings.payment_currency.upper()}"


def format_date(value) -> str:
    if not value:
        return "TBD"
    if isinstance(value, str):
        try:
            value = date.fromisoformat(value[:10])
        except ValueError:
            return value
    if isinstance(value, datetime):
        value = value.date()
    return f"{value:%B} {value.day}, {value.year}"


def tracking_link(reference_code: str) -> str:
    return f"{settings.public_site_url}/booking/track?ref={reference_code}"


def review_link(token: str) -> str:
    return f"{settings.public_site_url}/review?token={token}"


def _layout(title: str, body: str, banner: str = "#f3f4f6", banner_text: str = "#111827") -> str:
    return f"""<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>{html.escape(title)}</title>
</head>
<body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto; padding: 20px;">
  <div style="background-color: {banner}; padding: 20px; border-radius: 8px; margin-bottom: 20px;">
    <h1 style="margin: 0; color: {banner_text};">{html.escape(title)}</h1>
  </div>
  <div style="background-color: #ffffff; padding: 20px; border: 1px solid #e5e7eb; border-radius: 8px;">
{body}
    <div style="margin-top: 30px; padding-top: 20px; border-top: 1px solid #e5e7eb; color: #6b7280; font-size: 14px;">
      <p>If you have any questions, please contact us with your reference code.</p>
    </div>
  </div>
</body>
</html>"""


def _html_rows(rows: Iterable[Row]) -> str:
    return "\n".join(
        f'    <p style="margin: 8px 0;"><strong>{html.escape(label)}:</strong> {html.escape(str(value))}</p>'
        for label, value in rows
        if value not in (None, "", 0)
    )


def _text_rows(rows: Iterable[Row]) -> str:
    return "\n".join(f"{label}: {value}" for label, value in rows if value not in (None, "", 0))


def _link(href: str, label: str) -> str:
    return (
        f'    <p style="margin-top: 20px;"><a href="{html.escape(href, quote=True)}" '
        f'style="color: #2563eb; text-decoration: none;">{html.escape(label)}</a></p>'
    )


def _note(message: str, color: str = "#92400e", background: str = "#fef3c7") -> str:
    return (
        f'    <p style="color: {color}; background-color: {background}; padding: 10px; '
        f'border-radius: 6px; font-size: 14px;">{html.escape(message)}</p>'
    )


def _trip_rows(booking: Booking) -> List[Row]:
    return [
        ("Reference Code", booking.reference_code),
        ("Travel Date", format_date(booking.travel_date)),
        ("Pickup", booking.pickup_location),
        ("Dropoff", booking.dropoff_location),
        ("Passengers", booking.passengers_count),
        ("Large Suitcases", booking.large_suitcases),
    ]


def _compose(
    subject: str,
    title: str,
    paragraphs: List[str],
    rows: List[Row],
    notes: Optional[List[str]] = None,
    links: Optional[List[Tuple[str, str]]] = None,
    banner: str = "#f3f4f6",
    banner_text: str = "#111827"
) -> RenderedEmail:
    notes = notes or []
    links = links or []

    body_parts = [f"    <p>{html.escape(p)}</p>" for p in paragraphs]
    body_parts.append(_html_rows(rows))
    body_parts.extend(_note(n) for n in notes)
    body_parts.extend(_link(href, label) for label, href in links)

    text_parts = [title, ""] + paragraphs + ["", _text_rows(rows)]
    if notes:
        text_parts += [""] + notes
    if links:
        text_parts += [""] + [f"{label}: {href}" for label, href in links]
    text_parts += ["", "If you have any questions, please contact us with your reference code."]

    return RenderedEmail(
        subject=subject,
        html=_layout(title, "\n".join(body_parts), banner=banner, banner_text=banner_text),
        text="\n".join(text_parts).strip(),
    )


def booking_received_customer(booking: Booking) -> RenderedEmail:
    deposit_percent = booking.deposit_choice or 100
    due_now = round_half_up(booking.total_amount * deposit_percent / 100)
    remaining_after = booking.total_amount - due_now

    rows = _trip_rows(booking) + [
        ("Total Amount", format_currency(booking.total_amount)),
        ("Selected Payment", f"{deposit_percent}% {'(Full Payment)' if deposit_percent == 100 else '(Deposit)'}"),
        ("Amount Due Now", format_currency(due_now)),
    ]
    notes = []
    if remaining_after > 0:
        rows.append(("Remaining After Payment", format_currency(remaining_after)))
        notes.append(
            f"The remaining balance of {format_currency(remaining_after)} will be due before your travel date."
        )

    return _compose(
        subject=f"Booking Received - {booking.reference_code}",
        title="Booking Received",
        paragraphs=[
            f"Dear {booking.customer_name},",
            "Thank you for your booking! We've received your request and are processing your payment.",
        ],
        rows=rows,
        notes=notes,
        links=[("Track your booking", tracking_link(booking.reference_code))],
    )


def booking_received_admin(booking: Booking) -> RenderedEmail:
    rows = [
        ("Reference Code", booking.reference_code),
        ("Customer", booking.customer_name),
        ("Email", booking.customer_email),
        ("Phone", booking.customer_phone),
        ("Travel Date", format_date(booking.travel_date)),
        ("Pickup", booking.pickup_location),
        ("Dropoff", booking.dropoff_location),
        ("Passengers", booking.passengers_count),
        ("Total Amount", format_currency(booking.total_amount)),
        ("Deposit Choice", f"{booking.deposit_choice or 100}%"),
        ("Special Requests", booking.special_requests),
    ]
    return _compose(
        subject=f"New Booking Received - {booking.reference_code}",
        title="New Booking Received",
        paragraphs=["A new booking has been submitted."],
        rows=rows,
        links=[("View booking", f"{settings.public_site_url}/admin/bookings/{booking.id}")],
    )


def booking_confirmed_customer(booking: Booking) -> RenderedEmail:
    return _compose(
        subject=f"Booking Confirmed - {booking.reference_code}",
        title="Booking Confirmed",
        paragraphs=[
            f"Dear {booking.customer_name},",
            "Great news! Your booking has been confirmed.",
        ],
        rows=_trip_rows(booking),
        links=[("Track your booking", tracking_link(booking.reference_code))],
        banner="#10b981",
        banner_text="#ffffff",
    )


def payment_marked_paid_customer(booking: Booking) -> RenderedEmail:
    return _compose(
        subject=f"Payment Received - {booking.reference_code}",
        title="Payment Received",
        paragraphs=[
            f"Dear {booking.customer_name},",
            "We have received your full payment. Thank you!",
        ],
        rows=[
            ("Reference Code", booking.reference_code),
            ("Travel Date", format_date(booking.travel_date)),
            ("Total Paid", format_currency(booking.amount_paid)),
        ],
        links=[("Track your booking", tracking_link(booking.reference_code))],
        banner="#10b981",
        banner_text="#ffffff",
    )


def booking_cancelled_customer(booking: Booking) -> RenderedEmail:
    return _compose(
        subject=f"Booking Cancelled - {booking.reference_code}",
        title="Booking Cancelled",
        paragraphs=[
            f"Dear {booking.customer_name},",
            "Your booking has been cancelled. If you believe this is a mistake, please contact us.",
        ],
        rows=_trip_rows(booking)[:2],
        links=[("View booking", tracking_link(booking.reference_code))],
        banner="#ef4444",
        banner_text="#ffffff",
    )


def payment_received_customer(booking: Booking, paid_amount: int, remaining_amount: int) -> RenderedEmail:
    fully_paid = remaining_amount == 0
    title = "Payment Complete!" if fully_paid else "Payment Received"
    link = tracking_link(booking.reference_code)

    rows = [
        ("Reference Code", booking.reference_code),
        ("Travel Date", format_date(booking.travel_date)),
        ("Total Amount", format_currency(booking.total_amount)),
        ("This Payment", format_currency(paid_amount)),
        ("Total Paid", format_currency(booking.total_amount - remaining_amount)),
    ]
    links = [("Track your booking", link)]
    if fully_paid:
        rows.append(("Status", "Fully Paid"))
        notes = ["All Set! Your booking is fully paid. We look forward to serving you!"]
    else:
        rows.append(("Remaining Balance", format_currency(remaining_amount)))
        notes = [
            f"You have a remaining balance of {format_currency(remaining_amount)}. "
            "This should be paid before your travel date."
        ]
        links.insert(0, ("Pay remaining balance", link))

    return _compose(
        subject=f"Payment Received - {booking.reference_code}",
        title=title,
        paragraphs=[
            f"Dear {booking.customer_name},",
            f"Thank you! We've received your payment of {format_currency(paid_amount)}.",
        ],
        rows=rows,
        notes=notes,
        links=links,
        banner="#10b981",
        banner_text="#ffffff",
    )


def payment_pending_customer(booking: Booking) -> RenderedEmail:
    return _compose(
        subject=f"Payment Processing - {booking.reference_code}",
        title="Payment Processing",
        paragraphs=[
            f"Dear {booking.customer_name},",
            "Your payment is being processed. We'll email you again as soon as it clears.",
        ],
        rows=_trip_rows(booking)[:2],
        links=[("Track your booking", tracking_link(booking.reference_code))],
    )


def payment_pending_admin(booking: Booking) -> RenderedEmail:
    return _compose(
        subject=f"Payment Pending - {booking.reference_code}",
        title="Payment Pending",
        paragraphs=["A delayed payment method was used. The booking is not marked paid yet."],
        rows=[
            ("Reference Code", booking.reference_code),
            ("Customer", booking.customer_name),
            ("Email", booking.customer_email),
            ("Total Amount", format_currency(booking.total_amount)),
        ],
    )


def payment_failed_customer(booking: Booking) -> RenderedEmail:
    return _compose(
        subject=f"Payment Failed - {booking.reference_code}",
        title="Payment Failed",
        paragraphs=[
            f"Dear {booking.customer_name},",
            "Unfortunately your payment could not be completed. Your booking is still saved; "
            "please try again or contact us.",
        ],
        rows=_trip_rows(booking)[:2],
        links=[("Track your booking", tracking_link(booking.reference_code))],
        banner="#ef4444",
        banner_text="#ffffff",
    )


def payment_failed_admin(booking: Booking) -> RenderedEmail:
    return _compose(
        subject=f"Payment Failed - {booking.reference_code}",
        title="Payment Failed",
        paragraphs=["A delayed payment failed for this booking."],
        rows=[
            ("Reference Code", booking.reference_code),
            ("Customer", booking.customer_name),
            ("Email", booking.customer_email),
            ("Total Amount", format_currency(booking.total_amount)),
        ],
    )


def review_request_customer(booking: Booking, token: str, item_titles: List[str]) -> RenderedEmail:
    rows: List[Row] = [("Reference Code", booking.reference_code)]
    rows += [("Experience", title) for title in item_titles]
    return _compose(
        subject=f"Share Your Experience - {booking.reference_code}",
        title="How was your trip?",
        paragraphs=[
            f"Dear {booking.customer_name},",
            "Thank you for travelling with us! We'd love to hear about your experience.",
        ],
        rows=rows,
        notes=[f"This link is valid for {settings.review_token_days} days and can be used once."],
        links=[("Leave a review", review_link(token))],
    )
