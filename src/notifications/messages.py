# src/notifications/messages.py
"""
Шаблоны уведомлений: письма оператору и клиенту, payload для push.
"""

from __future__ import annotations

from html import escape
from typing import Any

from src.shared.models.notifications import BookingSnapshot, MailMessage


def _or_na(value: Any) -> str:
    if value is None or value == "":
        return "N/A"
    return str(value)


def booking_summary(booking: BookingSnapshot) -> str:
    """Текстовая сводка бронирования для писем."""
    return "\n".join([
        f"Booking ID: {booking.id}",
        f"Name: {booking.name}",
        f"Phone: {_or_na(booking.phone)}",
        f"Email: {_or_na(booking.email)}",
        f"Pickup: {booking.pickup}",
        f"Destination: {booking.destination}",
        f"Estimated Price: {_or_na(booking.estimated_price)}",
        f"Date: {_or_na(booking.date)}",
        f"Time: {_or_na(booking.time)}",
    ])


def operator_new_booking_email(booking: BookingSnapshot, admin_email: str, base_url: str) -> MailMessage:
    """Письмо оператору о новом бронировании со ссылкой на панель."""
    url = f"{base_url.rstrip('/')}/admin"
    summary = booking_summary(booking)
    return MailMessage(
        recipient=admin_email,
        subject=f"New booking: {booking.name} ({booking.id})",
        text=f"A new booking was received:\n\n{summary}\n\nOpen dashboard: {url}",
        html=(
            "<p>A new booking was received:</p>"
            f"<pre>{escape(summary)}</pre>"
            f'<p><a href="{escape(url, quote=True)}">Open dashboard</a></p>'
        ),
        related_entity_id=booking.id,
    )


def client_confirmation_email(booking: BookingSnapshot) -> MailMessage | None:
    """Письмо клиенту о подтверждении. Без email клиента письма нет."""
    if not booking.email:
        return None
    summary = booking_summary(booking)
    greeting = f"Hello {booking.name}," if booking.name else "Hello,"
    return MailMessage(
        recipient=booking.email,
        subject=f"Your booking {booking.id} is confirmed",
        text=(
            f"{greeting}\n\n"
            f"Your booking (ID: {booking.id}) from {booking.pickup} to {booking.destination} "
            f"has been confirmed.\n\n{summary}\n\nThank you!"
        ),
        html=(
            f"<p>{escape(greeting)}</p>"
            f"<p>Your booking (ID: {escape(booking.id)}) has been confirmed.</p>"
            f"<pre>{escape(summary)}</pre>"
            "<p>Thank you!</p>"
        ),
        related_entity_id=booking.id,
    )


def booking_created_push(booking: BookingSnapshot) -> dict[str, Any]:
    return {
        "title": "New Booking Received",
        "body": f"{booking.name}: {booking.pickup} → {booking.destination}",
        "data": {"booking": booking.to_payload(), "url": "/admin"},
    }


def booking_confirmed_push(booking: BookingSnapshot) -> dict[str, Any]:
    return {
        "title": "Booking Confirmed",
        "body": f"{booking.name or 'Your booking'} has been confirmed",
        "data": {"booking": booking.to_payload()},
    }


def relay_check_email(recipient: str) -> MailMessage:
    return MailMessage(
        recipient=recipient,
        subject="Test email from Ride Notify",
        text="This is a test email to verify SMTP is working.",
        html="<p>This is a test email to verify SMTP is working.</p>",
    )
