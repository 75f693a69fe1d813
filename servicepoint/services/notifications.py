# servicepoint/services/notifications.py
"""
Email side effects of booking and garage lifecycle events.

Delivery is best effort. Every message is sent from a post-commit hook
after the primary write has been committed, and a failing hook is logged and
then ignored, so the caller's request still succeeds.
"""
import inspect
import logging
from functools import lru_cache
from html import escape
from typing import Callable, List, Optional, Tuple

import anyio.from_thread
from fastapi_mail import ConnectionConfig, FastMail, MessageSchema, MessageType
from starlette.concurrency import run_in_threadpool

from servicepoint.core.config import Settings, get_settings

logger = logging.getLogger(__name__)


class Notifier:
    async def send(self, to: str, subject: str, html: str, text: Optional[str] = None) -> None:
        raise NotImplementedError


class MailNotifier(Notifier):
    def __init__(self, settings: Settings):
        self.conf = ConnectionConfig(
            MAIL_USERNAME=settings.mail_username,
            MAIL_PASSWORD=settings.mail_password,
            MAIL_FROM=settings.mail_from or settings.mail_username,
            MAIL_FROM_NAME=settings.mail_from_name,
            MAIL_PORT=settings.mail_port,
            MAIL_SERVER=settings.mail_server,
            MAIL_STARTTLS=settings.mail_starttls,
            MAIL_SSL_TLS=settings.mail_ssl_tls,
            USE_CREDENTIALS=True,
        )
        self.mailer = FastMail(self.conf)

    async def send(self, to, subject, html, text=None):
        message = MessageSchema(
            subject=subject,
            recipients=[to],
            body=html,
            subtype=MessageType.html,
        )
        await self.mailer.send_message(message)
        logger.info("Email sent to %s: %s", to, subject)


class LoggingNotifier(Notifier):
    """Used when no mail credentials are configured."""

    async def send(self, to, subject, html, text=None):
        logger.warning("Email not configured - skipping email to %s (%s)", to, subject)


@lru_cache
def get_notifier() -> Notifier:
    settings = get_settings()
    if settings.mail_configured:
        return MailNotifier(settings)
    return LoggingNotifier()


class PostCommitHooks:
    """Side effects to run once the primary state change is committed.

    Coroutine hooks are awaited on the event loop; plain functions are
    pushed to the threadpool so database work never runs on the loop.
    """

    def __init__(self):
        self._hooks: List[Tuple[str, Callable, tuple, dict]] = []

    def add(self, name: str, func: Callable, *args, **kwargs) -> None:
        self._hooks.append((name, func, args, kwargs))

    def __len__(self):
        return len(self._hooks)

    async def run(self) -> List[Tuple[str, bool]]:
        results = []
        for name, func, args, kwargs in self._hooks:
            try:
                if inspect.iscoroutinefunction(func):
                    await func(*args, **kwargs)
                else:
                    await run_in_threadpool(func, *args, **kwargs)
                results.append((name, True))
            except Exception:
                logger.exception("Post-commit hook %r failed", name)
                results.append((name, False))
        self._hooks.clear()
        return results

    def run_from_worker(self) -> List[Tuple[str, bool]]:
        """Run from a sync route handler, which FastAPI executes in a worker thread."""
        return anyio.from_thread.run(self.run)


# --------------------------------------------------
# message templates
# --------------------------------------------------

STATUS_MESSAGES = {
    "confirmed": ("Booking Confirmed!", "Great news! Your booking has been accepted by the garage."),
    "cancelled": ("Booking Cancelled", "Unfortunately, your booking has been cancelled."),
    "in_progress": ("Service In Progress", "Good news! Your service is now being worked on."),
    "completed": ("Service Completed!", "Excellent! Your service has been completed successfully."),
}

STATUS_SUBJECTS = {
    "confirmed": "Your booking has been accepted!",
    "cancelled": "Your booking has been cancelled",
    "in_progress": "Your service is now in progress!",
    "completed": "Your service has been completed!",
}


def _rows(pairs) -> str:
    return "".join(
        f"<tr><td><b>{escape(label)}</b></td><td>{escape(str(value))}</td></tr>"
        for label, value in pairs
        if value
    )


def _vehicle_line(vehicle_info) -> Optional[str]:
    if not vehicle_info:
        return None
    parts = [vehicle_info.get("make"), vehicle_info.get("model"), vehicle_info.get("year")]
    line = " ".join(str(p) for p in parts if p)
    plate = vehicle_info.get("license_plate")
    if plate:
        line = f"{line} ({plate})" if line else plate
    return line or None


def new_booking_message(booking, garage, frontend_url: str) -> Tuple[str, str, str]:
    scheduled = booking.scheduled_date.strftime("%A, %B %d, %Y")
    details = [
        ("Booking ID", f"#{booking.booking_id}"),
        ("Service", booking.service),
        ("Customer", booking.user_name),
        ("Phone", booking.user_phone),
        ("Email", booking.user_email),
        ("Scheduled Date", scheduled),
        ("Scheduled Time", booking.scheduled_time),
        ("Notes", booking.notes),
        ("Vehicle", _vehicle_line(booking.vehicle_info)),
    ]
    subject = f"New Service Booking - {booking.service}"
    html = f"""
    <html>
    <body>
        <h2>New Service Booking!</h2>
        <p>Hello {escape(garage.owner_name)}, a customer has booked a service at
        <b>{escape(garage.garage_name)}</b>. Please review and accept or reject it as soon as possible.</p>
        <table>{_rows(details)}</table>
        <p><a href="{frontend_url}/garage-dashboard.html">Manage Booking</a></p>
        <hr>
        <p><small>Service Point Platform</small></p>
    </body>
    </html>
    """
    text = "\n".join(f"- {label}: {value}" for label, value in details if value)
    text = f"New Service Booking - {booking.service}\n\n{text}\n\n{frontend_url}/garage-dashboard.html"
    return subject, html, text


def status_update_message(booking, garage, status: str) -> Tuple[str, str, str]:
    title, blurb = STATUS_MESSAGES.get(status, ("Status Updated", "Your booking status has been updated."))
    subject = f"Booking Update: {STATUS_SUBJECTS.get(status, 'Status Updated')}"
    details = [
        ("Booking ID", f"#{booking.booking_id}"),
        ("Service", booking.service),
        ("Garage", garage.garage_name),
        ("Status", status.upper()),
        ("Contact", garage.contact_number),
    ]
    html = f"""
    <html>
    <body>
        <h2>{escape(title)}</h2>
        <p>{escape(blurb)}</p>
        <table>{_rows(details)}</table>
        <p>If you have any questions, please contact the garage directly.</p>
    </body>
    </html>
    """
    text = f"{title}\n\n" + "\n".join(f"- {label}: {value}" for label, value in details if value)
    return subject, html, text


def garage_welcome_message(garage) -> Tuple[str, str, str]:
    subject = "Welcome to Service Point - Your Garage Account"
    html = f"""
    <html>
    <body>
        <h2>Welcome to Service Point Platform</h2>
        <p>Your garage <b>{escape(garage.garage_name)}</b> has been added to the platform.</p>
        <p><b>Email:</b> {escape(garage.email)}<br>
        <b>Garage ID:</b> {escape(garage.garage_id)}</p>
        <p>Complete your registration with this Garage ID and email to choose a password.</p>
    </body>
    </html>
    """
    text = f"Welcome to Service Point.\nEmail: {garage.email}\nGarage ID: {garage.garage_id}"
    return subject, html, text


def garage_email_changed_message(garage, old_email: str) -> Tuple[str, str, str]:
    subject = "Service Point - Email Address Updated"
    html = f"""
    <html>
    <body>
        <h2>Email Address Updated</h2>
        <p>Your garage account email has been updated by an administrator.</p>
        <p><b>Old Email:</b> {escape(old_email)}<br>
        <b>New Email:</b> {escape(garage.email)}<br>
        <b>Garage:</b> {escape(garage.garage_name)}</p>
        <p>If you didn't request this change, please contact support immediately.</p>
    </body>
    </html>
    """
    text = f"Your garage email changed from {old_email} to {garage.email}."
    return subject, html, text


# --------------------------------------------------
# senders (raise on failure; callers schedule them as hooks)
# --------------------------------------------------

async def notify_garage_of_booking(notifier: Notifier, booking, garage) -> None:
    subject, html, text = new_booking_message(booking, garage, get_settings().frontend_url)
    await notifier.send(garage.email, subject, html, text)


async def notify_customer_of_status(notifier: Notifier, booking, garage, status: str) -> None:
    if not booking.user_email:
        return
    subject, html, text = status_update_message(booking, garage, status)
    await notifier.send(booking.user_email, subject, html, text)


async def notify_garage_welcome(notifier: Notifier, garage) -> None:
    subject, html, text = garage_welcome_message(garage)
    await notifier.send(garage.email, subject, html, text)


async def notify_garage_email_changed(notifier: Notifier, garage, old_email: str) -> None:
    subject, html, text = garage_email_changed_message(garage, old_email)
    await notifier.send(garage.email, subject, html, text)
