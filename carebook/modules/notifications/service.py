# carebook/modules/notifications/service.py
"""
Booking notifications over SMTP.

Delivery is best effort: the booking has already committed when these
run, so every failure is logged and swallowed.
"""
from __future__ import annotations

import asyncio
import html
import logging
import smtplib
import ssl
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Any, Dict, Optional, Protocol

from carebook.core.config import settings
from carebook.core.errors import DependencyError

logger = logging.getLogger(__name__)

APPOINTMENT_TYPE_LABELS = {
    "video_call": "Video Call",
    "voice_call": "Voice Call",
    "clinic_visit": "Clinic Visit",
}


class Notifier(Protocol):
    async def send(self, recipient: str, template_data: Dict[str, Any]) -> bool:
        ...


class LogNotifier:
    """Used when no SMTP server is configured."""

    async def send(self, recipient: str, template_data: Dict[str, Any]) -> bool:
        logger.info("Email to %s: %s", recipient, template_data.get("subject"))
        return True


class SmtpNotifier:
    def __init__(
        self,
        host: str,
        port: int,
        username: str = "",
        password: str = "",
        use_tls: bool = True,
        from_address: str = settings.EMAIL_FROM_ADDRESS,
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.from_address = from_address

    def _deliver(self, recipient: str, subject: str, html: str) -> None:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = self.from_address
        msg["To"] = recipient
        msg.attach(MIMEText(html, "html"))

        with smtplib.SMTP(self.host, self.port, timeout=30) as server:
            if self.use_tls:
                server.starttls(context=ssl.create_default_context())
            if self.username:
                server.login(self.username, self.password)
            server.sendmail(self.from_address, [recipient], msg.as_string())

    async def send(self, recipient: str, template_data: Dict[str, Any]) -> bool:
        try:
            await asyncio.to_thread(
                self._deliver, recipient, template_data["subject"], template_data["html"]
            )
        except (smtplib.SMTPException, OSError) as exc:
            raise DependencyError("email_delivery_failed", str(exc)) from exc
        return True


_notifier: Optional[Notifier] = None


def get_notifier() -> Notifier:
    global _notifier
    if _notifier is None:
        if settings.SMTP_HOST:
            _notifier = SmtpNotifier(
                settings.SMTP_HOST,
                settings.SMTP_PORT,
                settings.SMTP_USERNAME,
                settings.SMTP_PASSWORD,
                settings.SMTP_USE_TLS,
            )
        else:
            _notifier = LogNotifier()
    return _notifier


def set_notifier(notifier: Optional[Notifier]) -> None:
    global _notifier
    _notifier = notifier


@dataclass
class BookingDetails:
    patient_name: str
    patient_email: str
    doctor_name: str
    doctor_email: Optional[str]
    specialty: str
    date_label: str
    start_time: str
    end_time: str
    appointment_type: str
    fee: str
    notes: str = ""


def _esc(value: Optional[str]) -> str:
    """Escape text that came from users before it goes into an HTML body."""
    return html.escape(value or "", quote=True)


def _details_block(rows: Dict[str, str]) -> str:
    lines = "".join(
        f"<p><strong>{_esc(k)}:</strong> {_esc(v)}</p>" for k, v in rows.items() if v
    )
    return (
        '<div style="background-color: #f5f5f5; padding: 20px; border-radius: 8px; margin: 20px 0;">'
        f"<h3>Appointment Details:</h3>{lines}</div>"
    )


def patient_confirmation(details: BookingDetails) -> Dict[str, Any]:
    type_label = APPOINTMENT_TYPE_LABELS.get(details.appointment_type, details.appointment_type)
    body = _details_block({
        "Doctor": details.doctor_name,
        "Specialty": details.specialty,
        "Date": details.date_label,
        "Time": f"{details.start_time} - {details.end_time}",
        "Type": type_label,
        "Fee": details.fee,
        "Your Notes": details.notes,
    })
    return {
        "subject": f"Appointment Confirmed with {details.doctor_name}",
        "html": (
            '<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">'
            "<h2>Appointment Confirmed!</h2>"
            f"<p>Dear {_esc(details.patient_name or 'Patient')},</p>"
            "<p>Your appointment has been successfully booked.</p>"
            f"{body}<p>We look forward to seeing you!</p>"
            f"<p>Best regards,<br>{_esc(settings.CLINIC_NAME)} Team</p></div>"
        ),
    }


def doctor_notification(details: BookingDetails) -> Dict[str, Any]:
    type_label = APPOINTMENT_TYPE_LABELS.get(details.appointment_type, details.appointment_type)
    body = _details_block({
        "Patient": details.patient_name or "Patient",
        "Patient Email": details.patient_email,
        "Date": details.date_label,
        "Time": f"{details.start_time} - {details.end_time}",
        "Type": type_label,
        "Patient Notes": details.notes,
    })
    return {
        "subject": f"New Appointment Booking - {details.patient_name or 'Patient'}",
        "html": (
            '<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">'
            "<h2>New Appointment Booking</h2>"
            f"<p>Dear Dr. {_esc(details.doctor_name)},</p>"
            "<p>You have a new appointment booking.</p>"
            f"{body}<p>Best regards,<br>{_esc(settings.CLINIC_NAME)} Team</p></div>"
        ),
    }


async def _send_quietly(notifier: Notifier, recipient: str, template: Dict[str, Any]) -> bool:
    try:
        return await notifier.send(recipient, template)
    except Exception:
        logger.exception("Error sending email to %s", recipient)
        return False


async def send_booking_confirmations(
    details: BookingDetails, notifier: Optional[Notifier] = None
) -> Dict[str, bool]:
    """
    Confirmation to the patient and a heads-up to the doctor. Returns
    per-recipient delivery flags; never raises.
    """
    notifier = notifier or get_notifier()
    sent = {"patient": False, "doctor": False}

    sent["patient"] = await _send_quietly(
        notifier, details.patient_email, patient_confirmation(details)
    )
    if details.doctor_email:
        sent["doctor"] = await _send_quietly(
            notifier, details.doctor_email, doctor_notification(details)
        )
    else:
        logger.info("Doctor email not available, skipping doctor notification email")
    return sent
