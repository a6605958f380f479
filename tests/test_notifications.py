"""Tests for booking notification rendering and delivery."""

import smtplib
from unittest.mock import patch

import pytest

from carebook.core.errors import DependencyError
from carebook.modules.notifications.service import (
    BookingDetails,
    SmtpNotifier,
    doctor_notification,
    patient_confirmation,
    send_booking_confirmations,
)


@pytest.fixture
def details() -> BookingDetails:
    return BookingDetails(
        patient_name="Pat Lee",
        patient_email="pat@example.com",
        doctor_name="Greg House",
        doctor_email="house@example.com",
        specialty="Diagnostics",
        date_label="Monday, March 03, 2031",
        start_time="9:00 AM",
        end_time="9:30 AM",
        appointment_type="video_call",
        fee="$150.00",
        notes="",
    )


class Recorder:
    def __init__(self):
        self.sent = []

    async def send(self, recipient, template_data):
        self.sent.append(recipient)
        return True


def test_templates_carry_booking_details(details):
    patient = patient_confirmation(details)
    doctor = doctor_notification(details)

    assert patient["subject"] == "Appointment Confirmed with Greg House"
    assert "Video Call" in patient["html"]
    assert "9:00 AM - 9:30 AM" in patient["html"]
    assert "$150.00" in patient["html"]
    assert "Your Notes" not in patient["html"]
    assert doctor["subject"] == "New Appointment Booking - Pat Lee"
    assert "pat@example.com" in doctor["html"]


def test_patient_text_is_escaped(details):
    details.notes = '<a href="http://evil">click</a><script>x()</script>'
    details.patient_name = "<b>Pat</b>"

    doctor = doctor_notification(details)["html"]
    patient = patient_confirmation(details)["html"]

    for body in (doctor, patient):
        assert "<script>" not in body
        assert "<a href" not in body
        assert "&lt;script&gt;x()&lt;/script&gt;" in body
    assert "Dear &lt;b&gt;Pat&lt;/b&gt;," in patient
    assert "<b>Pat</b>" not in doctor


@pytest.mark.asyncio
async def test_doctor_without_email_is_skipped(details):
    details.doctor_email = None
    recorder = Recorder()

    sent = await send_booking_confirmations(details, recorder)

    assert recorder.sent == ["pat@example.com"]
    assert sent == {"patient": True, "doctor": False}


@pytest.mark.asyncio
async def test_smtp_failure_becomes_dependency_error():
    notifier = SmtpNotifier("smtp.invalid", 587)
    with patch.object(smtplib, "SMTP", side_effect=smtplib.SMTPConnectError(421, "down")):
        with pytest.raises(DependencyError):
            await notifier.send("pat@example.com", {"subject": "s", "html": "<p>x</p>"})


@pytest.mark.asyncio
async def test_smtp_failure_is_swallowed_by_confirmations(details):
    notifier = SmtpNotifier("smtp.invalid", 587)
    with patch.object(smtplib, "SMTP", side_effect=OSError("no route")):
        sent = await send_booking_confirmations(details, notifier)
    assert sent == {"patient": False, "doctor": False}
