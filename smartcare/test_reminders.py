from datetime import date, timedelta

from smartcare.models import Appointment
from smartcare.services.reminders import due_reminders, send_daily_reminders
from smartcare.services.sequences import next_appointment_id
from smartcare.utils.notification_service import (
    NotificationKind, NotificationService, render_appointment_reminder,
)

TODAY = date(2026, 3, 9)
TOMORROW = TODAY + timedelta(days=1)


def add_appointment(session, patient, doctor, hospital, when=TOMORROW, time="10:00", status="scheduled", reminders=None):
    appointment = Appointment(
        appointment_id=next_appointment_id(session),
        patient_id=patient.id,
        doctor_id=doctor.id,
        hospital_id=hospital.id,
        appointment_date=when,
        appointment_time=time,
        status=status,
        reservation_fee={"amount": 1000.0, "paid": False},
        consultation_fee={"amount": None, "paid": False},
        reminders=reminders or {"email_sent": False, "sms_sent": False, "reminder_date": None},
    )
    session.add(appointment)
    session.commit()
    session.refresh(appointment)
    return appointment


class ScriptedNotifier:
    """Fails for the listed appointment ids, succeeds for the rest"""

    def __init__(self, failing=(), raising=()):
        self.failing = set(failing)
        self.raising = set(raising)
        self.calls = []

    def notify(self, kind, entity, session=None):
        self.calls.append((kind, entity.appointment_id))
        if entity.appointment_id in self.raising:
            raise RuntimeError("notifier crashed")
        if entity.appointment_id in self.failing:
            return {"success": False, "error": "mailbox unavailable"}
        return {"success": True, "emailSent": True, "smsSent": True}


def test_due_reminders_selects_tomorrows_open_appointments(session, patient, doctor, hospital):
    due = add_appointment(session, patient, doctor, hospital, time="09:00")
    add_appointment(session, patient, doctor, hospital, time="09:30", status="cancelled")
    add_appointment(session, patient, doctor, hospital, when=TODAY, time="10:00")
    add_appointment(session, patient, doctor, hospital, time="11:00", reminders={"email_sent": True})
    confirmed = add_appointment(session, patient, doctor, hospital, time="12:00", status="confirmed")

    ids = [a.appointment_id for a in due_reminders(session, TODAY)]

    assert ids == [due.appointment_id, confirmed.appointment_id]


def test_send_daily_reminders_sets_flags(session, patient, doctor, hospital):
    appointment = add_appointment(session, patient, doctor, hospital)
    notifier = ScriptedNotifier()

    result = send_daily_reminders(session, notifier, today=TODAY)

    assert result["success"] is True
    assert result["totalAppointments"] == 1
    assert notifier.calls == [(NotificationKind.APPOINTMENT_REMINDER, appointment.appointment_id)]
    session.refresh(appointment)
    assert appointment.reminders["email_sent"] is True
    assert appointment.reminders["sms_sent"] is True
    assert appointment.reminders["reminder_date"]

    # A second sweep finds nothing left to send
    assert send_daily_reminders(session, notifier, today=TODAY)["totalAppointments"] == 0


def test_one_failure_does_not_stop_the_sweep(session, patient, doctor, hospital):
    first = add_appointment(session, patient, doctor, hospital, time="09:00")
    second = add_appointment(session, patient, doctor, hospital, time="10:00")
    third = add_appointment(session, patient, doctor, hospital, time="11:00")
    notifier = ScriptedNotifier(failing={first.appointment_id}, raising={second.appointment_id})

    result = send_daily_reminders(session, notifier, today=TODAY)

    outcomes = {r["appointmentID"]: r["success"] for r in result["results"]}
    assert outcomes == {first.appointment_id: False, second.appointment_id: False, third.appointment_id: True}
    session.refresh(first)
    session.refresh(third)
    assert first.reminders["email_sent"] is False
    assert third.reminders["email_sent"] is True


def test_notification_service_simulates_without_smtp(session, patient, doctor, hospital):
    appointment = add_appointment(session, patient, doctor, hospital)
    service = NotificationService()

    result = service.notify(NotificationKind.APPOINTMENT_REMINDER, appointment, session)

    assert result == {"success": True, "emailSent": True, "smsSent": True}


def test_notification_service_never_raises(session):
    service = NotificationService()

    result = service.notify(NotificationKind.APPOINTMENT_CONFIRMATION, object(), session)

    assert result["success"] is False
    assert "error" in result


def test_reminder_text_mentions_the_visit(session, patient, doctor, hospital):
    appointment = add_appointment(session, patient, doctor, hospital, time="14:15")

    text = render_appointment_reminder(patient, doctor, hospital, appointment)

    assert "14:15" in text
    assert hospital.name in text
    assert TOMORROW.isoformat() in text
