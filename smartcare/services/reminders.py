"""Daily appointment reminder sweep"""
import logging
from datetime import date, datetime, timedelta
from typing import Any, Dict, Optional

from sqlmodel import Session, select

from smartcare.models import Appointment
from smartcare.utils.notification_service import NotificationKind
from smartcare.validators.appointment_validator import ACTIVE_STATUSES

logger = logging.getLogger(__name__)


def due_reminders(session: Session, today: date):
    """Tomorrow's scheduled/confirmed appointments whose reminder email has not gone out"""
    tomorrow = today + timedelta(days=1)
    appointments = session.exec(
        select(Appointment).where(
            Appointment.appointment_date == tomorrow,
            Appointment.status.in_(ACTIVE_STATUSES)
        ).order_by(Appointment.appointment_time)
    ).all()
    return [apt for apt in appointments if not (apt.reminders or {}).get("email_sent")]


def send_daily_reminders(session: Session, notifier, today: Optional[date] = None) -> Dict[str, Any]:
    """Send a reminder for every due appointment; one failure never stops the rest."""
    today = today or date.today()
    appointments = due_reminders(session, today)
    results = []

    for appointment in appointments:
        try:
            result = notifier.notify(NotificationKind.APPOINTMENT_REMINDER, appointment, session)
            if result.get("success") and result.get("emailSent"):
                appointment.reminders = {
                    **(appointment.reminders or {}),
                    "email_sent": True,
                    "sms_sent": bool(result.get("smsSent")),
                    "reminder_date": datetime.utcnow().isoformat(),
                }
                session.add(appointment)
                session.commit()
        except Exception as e:
            session.rollback()
            logger.exception(f"Reminder for {appointment.appointment_id} failed")
            result = {"success": False, "error": str(e)}

        results.append({"appointmentID": appointment.appointment_id, **result})

    sent = sum(1 for r in results if r.get("success"))
    logger.info(f"Daily reminders: {sent}/{len(appointments)} sent for {today + timedelta(days=1)}")
    return {"success": True, "totalAppointments": len(appointments), "results": results}
