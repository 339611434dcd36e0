"""Email and SMS notifications for appointment and payment lifecycle events"""
import os
import smtplib
import logging
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from enum import Enum
from typing import Any, Dict, Optional, Tuple
from twilio.rest import Client
from twilio.base.exceptions import TwilioRestException
from sqlmodel import Session

from smartcare.database import session_scope
from smartcare.models import Appointment, Payment, User, Hospital

logger = logging.getLogger(__name__)

SYSTEM_NAME = "Smart Healthcare System"


class NotificationKind(str, Enum):
    APPOINTMENT_CONFIRMATION = "appointment_confirmation"
    APPOINTMENT_REMINDER = "appointment_reminder"
    APPOINTMENT_CANCELLATION = "appointment_cancellation"
    PAYMENT_CONFIRMATION = "payment_confirmation"


SUBJECTS = {
    NotificationKind.APPOINTMENT_CONFIRMATION: f"Appointment Confirmation - {SYSTEM_NAME}",
    NotificationKind.APPOINTMENT_REMINDER: "Appointment Reminder - Tomorrow",
    NotificationKind.APPOINTMENT_CANCELLATION: f"Appointment Cancelled - {SYSTEM_NAME}",
    NotificationKind.PAYMENT_CONFIRMATION: f"Payment Confirmation - {SYSTEM_NAME}",
}


class NotificationService:
    def __init__(self):
        self.smtp_host = os.getenv("SMTP_HOST")
        self.smtp_port = int(os.getenv("SMTP_PORT", "587"))
        self.smtp_user = os.getenv("SMTP_USER")
        self.smtp_password = os.getenv("SMTP_PASSWORD")
        self.mail_from = os.getenv("MAIL_FROM", self.smtp_user or "no-reply@smartcare.local")

        self.account_sid = os.getenv("TWILIO_ACCOUNT_SID")
        self.auth_token = os.getenv("TWILIO_AUTH_TOKEN")
        self.sms_from = os.getenv("TWILIO_SMS_FROM")  # e.g., +94771234567

        if self.account_sid and self.auth_token:
            self.client = Client(self.account_sid, self.auth_token)
        else:
            self.client = None
            logger.warning("Twilio credentials not configured. SMS will be simulated.")

        if not self.smtp_host:
            logger.warning("SMTP not configured. Emails will be simulated.")

    def _sms_configured(self) -> bool:
        return self.client is not None and bool(self.sms_from)

    def send_email(self, to_email: str, subject: str, body: str) -> Tuple[bool, Optional[str]]:
        """
        Send a plain-text email

        Returns:
            (success: bool, None or error: str)
        """
        if not self.smtp_host:
            logger.info(f"[SIMULATED EMAIL] To: {to_email}, Subject: {subject}")
            return True, None

        message = MIMEMultipart()
        message["From"] = self.mail_from
        message["To"] = to_email
        message["Subject"] = subject
        message.attach(MIMEText(body, "plain"))

        try:
            with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=30) as server:
                server.starttls()
                if self.smtp_user and self.smtp_password:
                    server.login(self.smtp_user, self.smtp_password)
                server.sendmail(self.mail_from, to_email, message.as_string())
            return True, None
        except (smtplib.SMTPException, OSError) as e:
            error_msg = f"SMTP error: {e}"
            logger.error(error_msg)
            return False, error_msg

    def send_sms(self, to_phone: str, message: str) -> Tuple[bool, Optional[str]]:
        """
        Send SMS via Twilio

        Returns:
            (success: bool, message_sid or error: str)
        """
        if not self._sms_configured():
            logger.info(f"[SIMULATED SMS] To: {to_phone}")
            return True, "simulated_message_sid"

        try:
            message_obj = self.client.messages.create(
                from_=self.sms_from,
                body=message,
                to=to_phone
            )
            return True, message_obj.sid
        except TwilioRestException as e:
            error_msg = f"Twilio error: {e}"
            logger.error(error_msg)
            return False, error_msg

    def notify(self, kind, entity, session: Optional[Session] = None) -> Dict[str, Any]:
        """
        Best-effort notification for a lifecycle event. Never raises.

        Returns:
            {"success": True, "emailSent": bool[, "smsSent": bool]}
            or {"success": False, "error": str}
        """
        try:
            kind = NotificationKind(kind)
            if session is None:
                with session_scope() as own_session:
                    return self._dispatch(kind, entity, own_session)
            return self._dispatch(kind, entity, session)
        except Exception as e:
            logger.exception(f"Notification {kind} failed")
            return {"success": False, "error": str(e)}

    def _dispatch(self, kind: NotificationKind, entity, session: Session) -> Dict[str, Any]:
        if kind == NotificationKind.PAYMENT_CONFIRMATION:
            if not isinstance(entity, Payment):
                raise ValueError("Payment confirmation needs a payment")
            patient = session.get(User, entity.patient_id)
            if patient is None:
                raise ValueError("Patient not found")
            appointment = session.get(Appointment, entity.appointment_id) if entity.appointment_id else None
            body = render_payment_confirmation(patient, entity, appointment)
            email_sent, _ = self.send_email(patient.email, SUBJECTS[kind], body)
            return {"success": True, "emailSent": email_sent}

        if not isinstance(entity, Appointment):
            raise ValueError(f"{kind.value} needs an appointment")

        patient = session.get(User, entity.patient_id)
        doctor = session.get(User, entity.doctor_id)
        hospital = session.get(Hospital, entity.hospital_id)
        if patient is None or doctor is None:
            raise ValueError("Appointment participants not found")

        if kind == NotificationKind.APPOINTMENT_CONFIRMATION:
            body = render_appointment_confirmation(patient, doctor, hospital, entity)
        elif kind == NotificationKind.APPOINTMENT_CANCELLATION:
            body = render_appointment_cancellation(patient, doctor, entity)
        else:
            body = render_appointment_reminder(patient, doctor, hospital, entity)

        email_sent, _ = self.send_email(patient.email, SUBJECTS[kind], body)
        result = {"success": True, "emailSent": email_sent}

        if kind == NotificationKind.APPOINTMENT_REMINDER and patient.phone:
            sms_sent, _ = self.send_sms(patient.phone, render_reminder_sms(doctor, entity))
            result["smsSent"] = sms_sent

        return result


# Template rendering functions
def _doctor_line(doctor: User) -> str:
    specialization = (doctor.profile or {}).get("specialization")
    if specialization:
        return f"Dr. {doctor.user_name} ({specialization})"
    return f"Dr. {doctor.user_name}"


def render_appointment_confirmation(patient: User, doctor: User, hospital: Optional[Hospital], appointment: Appointment) -> str:
    """Render appointment confirmation email"""
    lines = [
        f"Dear {patient.user_name},",
        "",
        "Your appointment has been successfully booked. Here are the details:",
        "",
        f"Appointment ID: {appointment.appointment_id}",
        f"Doctor: {_doctor_line(doctor)}",
        f"Hospital: {hospital.name if hospital else '-'}",
        f"Date: {appointment.appointment_date.isoformat()}",
        f"Time: {appointment.appointment_time}",
        f"Type: {appointment.appointment_type}",
    ]
    if appointment.notes:
        lines.append(f"Notes: {appointment.notes}")
    lines += [
        "",
        "Please arrive 15 minutes before your scheduled time.",
        "If you need to reschedule or cancel, please contact us at least 24 hours in advance.",
        "",
        f"Best regards,\n{SYSTEM_NAME}",
    ]
    return "\n".join(lines)


def render_appointment_reminder(patient: User, doctor: User, hospital: Optional[Hospital], appointment: Appointment) -> str:
    """Render appointment reminder email"""
    return f"""Dear {patient.user_name},

This is a reminder that you have an appointment tomorrow:

Doctor: {_doctor_line(doctor)}
Hospital: {hospital.name if hospital else '-'}
Date: {appointment.appointment_date.isoformat()}
Time: {appointment.appointment_time}

Please remember to bring your ID and any relevant medical documents.

Best regards,
{SYSTEM_NAME}"""


def render_reminder_sms(doctor: User, appointment: Appointment) -> str:
    return (
        f"Reminder: appointment {appointment.appointment_id} with Dr. {doctor.user_name} "
        f"tomorrow at {appointment.appointment_time}."
    )


def render_appointment_cancellation(patient: User, doctor: User, appointment: Appointment) -> str:
    """Render appointment cancellation email"""
    cancellation = appointment.cancellation or {}
    lines = [
        f"Dear {patient.user_name},",
        "",
        "Your appointment has been cancelled. Here are the details:",
        "",
        f"Appointment ID: {appointment.appointment_id}",
        f"Doctor: Dr. {doctor.user_name}",
        f"Date: {appointment.appointment_date.isoformat()}",
        f"Time: {appointment.appointment_time}",
        f"Reason: {cancellation.get('reason', '-')}",
    ]
    refund_amount = cancellation.get("refund_amount")
    if refund_amount:
        lines += [
            "",
            f"Refund Amount: LKR {refund_amount:.2f}",
            "Your refund will be processed within 3-5 business days.",
        ]
    lines += [
        "",
        "If you need to reschedule, please contact us or book a new appointment through our system.",
        "",
        f"Best regards,\n{SYSTEM_NAME}",
    ]
    return "\n".join(lines)


def render_payment_confirmation(patient: User, payment: Payment, appointment: Optional[Appointment]) -> str:
    """Render payment confirmation email"""
    lines = [
        f"Dear {patient.user_name},",
        "",
        "Your payment has been successfully processed. Here are the details:",
        "",
        f"Payment ID: {payment.payment_id}",
        f"Amount: {payment.currency} {payment.amount:.2f}",
        f"Method: {payment.method.replace('_', ' ').upper()}",
        f"Date: {payment.created_at.date().isoformat()}",
    ]
    if payment.transaction_reference:
        lines.append(f"Transaction Reference: {payment.transaction_reference}")
    if appointment is not None:
        lines.append(f"Appointment: {appointment.appointment_id}")
    lines += [
        "",
        "A receipt can be generated from your account.",
        "",
        f"Best regards,\n{SYSTEM_NAME}",
    ]
    return "\n".join(lines)


_notification_service: Optional[NotificationService] = None


def get_notification_service() -> NotificationService:
    global _notification_service
    if _notification_service is None:
        _notification_service = NotificationService()
    return _notification_service
