import logging
from datetime import date, datetime
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlmodel import Session, select, func

from smartcare.database import get_session
from smartcare.dependencies import get_current_user, require_roles, get_notifier, is_staff, forbid
from smartcare.models import (
    User, Hospital, Appointment, AppointmentStatus, CancelledBy, RefundStatus, UserRole,
)
from smartcare.schemas import AppointmentCreate, AppointmentUpdate, AppointmentCancel, AppointmentRead, user_summary
from smartcare.services.sequences import next_appointment_id
from smartcare.utils.notification_service import NotificationKind, NotificationService
from smartcare.utils.responses import success_response, serialize, pagination
from smartcare.validators.appointment_validator import (
    ACTIVE_STATUSES,
    validate_appointment_duration,
    validate_doctor_available,
    validate_no_time_conflict,
    validate_cancellation,
    available_slots,
)
from smartcare.validators.business_rules import get_business_rules

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/appointments", tags=["Appointments"])

require_booking_roles = require_roles(
    UserRole.PATIENT, UserRole.HOSPITAL_STAFF, UserRole.HEALTHCARE_MANAGER
)


def appointment_detail(session: Session, appointment: Appointment) -> Dict[str, Any]:
    """Appointment with its patient, doctor and hospital references resolved"""
    data = serialize(AppointmentRead, appointment)
    hospital = session.get(Hospital, appointment.hospital_id)
    data["patient"] = user_summary(session.get(User, appointment.patient_id))
    data["doctor"] = user_summary(session.get(User, appointment.doctor_id))
    data["hospital"] = {"id": hospital.id, "name": hospital.name, "address": hospital.address} if hospital else None
    return data


def get_appointment_or_404(session: Session, appointment_id: int) -> Appointment:
    appointment = session.get(Appointment, appointment_id)
    if not appointment:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Appointment not found"
        )
    return appointment


def can_view(user: User, appointment: Appointment) -> bool:
    if user.role == UserRole.PATIENT.value:
        return appointment.patient_id == user.id
    if user.role == UserRole.HEALTHCARE_PROFESSIONAL.value:
        return appointment.doctor_id == user.id
    return is_staff(user)


def get_doctor_or_404(session: Session, doctor_id: int) -> User:
    doctor = session.get(User, doctor_id)
    if not doctor or doctor.role != UserRole.HEALTHCARE_PROFESSIONAL.value:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Doctor not found"
        )
    return doctor


def resolve_patient_id(session: Session, current_user: User, patient_id: Optional[int]) -> int:
    """Patients book for themselves; staff and managers name the patient"""
    if current_user.role == UserRole.PATIENT.value:
        return current_user.id

    if patient_id is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="patientID is required"
        )
    patient = session.get(User, patient_id)
    if not patient or patient.role != UserRole.PATIENT.value:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Patient not found"
        )
    return patient.id


@router.post("", status_code=status.HTTP_201_CREATED)
def create_appointment(
    appointment_data: AppointmentCreate,
    current_user: User = Depends(require_booking_roles),
    session: Session = Depends(get_session),
    notifier: NotificationService = Depends(get_notifier)
):
    """Book an appointment (patients for themselves, staff on behalf of a patient)"""
    patient_id = resolve_patient_id(session, current_user, appointment_data.patient_id)

    doctor = get_doctor_or_404(session, appointment_data.doctor_id)
    if not doctor.is_active:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Doctor not available"
        )
    validate_doctor_available(doctor.profile or {})

    hospital = session.get(Hospital, appointment_data.hospital_id)
    if not hospital or not hospital.is_active:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Hospital not found"
        )

    validate_appointment_duration(appointment_data.duration)
    validate_no_time_conflict(
        session,
        doctor.id,
        appointment_data.appointment_date,
        appointment_data.appointment_time
    )

    rules = get_business_rules()
    consultation_fee = (doctor.profile or {}).get("consultation_fee") or 0

    appointment = Appointment(
        appointment_id=next_appointment_id(session),
        patient_id=patient_id,
        doctor_id=doctor.id,
        hospital_id=hospital.id,
        appointment_date=appointment_data.appointment_date,
        appointment_time=appointment_data.appointment_time,
        duration=appointment_data.duration,
        appointment_type=appointment_data.appointment_type.value,
        priority=appointment_data.priority.value,
        symptoms=appointment_data.symptoms,
        notes=appointment_data.notes,
        reservation_fee={
            "amount": round(consultation_fee * rules.RESERVATION_FEE_RATIO, 2),
            "paid": False,
            "payment_date": None,
            "payment_method": None,
        },
        consultation_fee={"amount": None, "paid": False, "payment_date": None, "payment_method": None},
        reminders={"email_sent": False, "sms_sent": False, "reminder_date": None},
    )

    session.add(appointment)
    session.commit()
    session.refresh(appointment)
    logger.info(f"Appointment {appointment.appointment_id} booked for patient {patient_id} with doctor {doctor.id}")

    notification = notifier.notify(NotificationKind.APPOINTMENT_CONFIRMATION, appointment, session)

    return success_response(
        data={"appointment": appointment_detail(session, appointment), "notification": notification},
        message="Appointment created successfully",
    )


@router.get("")
def list_appointments(
    status_filter: Optional[AppointmentStatus] = Query(None, alias="status"),
    on_date: Optional[date] = Query(None, alias="date"),
    date_from: Optional[date] = Query(None, alias="dateFrom"),
    date_to: Optional[date] = Query(None, alias="dateTo"),
    doctor_id: Optional[int] = Query(None, alias="doctorID"),
    patient_id: Optional[int] = Query(None, alias="patientID"),
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
    current_user: User = Depends(get_current_user),
    session: Session = Depends(get_session)
):
    """List appointments visible to the current user"""
    rules = get_business_rules()
    limit = min(limit or rules.DEFAULT_PAGE_SIZE, rules.MAX_PAGE_SIZE)

    query = select(Appointment)
    if current_user.role == UserRole.PATIENT.value:
        query = query.where(Appointment.patient_id == current_user.id)
    elif current_user.role == UserRole.HEALTHCARE_PROFESSIONAL.value:
        query = query.where(Appointment.doctor_id == current_user.id)

    if status_filter:
        query = query.where(Appointment.status == status_filter.value)
    if on_date:
        query = query.where(Appointment.appointment_date == on_date)
    if date_from:
        query = query.where(Appointment.appointment_date >= date_from)
    if date_to:
        query = query.where(Appointment.appointment_date <= date_to)
    if doctor_id:
        query = query.where(Appointment.doctor_id == doctor_id)
    if patient_id:
        query = query.where(Appointment.patient_id == patient_id)

    total = session.exec(select(func.count()).select_from(query.subquery())).one()
    appointments = session.exec(
        query.order_by(Appointment.appointment_date, Appointment.appointment_time)
        .offset((page - 1) * limit)
        .limit(limit)
    ).all()

    return success_response(data={
        "appointments": [appointment_detail(session, apt) for apt in appointments],
        "pagination": pagination(page, limit, total),
    })


@router.get("/availability/{doctor_id}")
def get_availability(
    doctor_id: int,
    on_date: date = Query(..., alias="date"),
    current_user: User = Depends(get_current_user),
    session: Session = Depends(get_session)
):
    """Free slots of a doctor's working day"""
    doctor = get_doctor_or_404(session, doctor_id)
    booked = session.exec(
        select(Appointment).where(
            Appointment.doctor_id == doctor.id,
            Appointment.appointment_date == on_date,
            Appointment.status.in_(ACTIVE_STATUSES)
        )
    ).all()

    return success_response(data={
        "doctor": {
            "id": doctor.id,
            "name": doctor.user_name,
            "specialization": (doctor.profile or {}).get("specialization"),
        },
        "date": on_date.isoformat(),
        "availableSlots": available_slots(booked),
    })


@router.get("/{appointment_id}")
def get_appointment(
    appointment_id: int,
    current_user: User = Depends(get_current_user),
    session: Session = Depends(get_session)
):
    appointment = get_appointment_or_404(session, appointment_id)
    if not can_view(current_user, appointment):
        raise forbid()
    return success_response(data={"appointment": appointment_detail(session, appointment)})


@router.put("/{appointment_id}")
def update_appointment(
    appointment_id: int,
    update_data: AppointmentUpdate,
    current_user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
    notifier: NotificationService = Depends(get_notifier)
):
    """Update status, notes or scheduling (assigned doctor or staff)"""
    appointment = get_appointment_or_404(session, appointment_id)
    if current_user.role == UserRole.PATIENT.value or not can_view(current_user, appointment):
        raise forbid()

    changes = update_data.model_dump(exclude_unset=True, mode="json")
    previous_status = appointment.status

    if "duration" in changes:
        validate_appointment_duration(update_data.duration)

    if "appointment_date" in changes or "appointment_time" in changes:
        new_date = update_data.appointment_date or appointment.appointment_date
        new_time = update_data.appointment_time or appointment.appointment_time
        validate_no_time_conflict(
            session,
            appointment.doctor_id,
            new_date,
            new_time,
            exclude_appointment_id=appointment.id
        )
        changes["appointment_date"] = new_date
        changes["appointment_time"] = new_time

    for key, value in changes.items():
        if value is None and key in ("status", "priority", "duration", "symptoms"):
            continue
        setattr(appointment, key, value)
    appointment.updated_at = datetime.utcnow()

    session.add(appointment)
    session.commit()
    session.refresh(appointment)

    data = {"appointment": appointment_detail(session, appointment)}
    if appointment.status != previous_status:
        logger.info(f"Appointment {appointment.appointment_id}: {previous_status} -> {appointment.status}")
        if appointment.status == AppointmentStatus.CONFIRMED.value:
            data["notification"] = notifier.notify(NotificationKind.APPOINTMENT_CONFIRMATION, appointment, session)

    return success_response(data=data, message="Appointment updated successfully")


@router.api_route("/{appointment_id}/cancel", methods=["POST", "PUT"])
def cancel_appointment(
    appointment_id: int,
    cancel_data: Optional[AppointmentCancel] = None,
    current_user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
    notifier: NotificationService = Depends(get_notifier)
):
    """Cancel an appointment (its patient, or staff)"""
    appointment = get_appointment_or_404(session, appointment_id)
    if current_user.role == UserRole.PATIENT.value:
        if appointment.patient_id != current_user.id:
            raise forbid()
    elif not is_staff(current_user):
        raise forbid()

    reason = validate_cancellation(appointment, cancel_data.reason if cancel_data else None)

    cancelled_by = (
        CancelledBy.PATIENT if current_user.role == UserRole.PATIENT.value else CancelledBy.HOSPITAL
    )
    cancellation = {
        "cancelled_by": cancelled_by.value,
        "reason": reason,
        "cancelled_at": datetime.utcnow().isoformat(),
        "refund_amount": None,
        "refund_status": None,
    }

    reservation_fee = appointment.reservation_fee or {}
    if reservation_fee.get("paid"):
        rules = get_business_rules()
        cancellation["refund_amount"] = round((reservation_fee.get("amount") or 0) * rules.CANCELLATION_REFUND_RATIO, 2)
        cancellation["refund_status"] = RefundStatus.PENDING.value

    appointment.status = AppointmentStatus.CANCELLED.value
    appointment.cancellation = cancellation
    appointment.updated_at = datetime.utcnow()

    session.add(appointment)
    session.commit()
    session.refresh(appointment)
    logger.info(f"Appointment {appointment.appointment_id} cancelled by {cancelled_by.value}")

    notification = notifier.notify(NotificationKind.APPOINTMENT_CANCELLATION, appointment, session)

    return success_response(
        data={"appointment": appointment_detail(session, appointment), "notification": notification},
        message="Appointment cancelled successfully",
    )
