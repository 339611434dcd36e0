"""Appointment validation logic"""
from datetime import date
from typing import List, Optional
from fastapi import HTTPException, status
from sqlmodel import Session, select
from smartcare.models import Appointment, AppointmentStatus
from smartcare.validators.time_validator import validate_time_format, slots_overlap, format_minutes, to_minutes
from smartcare.validators.business_rules import get_business_rules

# Statuses that hold a doctor's time slot
ACTIVE_STATUSES = [AppointmentStatus.SCHEDULED.value, AppointmentStatus.CONFIRMED.value]


def validate_appointment_duration(duration: int) -> None:
    """Validate appointment duration is within limits"""
    rules = get_business_rules()

    if duration < rules.MIN_APPOINTMENT_DURATION_MINUTES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Appointment must be at least {rules.MIN_APPOINTMENT_DURATION_MINUTES} minutes"
        )

    if duration > rules.MAX_APPOINTMENT_DURATION_MINUTES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Appointment cannot exceed {rules.MAX_APPOINTMENT_DURATION_MINUTES} minutes"
        )


def validate_doctor_available(doctor_profile: dict) -> None:
    if not doctor_profile.get("is_available", True):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Doctor not available"
        )


def validate_no_time_conflict(
    session: Session,
    doctor_id: int,
    appointment_date: date,
    appointment_time: str,
    exclude_appointment_id: Optional[int] = None
) -> None:
    """Reject a booking that takes a doctor's already held date and time"""
    validate_time_format(appointment_time)

    query = select(Appointment).where(
        Appointment.doctor_id == doctor_id,
        Appointment.appointment_date == appointment_date,
        Appointment.appointment_time == appointment_time,
        Appointment.status.in_(ACTIVE_STATUSES)
    )

    if exclude_appointment_id:
        query = query.where(Appointment.id != exclude_appointment_id)

    if session.exec(query).first():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Time slot is already booked"
        )


def validate_cancellation(appointment: Appointment, reason: Optional[str]) -> str:
    """Validate a cancellation request and return the cleaned reason"""
    if appointment.status == AppointmentStatus.COMPLETED.value:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cannot cancel completed appointment"
        )

    if appointment.status == AppointmentStatus.CANCELLED.value:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Appointment is already cancelled"
        )

    if not reason or not reason.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cancellation reason is required"
        )

    return reason.strip()


def available_slots(booked: List[Appointment]) -> List[str]:
    """Free slots of the working day, given the day's active appointments"""
    rules = get_business_rules()
    slot = rules.DEFAULT_SLOT_DURATION_MINUTES
    start = to_minutes(rules.WORKING_DAY_START)
    end = to_minutes(rules.WORKING_DAY_END)

    slots = []
    for minute in range(start, end, slot):
        candidate = format_minutes(minute)
        taken = any(
            slots_overlap(candidate, slot, apt.appointment_time, apt.duration)
            for apt in booked
        )
        if not taken:
            slots.append(candidate)
    return slots
