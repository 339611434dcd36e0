import logging
import uuid
from datetime import date, datetime, time
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlmodel import Session, select, func

from smartcare.database import get_session
from smartcare.dependencies import get_current_user, require_doctor, is_staff, forbid
from smartcare.models import User, Hospital, Appointment, MedicalRecord, RecordAction, UserRole
from smartcare.schemas import (
    MedicalRecordCreate, MedicalRecordUpdate, MedicalRecordRead, AttachmentCreate, ProgressNoteCreate, user_summary,
)
from smartcare.utils.responses import success_response, serialize, pagination
from smartcare.validators.business_rules import get_business_rules

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/medical-records", tags=["Medical Records"])


def log_access(record: MedicalRecord, user: User, action: RecordAction) -> None:
    """Append one audit entry; the list is replaced, not mutated"""
    record.access_log = [
        *(record.access_log or []),
        {"accessed_by": user.id, "action": action.value, "timestamp": datetime.utcnow().isoformat()},
    ]


def record_detail(session: Session, record: MedicalRecord) -> Dict[str, Any]:
    data = serialize(MedicalRecordRead, record)
    hospital = session.get(Hospital, record.hospital_id)
    data["patient"] = user_summary(session.get(User, record.patient_id))
    data["doctor"] = user_summary(session.get(User, record.doctor_id))
    data["hospital"] = {"id": hospital.id, "name": hospital.name, "address": hospital.address} if hospital else None
    return data


def get_record_or_404(session: Session, record_id: int) -> MedicalRecord:
    record = session.get(MedicalRecord, record_id)
    if not record or not record.is_active:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Medical record not found"
        )
    return record


def can_view(user: User, record: MedicalRecord) -> bool:
    if user.role == UserRole.PATIENT.value:
        return record.patient_id == user.id
    if user.role == UserRole.HEALTHCARE_PROFESSIONAL.value:
        return record.doctor_id == user.id
    return is_staff(user)


def can_edit(user: User, record: MedicalRecord) -> bool:
    if user.role == UserRole.PATIENT.value:
        return record.patient_id == user.id
    if user.role == UserRole.HEALTHCARE_PROFESSIONAL.value:
        return record.doctor_id == user.id
    return False


def save(session: Session, record: MedicalRecord) -> None:
    record.updated_at = datetime.utcnow()
    session.add(record)
    session.commit()
    session.refresh(record)


@router.post("", status_code=status.HTTP_201_CREATED)
def create_medical_record(
    record_data: MedicalRecordCreate,
    current_user: User = Depends(require_doctor),
    session: Session = Depends(get_session)
):
    """Create a medical record (doctors only)"""
    patient = session.get(User, record_data.patient_id)
    if not patient or patient.role != UserRole.PATIENT.value:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Patient not found"
        )

    if not session.get(Hospital, record_data.hospital_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Hospital not found"
        )

    if record_data.appointment_id is not None and not session.get(Appointment, record_data.appointment_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Appointment not found"
        )

    fields = record_data.model_dump(mode="json", exclude={"visit_date"})
    record = MedicalRecord(
        record_id=str(uuid.uuid4()),
        doctor_id=current_user.id,
        visit_date=record_data.visit_date or datetime.utcnow(),
        **{k: v for k, v in fields.items() if v is not None},
    )
    log_access(record, current_user, RecordAction.CREATED)

    session.add(record)
    session.commit()
    session.refresh(record)
    logger.info(f"Medical record {record.record_id} created by doctor {current_user.id} for patient {patient.id}")

    return success_response(
        data={"medicalRecord": record_detail(session, record)},
        message="Medical record created successfully",
    )


@router.get("")
def list_medical_records(
    patient_id: Optional[int] = Query(None, alias="patientID"),
    doctor_id: Optional[int] = Query(None, alias="doctorID"),
    date_from: Optional[date] = Query(None, alias="dateFrom"),
    date_to: Optional[date] = Query(None, alias="dateTo"),
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
    current_user: User = Depends(get_current_user),
    session: Session = Depends(get_session)
):
    """List active records visible to the current user, newest visit first"""
    rules = get_business_rules()
    limit = min(limit or rules.DEFAULT_PAGE_SIZE, rules.MAX_PAGE_SIZE)

    query = select(MedicalRecord).where(MedicalRecord.is_active == True)  # noqa: E712
    if current_user.role == UserRole.PATIENT.value:
        query = query.where(MedicalRecord.patient_id == current_user.id)
    elif current_user.role == UserRole.HEALTHCARE_PROFESSIONAL.value:
        query = query.where(MedicalRecord.doctor_id == current_user.id)

    if patient_id:
        query = query.where(MedicalRecord.patient_id == patient_id)
    if doctor_id:
        query = query.where(MedicalRecord.doctor_id == doctor_id)
    if date_from:
        query = query.where(MedicalRecord.visit_date >= datetime.combine(date_from, time.min))
    if date_to:
        query = query.where(MedicalRecord.visit_date <= datetime.combine(date_to, time.max))

    total = session.exec(select(func.count()).select_from(query.subquery())).one()
    records = session.exec(
        query.order_by(MedicalRecord.visit_date.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    ).all()

    return success_response(data={
        "medicalRecords": [record_detail(session, r) for r in records],
        "pagination": pagination(page, limit, total),
    })


@router.get("/{record_id}")
def get_medical_record(
    record_id: int,
    current_user: User = Depends(get_current_user),
    session: Session = Depends(get_session)
):
    record = get_record_or_404(session, record_id)
    if not can_view(current_user, record):
        raise forbid()

    log_access(record, current_user, RecordAction.VIEWED)
    save(session, record)

    return success_response(data={"medicalRecord": record_detail(session, record)})


@router.put("/{record_id}")
def update_medical_record(
    record_id: int,
    update_data: MedicalRecordUpdate,
    current_user: User = Depends(get_current_user),
    session: Session = Depends(get_session)
):
    """Update a record (authoring doctor or owning patient)"""
    record = get_record_or_404(session, record_id)
    if not can_edit(current_user, record):
        raise forbid()

    for key, value in update_data.model_dump(exclude_unset=True, mode="json").items():
        if value is None and key != "history_of_present_illness":
            continue
        setattr(record, key, value)
    log_access(record, current_user, RecordAction.EDITED)
    save(session, record)

    return success_response(
        data={"medicalRecord": record_detail(session, record)},
        message="Medical record updated successfully",
    )


@router.post("/{record_id}/attachments", status_code=status.HTTP_201_CREATED)
def add_attachment(
    record_id: int,
    attachment_data: AttachmentCreate,
    current_user: User = Depends(get_current_user),
    session: Session = Depends(get_session)
):
    """Attach file metadata to a record; the file itself lives in external storage"""
    record = get_record_or_404(session, record_id)
    if not can_view(current_user, record):
        raise forbid()

    rules = get_business_rules()
    if attachment_data.file_type not in rules.ALLOWED_ATTACHMENT_TYPES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid file type. Only PDF, images, and documents are allowed."
        )
    if attachment_data.file_size > rules.MAX_ATTACHMENT_SIZE_BYTES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"File exceeds the {rules.MAX_ATTACHMENT_SIZE_BYTES // (1024 * 1024)}MB limit"
        )

    attachment = {
        **attachment_data.model_dump(mode="json"),
        "uploaded_at": datetime.utcnow().isoformat(),
        "uploaded_by": current_user.id,
    }
    record.attachments = [*(record.attachments or []), attachment]
    log_access(record, current_user, RecordAction.EDITED)
    save(session, record)

    return success_response(
        data={"attachment": serialize(MedicalRecordRead, record)["attachments"][-1]},
        message="File uploaded successfully",
    )


@router.post("/{record_id}/progress-notes", status_code=status.HTTP_201_CREATED)
def add_progress_note(
    record_id: int,
    note_data: ProgressNoteCreate,
    current_user: User = Depends(get_current_user),
    session: Session = Depends(get_session)
):
    record = get_record_or_404(session, record_id)
    if not can_view(current_user, record):
        raise forbid()

    note = (note_data.note or "").strip()
    if not note:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Progress note is required"
        )

    record.progress_notes = [
        *(record.progress_notes or []),
        {"date": datetime.utcnow().isoformat(), "note": note, "author": current_user.id},
    ]
    log_access(record, current_user, RecordAction.EDITED)
    save(session, record)

    return success_response(
        data={"progressNote": serialize(MedicalRecordRead, record)["progressNotes"][-1]},
        message="Progress note added successfully",
    )


@router.delete("/{record_id}")
def delete_medical_record(
    record_id: int,
    current_user: User = Depends(get_current_user),
    session: Session = Depends(get_session)
):
    """Soft delete (authoring doctor or manager)"""
    record = get_record_or_404(session, record_id)
    is_author = current_user.role == UserRole.HEALTHCARE_PROFESSIONAL.value and record.doctor_id == current_user.id
    if not is_author and current_user.role != UserRole.HEALTHCARE_MANAGER.value:
        raise forbid()

    record.is_active = False
    log_access(record, current_user, RecordAction.DELETED)
    save(session, record)

    logger.info(f"Medical record {record.record_id} deactivated by {current_user.id}")
    return success_response(message="Medical record deleted successfully")
