import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlmodel import Session, select

from smartcare.database import get_session
from smartcare.dependencies import get_current_user, require_manager
from smartcare.models import User, Hospital, UserRole, HospitalType, Specialization
from smartcare.schemas import HospitalCreate, HospitalUpdate, HospitalRead, user_to_dict
from smartcare.services.sequences import next_hospital_id
from smartcare.utils.responses import success_response, serialize, pagination
from smartcare.validators.business_rules import get_business_rules

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/hospitals", tags=["Hospitals"])

DOCTOR_FIELDS = (
    "id", "userName", "email", "specialization", "consultationFee",
    "isAvailable", "workingHours", "bio", "languages",
)


def get_hospital_or_404(session: Session, hospital_id: int, include_inactive: bool = False) -> Hospital:
    hospital = session.get(Hospital, hospital_id)
    if not hospital or (not hospital.is_active and not include_inactive):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Hospital not found"
        )
    return hospital


def active_professionals(session: Session) -> List[User]:
    return session.exec(
        select(User).where(
            User.role == UserRole.HEALTHCARE_PROFESSIONAL.value,
            User.is_active == True  # noqa: E712
        )
    ).all()


@router.get("")
def list_hospitals(
    hospital_type: Optional[HospitalType] = Query(None, alias="type"),
    city: Optional[str] = None,
    specialization: Optional[Specialization] = None,
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
    current_user: User = Depends(get_current_user),
    session: Session = Depends(get_session)
):
    """List active hospitals"""
    rules = get_business_rules()
    limit = min(limit or rules.DEFAULT_PAGE_SIZE, rules.MAX_PAGE_SIZE)

    query = select(Hospital).where(Hospital.is_active == True).order_by(Hospital.name)  # noqa: E712
    if hospital_type:
        query = query.where(Hospital.hospital_type == hospital_type.value)
    hospitals = session.exec(query).all()

    # Address and specializations are JSON documents
    if city:
        hospitals = [h for h in hospitals if city.lower() in ((h.address or {}).get("city") or "").lower()]
    if specialization:
        hospitals = [h for h in hospitals if specialization.value in (h.specializations or [])]

    total = len(hospitals)
    page_items = hospitals[(page - 1) * limit:page * limit]

    return success_response(data={
        "hospitals": [serialize(HospitalRead, h) for h in page_items],
        "pagination": pagination(page, limit, total),
    })


@router.get("/specializations/list")
def list_specializations(
    current_user: User = Depends(get_current_user),
    session: Session = Depends(get_session)
):
    """Distinct specializations offered by active doctors"""
    specializations = {
        (doctor.profile or {}).get("specialization")
        for doctor in active_professionals(session)
    }
    specializations.discard(None)
    return success_response(data={"specializations": sorted(specializations)})


@router.get("/{hospital_id}")
def get_hospital(
    hospital_id: int,
    current_user: User = Depends(get_current_user),
    session: Session = Depends(get_session)
):
    hospital = get_hospital_or_404(session, hospital_id)
    return success_response(data={"hospital": serialize(HospitalRead, hospital)})


@router.get("/{hospital_id}/doctors")
def get_hospital_doctors(
    hospital_id: int,
    specialization: Optional[Specialization] = None,
    available: Optional[bool] = None,
    current_user: User = Depends(get_current_user),
    session: Session = Depends(get_session)
):
    """Active doctors affiliated with a hospital"""
    hospital = get_hospital_or_404(session, hospital_id)

    doctors = [d for d in active_professionals(session) if d.hospital_id == hospital.id]
    if specialization:
        doctors = [d for d in doctors if (d.profile or {}).get("specialization") == specialization.value]
    if available is not None:
        doctors = [d for d in doctors if (d.profile or {}).get("is_available", True) == available]

    listed = []
    for doctor in doctors:
        data = user_to_dict(doctor)
        listed.append({key: data.get(key) for key in DOCTOR_FIELDS})
    listed.sort(key=lambda d: (d["specialization"] or "", d["userName"]))

    return success_response(data={
        "hospital": {
            "id": hospital.id,
            "name": hospital.name,
            "address": hospital.address,
            "specializations": hospital.specializations,
        },
        "doctors": listed,
    })


@router.post("", status_code=status.HTTP_201_CREATED)
def create_hospital(
    hospital_data: HospitalCreate,
    current_user: User = Depends(require_manager),
    session: Session = Depends(get_session)
):
    """Create a hospital (manager only)"""
    fields = hospital_data.model_dump(mode="json")
    hospital = Hospital(hospital_id=next_hospital_id(session), **fields)

    session.add(hospital)
    session.commit()
    session.refresh(hospital)

    logger.info(f"Hospital {hospital.hospital_id} created by {current_user.id}")
    return success_response(
        data={"hospital": serialize(HospitalRead, hospital)},
        message="Hospital created successfully",
    )


@router.put("/{hospital_id}")
def update_hospital(
    hospital_id: int,
    hospital_data: HospitalUpdate,
    current_user: User = Depends(require_manager),
    session: Session = Depends(get_session)
):
    """Update a hospital (manager only)"""
    hospital = get_hospital_or_404(session, hospital_id, include_inactive=True)

    for key, value in hospital_data.model_dump(exclude_unset=True, mode="json").items():
        setattr(hospital, key, value)
    hospital.updated_at = datetime.utcnow()

    session.add(hospital)
    session.commit()
    session.refresh(hospital)

    return success_response(
        data={"hospital": serialize(HospitalRead, hospital)},
        message="Hospital updated successfully",
    )


@router.delete("/{hospital_id}")
def delete_hospital(
    hospital_id: int,
    current_user: User = Depends(require_manager),
    session: Session = Depends(get_session)
):
    """Deactivate a hospital (manager only); the row is kept"""
    hospital = get_hospital_or_404(session, hospital_id)
    hospital.is_active = False
    hospital.updated_at = datetime.utcnow()
    session.add(hospital)
    session.commit()

    logger.info(f"Hospital {hospital.hospital_id} deactivated by {current_user.id}")
    return success_response(message="Hospital deactivated successfully")
