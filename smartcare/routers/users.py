import logging
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from fastapi import APIRouter, Body, Depends, HTTPException, Query, status
from sqlmodel import Session, select, func, or_, col

from smartcare.auth import get_password_hash
from smartcare.database import get_session
from smartcare.dependencies import get_current_user, require_manager, require_staff, is_staff, forbid
from smartcare.models import User, Hospital, UserRole
from smartcare.schemas import (
    PROFILE_SCHEMAS, PROMOTED_PROFILE_FIELDS, UserUpdate, UserStatusUpdate,
    parse_user_create, pick_fields, split_profile, user_to_dict,
)
from smartcare.utils.responses import success_response, pagination
from smartcare.validators.password_validator import validate_password

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/users", tags=["Users"])

SORT_FIELDS = {
    "createdAt": User.created_at,
    "userName": User.user_name,
    "email": User.email,
    "lastLogin": User.last_login,
}


def find_user_by_email(session: Session, email: str) -> Optional[User]:
    return session.exec(select(User).where(User.email == email.lower())).first()


def get_user_or_404(session: Session, user_id: int) -> User:
    user = session.get(User, user_id)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found"
        )
    return user


def ensure_unique_identity(
    session: Session,
    email: Optional[str] = None,
    user_name: Optional[str] = None,
    exclude_id: Optional[int] = None
) -> None:
    conditions = []
    if email:
        conditions.append(User.email == email.lower())
    if user_name:
        conditions.append(User.user_name == user_name)
    if not conditions:
        return

    query = select(User).where(or_(*conditions))
    if exclude_id:
        query = query.where(User.id != exclude_id)
    if session.exec(query).first():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="User with this email or username already exists"
        )


def ensure_unique_promoted(session: Session, promoted: Dict[str, Any], exclude_id: Optional[int] = None) -> None:
    """licenseNumber and employeeID are unique across all users"""
    checks = (
        ("license_number", User.license_number, "License number already registered"),
        ("employee_id", User.employee_id, "Employee ID already registered"),
    )
    for name, column, message in checks:
        value = promoted.get(name)
        if not value:
            continue
        query = select(User).where(column == value)
        if exclude_id:
            query = query.where(User.id != exclude_id)
        if session.exec(query).first():
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=message)

    hospital_id = promoted.get("hospital_id")
    if hospital_id is not None and not session.get(Hospital, hospital_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Hospital not found"
        )


def profile_parts(role: str, validated) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    """Split a validated variant into the profile document and its promoted columns"""
    profile = split_profile(role, validated)
    promoted = {
        name: getattr(validated, name)
        for name in PROMOTED_PROFILE_FIELDS
        if name in PROFILE_SCHEMAS[role].model_fields
    }
    return profile, promoted


def create_user_account(session: Session, user_data) -> User:
    """Persist a validated create payload of any role variant"""
    try:
        validate_password(user_data.password)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    ensure_unique_identity(session, email=user_data.email, user_name=user_data.user_name)
    profile, promoted = profile_parts(user_data.role, user_data)
    ensure_unique_promoted(session, promoted)

    user = User(
        user_name=user_data.user_name,
        email=user_data.email.lower(),
        password_hash=get_password_hash(user_data.password),
        phone=user_data.phone,
        date_of_birth=user_data.date_of_birth,
        address=user_data.address.model_dump(mode="json") if user_data.address else None,
        role=user_data.role,
        profile=profile,
        **promoted,
    )
    session.add(user)
    session.commit()
    session.refresh(user)

    logger.info(f"Created {user.role} account {user.id} ({user.user_name})")
    return user


@router.get("")
def list_users(
    role: Optional[UserRole] = None,
    search: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    sort: str = "-createdAt",
    current_user: User = Depends(require_staff),
    session: Session = Depends(get_session)
):
    """List users (manager/staff)"""
    query = select(User)
    if role:
        query = query.where(User.role == role.value)
    if search:
        term = f"%{search.lower()}%"
        query = query.where(or_(
            func.lower(User.user_name).like(term),
            func.lower(User.email).like(term),
            col(User.phone).like(f"%{search}%"),
        ))

    sort_field = sort.lstrip("-")
    if sort_field not in SORT_FIELDS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Cannot sort by {sort_field}"
        )
    column = SORT_FIELDS[sort_field]
    ordered = query.order_by(column.desc() if sort.startswith("-") else column.asc())

    total = session.exec(select(func.count()).select_from(query.subquery())).one()
    users = session.exec(ordered.offset((page - 1) * limit).limit(limit)).all()

    return success_response(data={
        "users": [user_to_dict(u) for u in users],
        "pagination": pagination(page, limit, total),
    })


@router.get("/{user_id}")
def get_user(
    user_id: int,
    current_user: User = Depends(get_current_user),
    session: Session = Depends(get_session)
):
    """Get a user (manager/staff, or the user themself)"""
    if current_user.id != user_id and not is_staff(current_user):
        raise forbid()
    user = get_user_or_404(session, user_id)
    return success_response(data={"user": user_to_dict(user)})


@router.post("", status_code=status.HTTP_201_CREATED)
def create_user(
    payload: Dict[str, Any] = Body(...),
    current_user: User = Depends(require_manager),
    session: Session = Depends(get_session)
):
    """Create a user of any role (manager only)"""
    user = create_user_account(session, parse_user_create(payload))
    return success_response(data={"user": user_to_dict(user)}, message="User created successfully")


@router.put("/{user_id}")
def update_user(
    user_id: int,
    payload: Dict[str, Any] = Body(...),
    current_user: User = Depends(require_manager),
    session: Session = Depends(get_session)
):
    """Update account and profile fields (manager only). Role and password are not updatable here."""
    user = get_user_or_404(session, user_id)
    payload = {k: v for k, v in payload.items() if k not in ("role", "password", "passwordHash", "password_hash")}

    account = UserUpdate.model_validate(payload)
    changes = account.model_dump(exclude_unset=True)
    ensure_unique_identity(
        session,
        email=changes.get("email"),
        user_name=changes.get("user_name"),
        exclude_id=user.id
    )

    profile_schema = PROFILE_SCHEMAS[user.role]
    profile_changes = pick_fields(profile_schema, payload)
    if profile_changes:
        stored = dict(user.profile or {})
        for name in PROMOTED_PROFILE_FIELDS:
            if name in profile_schema.model_fields:
                stored[name] = getattr(user, name)
        validated = profile_schema.model_validate({**stored, **profile_changes})
        profile, promoted = profile_parts(user.role, validated)
        ensure_unique_promoted(session, promoted, exclude_id=user.id)
        user.profile = profile
        for name, value in promoted.items():
            setattr(user, name, value)

    for key, value in changes.items():
        if key == "address":
            value = account.address.model_dump(mode="json") if account.address else None
        elif key == "email":
            value = value.lower()
        setattr(user, key, value)

    user.updated_at = datetime.utcnow()
    session.add(user)
    session.commit()
    session.refresh(user)

    logger.info(f"User {user.id} updated by {current_user.id}")
    return success_response(data={"user": user_to_dict(user)}, message="User updated successfully")


@router.delete("/{user_id}")
def delete_user(
    user_id: int,
    current_user: User = Depends(require_manager),
    session: Session = Depends(get_session)
):
    """Delete a user (manager only)"""
    if user_id == current_user.id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cannot delete your own account"
        )

    user = get_user_or_404(session, user_id)
    session.delete(user)
    session.commit()

    logger.info(f"User {user_id} deleted by {current_user.id}")
    return success_response(message="User deleted successfully")


@router.patch("/{user_id}/status")
def update_user_status(
    user_id: int,
    status_update: UserStatusUpdate,
    current_user: User = Depends(require_manager),
    session: Session = Depends(get_session)
):
    """Activate or deactivate a user account (manager only)"""
    user = get_user_or_404(session, user_id)
    user.is_active = status_update.is_active
    user.updated_at = datetime.utcnow()
    session.add(user)
    session.commit()
    session.refresh(user)

    state = "activated" if user.is_active else "deactivated"
    logger.info(f"User {user.id} {state} by {current_user.id}")
    return success_response(data={"user": user_to_dict(user)}, message=f"User {state} successfully")
