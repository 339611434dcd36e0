from typing import Iterable, Optional
from fastapi import Depends, HTTPException, status, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlmodel import Session
from smartcare.database import get_session
from smartcare.models import User, UserRole
from smartcare.auth import decode_token, TOKEN_COOKIE_NAME
from smartcare.services.payment_gateway import PaymentGateway, get_default_gateway
from smartcare.utils.notification_service import NotificationService, get_notification_service

security = HTTPBearer(auto_error=False)

ACCESS_DENIED = "Access denied. Insufficient permissions."
STAFF_ROLES = (UserRole.HOSPITAL_STAFF.value, UserRole.HEALTHCARE_MANAGER.value)


def extract_token(request: Request, credentials: Optional[HTTPAuthorizationCredentials]) -> Optional[str]:
    """Bearer header first, then the session cookie"""
    if credentials and credentials.credentials:
        return credentials.credentials
    return request.cookies.get(TOKEN_COOKIE_NAME)


def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    session: Session = Depends(get_session)
) -> User:
    """Get current authenticated user"""
    token = extract_token(request, credentials)
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="No token provided"
        )

    payload = decode_token(token)
    if not payload or payload.get("type") != "access":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token"
        )

    try:
        user_id = int(payload.get("sub"))
    except (TypeError, ValueError):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token"
        )

    user = session.get(User, user_id)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found"
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User account is inactive"
        )

    # Picked up by the request logging middleware
    request.state.user_id = user.id
    request.state.user_role = user.role
    request.state.token = token
    request.state.token_payload = payload

    return user


def is_role_allowed(user: Optional[User], allowed_roles: Iterable[str]) -> bool:
    """Exact, case-sensitive match of the user's role against the allowlist"""
    if user is None:
        return False
    role = getattr(user, "role", None)
    if not role:
        return False
    return role in {r.value if isinstance(r, UserRole) else r for r in allowed_roles}


def require_roles(*allowed_roles):
    """Dependency factory for role-based access control"""
    def role_checker(current_user: User = Depends(get_current_user)) -> User:
        if not is_role_allowed(current_user, allowed_roles):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=ACCESS_DENIED
            )
        return current_user
    return role_checker


def is_staff(user: User) -> bool:
    return user.role in STAFF_ROLES


def forbid(detail: str = "Access denied") -> HTTPException:
    return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


# Convenience dependencies for common role checks
require_manager = require_roles(UserRole.HEALTHCARE_MANAGER)
require_staff = require_roles(UserRole.HOSPITAL_STAFF, UserRole.HEALTHCARE_MANAGER)
require_doctor = require_roles(UserRole.HEALTHCARE_PROFESSIONAL)


def get_payment_gateway() -> PaymentGateway:
    return get_default_gateway()


def get_notifier() -> NotificationService:
    return get_notification_service()
