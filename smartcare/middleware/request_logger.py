"""Request logging middleware"""
import logging
import time
from typing import Optional
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger("smartcare.requests")

SKIP_PATHS = ("/health", "/docs", "/openapi.json", "/redoc", "/favicon.ico")


def determine_activity(method: str, path: str) -> Optional[str]:
    """Name the lifecycle action a request performs, if any"""
    if "/auth/login" in path:
        return "login"
    if "/auth/logout" in path:
        return "logout"

    if "/appointments" in path:
        if "/cancel" in path:
            return "appointment_cancel"
        if method == "POST":
            return "appointment_book"
        if method in ("PUT", "PATCH"):
            return "appointment_update"

    if "/payments" in path and method == "POST":
        if path.endswith("/refund"):
            return "payment_refund"
        if path.endswith("/receipt"):
            return "receipt_generate"
        return "payment_create"

    if "/medical-records" in path:
        return "medical_record_access"

    return None


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs method, path, status, duration and acting user of every request"""

    async def dispatch(self, request: Request, call_next):
        if request.url.path.startswith(SKIP_PATHS):
            return await call_next(request)

        started = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - started) * 1000

        # Set by the auth dependency when the route required a user
        user_id = getattr(request.state, "user_id", None)
        actor = f"user={user_id}({request.state.user_role})" if user_id else "anonymous"
        activity = determine_activity(request.method, request.url.path)

        message = f"{request.method} {request.url.path} -> {response.status_code} ({duration_ms:.1f}ms) {actor}"
        if activity:
            message += f" [{activity}]"

        if response.status_code >= 500:
            logger.error(message)
        elif response.status_code >= 400:
            logger.warning(message)
        else:
            logger.info(message)

        return response
