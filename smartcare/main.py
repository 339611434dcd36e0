from contextlib import asynccontextmanager
from typing import Any, Dict, List
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from pydantic import ValidationError
from dotenv import load_dotenv
import os
import logging

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Load environment variables from .env file FIRST
load_dotenv()

from smartcare.database import create_db_and_tables  # noqa: E402
from smartcare.routers import auth, users, hospitals, appointments, payments, medical_records  # noqa: E402
from smartcare.middleware.request_logger import RequestLoggingMiddleware  # noqa: E402
from smartcare.middleware.security_headers import SecurityHeadersMiddleware  # noqa: E402
from smartcare.services.scheduler import scheduler_from_env  # noqa: E402
from smartcare.utils.responses import error_response  # noqa: E402
from slowapi.errors import RateLimitExceeded  # noqa: E402

ENVIRONMENT = os.getenv("ENVIRONMENT", "development").lower()


@asynccontextmanager
async def lifespan(app: FastAPI):
    create_db_and_tables()

    scheduler = None
    if os.getenv("ENABLE_SCHEDULER", "true").lower() == "true":
        scheduler = scheduler_from_env()
        scheduler.start()

    yield

    if scheduler is not None:
        await scheduler.stop()


app = FastAPI(
    title="SmartCare API",
    description="Hospital management API: appointments, payments, medical records",
    version="0.1.0",
    lifespan=lifespan
)

# Login and register carry their own limits
app.state.limiter = auth.limiter


def validation_errors(errors: List[Dict[str, Any]]) -> List[Dict[str, str]]:
    """pydantic error list -> [{field, message}] with request-location prefixes dropped"""
    formatted = []
    for error in errors:
        loc = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
        message = error.get("msg", "Invalid value")
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        formatted.append({"field": ".".join(loc), "message": message})
    return formatted


def server_error_payload(exc: Exception, environment: str) -> Dict[str, Any]:
    body = error_response("Internal server error")
    if environment == "development":
        body["error"] = str(exc)
    return body


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content=error_response(str(exc.detail)),
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_response("Validation failed", validation_errors(exc.errors())),
    )


@app.exception_handler(ValidationError)
async def model_validation_handler(request: Request, exc: ValidationError):
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_response("Validation failed", validation_errors(exc.errors())),
    )


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    logger.warning(f"Rate limit exceeded for {request.client.host if request.client else 'unknown'} on {request.url.path}")
    return JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        content=error_response("Too many requests, please try again later"),
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.method} {request.url.path}", exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=server_error_payload(exc, ENVIRONMENT),
    )


# CORS configuration
origins = [
    "http://localhost:3000",  # Development frontend
    os.getenv("FRONTEND_URL", "http://localhost:3000"),
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "X-Requested-With", "Accept", "Origin"],
)

app.add_middleware(RequestLoggingMiddleware)

# Added last so it wraps everything, error responses included
app.add_middleware(SecurityHeadersMiddleware)

app.include_router(auth.router)
app.include_router(users.router)
app.include_router(hospitals.router)
app.include_router(appointments.router)
app.include_router(payments.router)
app.include_router(medical_records.router)


@app.get("/")
def read_root():
    return {"success": True, "message": "Welcome to SmartCare API"}


@app.get("/health")
def health_check():
    return {"status": "healthy", "environment": ENVIRONMENT}
