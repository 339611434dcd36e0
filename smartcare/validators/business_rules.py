"""Business rule configuration and validation"""
from typing import List
from pydantic import BaseModel


class BusinessRules(BaseModel):
    """Business rules configuration"""
    # Appointment rules
    MIN_APPOINTMENT_DURATION_MINUTES: int = 15
    MAX_APPOINTMENT_DURATION_MINUTES: int = 120
    DEFAULT_APPOINTMENT_DURATION_MINUTES: int = 30
    DEFAULT_SLOT_DURATION_MINUTES: int = 30
    WORKING_DAY_START: str = "09:00"
    WORKING_DAY_END: str = "17:00"

    # Fee rules
    RESERVATION_FEE_RATIO: float = 0.2
    CANCELLATION_REFUND_RATIO: float = 0.8

    # Listing rules
    DEFAULT_PAGE_SIZE: int = 10
    MAX_PAGE_SIZE: int = 100

    # Medical record attachments
    MAX_ATTACHMENT_SIZE_BYTES: int = 10 * 1024 * 1024
    ALLOWED_ATTACHMENT_TYPES: List[str] = [
        "application/pdf",
        "image/jpeg",
        "image/jpg",
        "image/png",
        "image/gif",
        "application/msword",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        "text/plain",
    ]


# Global instance - can be loaded from database
business_rules = BusinessRules()


def get_business_rules() -> BusinessRules:
    """Get current business rules"""
    return business_rules
