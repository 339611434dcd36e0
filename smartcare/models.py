from typing import Optional, List
from datetime import datetime, date
from sqlmodel import Field, SQLModel
from sqlalchemy import Column, JSON, String
from enum import Enum


class UserRole(str, Enum):
    PATIENT = "patient"
    HEALTHCARE_PROFESSIONAL = "healthcare_professional"
    HOSPITAL_STAFF = "hospital_staff"
    HEALTHCARE_MANAGER = "healthcare_manager"


class AppointmentStatus(str, Enum):
    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


class AppointmentType(str, Enum):
    REGULAR = "regular"
    URGENT = "urgent"
    FOLLOW_UP = "follow_up"
    CONSULTATION = "consultation"
    PROCEDURE = "procedure"


class AppointmentPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    EMERGENCY = "emergency"


class CancelledBy(str, Enum):
    PATIENT = "patient"
    DOCTOR = "doctor"
    HOSPITAL = "hospital"
    SYSTEM = "system"


class RefundStatus(str, Enum):
    PENDING = "pending"
    PROCESSED = "processed"
    DECLINED = "declined"


class PaymentMethod(str, Enum):
    CREDIT_CARD = "credit_card"
    DEBIT_CARD = "debit_card"
    CASH = "cash"
    INSURANCE = "insurance"
    GOVERNMENT = "government"
    BANK_TRANSFER = "bank_transfer"
    DIGITAL_WALLET = "digital_wallet"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"
    PARTIALLY_REFUNDED = "partially_refunded"


class Currency(str, Enum):
    LKR = "LKR"
    USD = "USD"
    EUR = "EUR"


class FeeType(str, Enum):
    RESERVATION = "reservation"
    CONSULTATION = "consultation"


class RefundMethod(str, Enum):
    ORIGINAL = "original"
    CASH = "cash"
    BANK_TRANSFER = "bank_transfer"


class HospitalType(str, Enum):
    PUBLIC = "public"
    PRIVATE = "private"
    TEACHING = "teaching"
    SPECIALTY = "specialty"


class Specialization(str, Enum):
    CARDIOLOGY = "Cardiology"
    DERMATOLOGY = "Dermatology"
    ENDOCRINOLOGY = "Endocrinology"
    GASTROENTEROLOGY = "Gastroenterology"
    GENERAL_MEDICINE = "General Medicine"
    GYNECOLOGY = "Gynecology"
    NEUROLOGY = "Neurology"
    ONCOLOGY = "Oncology"
    ORTHOPEDICS = "Orthopedics"
    PEDIATRICS = "Pediatrics"
    PSYCHIATRY = "Psychiatry"
    RADIOLOGY = "Radiology"
    SURGERY = "Surgery"
    UROLOGY = "Urology"
    EMERGENCY_MEDICINE = "Emergency Medicine"
    ANESTHESIOLOGY = "Anesthesiology"
    PATHOLOGY = "Pathology"
    PHYSICAL_THERAPY = "Physical Therapy"
    NURSING = "Nursing"


class Facility(str, Enum):
    EMERGENCY = "emergency"
    ICU = "icu"
    SURGERY = "surgery"
    RADIOLOGY = "radiology"
    LABORATORY = "laboratory"
    PHARMACY = "pharmacy"
    PHYSIOTHERAPY = "physiotherapy"
    DENTAL = "dental"
    MENTAL_HEALTH = "mental_health"
    MATERNITY = "maternity"
    PEDIATRICS = "pediatrics"
    CARDIOLOGY = "cardiology"
    ONCOLOGY = "oncology"
    ORTHOPEDICS = "orthopedics"


class BloodType(str, Enum):
    A_POSITIVE = "A+"
    A_NEGATIVE = "A-"
    B_POSITIVE = "B+"
    B_NEGATIVE = "B-"
    AB_POSITIVE = "AB+"
    AB_NEGATIVE = "AB-"
    O_POSITIVE = "O+"
    O_NEGATIVE = "O-"


class StaffRole(str, Enum):
    RECEPTIONIST = "receptionist"
    NURSE = "nurse"
    LAB_TECHNICIAN = "lab_technician"
    PHARMACIST = "pharmacist"
    ADMINISTRATOR = "administrator"
    SECURITY = "security"
    MAINTENANCE = "maintenance"
    CLEANER = "cleaner"
    ACCOUNTANT = "accountant"
    IT_SUPPORT = "it_support"


class Shift(str, Enum):
    MORNING = "morning"
    AFTERNOON = "afternoon"
    NIGHT = "night"
    FLEXIBLE = "flexible"


class StaffPermission(str, Enum):
    VIEW_PATIENTS = "view_patients"
    EDIT_PATIENTS = "edit_patients"
    VIEW_APPOINTMENTS = "view_appointments"
    MANAGE_APPOINTMENTS = "manage_appointments"
    VIEW_PAYMENTS = "view_payments"
    PROCESS_PAYMENTS = "process_payments"
    VIEW_REPORTS = "view_reports"
    MANAGE_INVENTORY = "manage_inventory"
    SYSTEM_ADMIN = "system_admin"


class RecordAction(str, Enum):
    VIEWED = "viewed"
    EDITED = "edited"
    CREATED = "created"
    DELETED = "deleted"
    PRINTED = "printed"
    EXPORTED = "exported"


class User(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    user_name: str = Field(unique=True, index=True)
    email: str = Field(unique=True, index=True)
    password_hash: str
    phone: str
    date_of_birth: Optional[date] = None
    address: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    role: str = Field(sa_column=Column(String(32), index=True, nullable=False))
    is_active: bool = Field(default=True)

    # Variant columns that must stay unique across the table
    license_number: Optional[str] = Field(default=None, unique=True)
    employee_id: Optional[str] = Field(default=None, unique=True)
    hospital_id: Optional[int] = Field(default=None, foreign_key="hospital.id")

    # Remaining role-specific payload, validated by the matching profile schema
    profile: dict = Field(default_factory=dict, sa_column=Column(JSON))

    last_login: Optional[datetime] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class Hospital(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    hospital_id: str = Field(unique=True, index=True)
    name: str = Field(index=True)
    address: dict = Field(default_factory=dict, sa_column=Column(JSON))
    hospital_type: str = Field(sa_column=Column(String(20), nullable=False))
    capacity: dict = Field(default_factory=dict, sa_column=Column(JSON))
    contact_info: dict = Field(default_factory=dict, sa_column=Column(JSON))
    facilities: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    specializations: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    operating_hours: dict = Field(default_factory=dict, sa_column=Column(JSON))
    emergency_services: dict = Field(default_factory=dict, sa_column=Column(JSON))
    accreditation: List[dict] = Field(default_factory=list, sa_column=Column(JSON))
    is_active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class Appointment(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    appointment_id: str = Field(unique=True, index=True)
    patient_id: int = Field(foreign_key="user.id", index=True)
    doctor_id: int = Field(foreign_key="user.id", index=True)
    hospital_id: int = Field(foreign_key="hospital.id")
    appointment_date: date = Field(index=True)
    appointment_time: str = Field(sa_column=Column(String(5), nullable=False))
    duration: int = Field(default=30)
    status: str = Field(default="scheduled", sa_column=Column(String(20), index=True))
    appointment_type: str = Field(default="regular", sa_column=Column(String(20)))
    priority: str = Field(default="medium", sa_column=Column(String(20)))
    notes: Optional[str] = None
    symptoms: List[str] = Field(default_factory=list, sa_column=Column(JSON))

    # Fee sub-records: {amount, paid, payment_date, payment_method}
    reservation_fee: dict = Field(default_factory=dict, sa_column=Column(JSON))
    consultation_fee: dict = Field(default_factory=dict, sa_column=Column(JSON))

    reminders: dict = Field(default_factory=dict, sa_column=Column(JSON))
    cancellation: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    follow_up: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class Payment(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    payment_id: str = Field(unique=True, index=True)
    patient_id: int = Field(foreign_key="user.id", index=True)
    appointment_id: Optional[int] = Field(default=None, foreign_key="appointment.id")
    hospital_id: int = Field(foreign_key="hospital.id")
    amount: float = Field(ge=0)
    currency: str = Field(default="LKR", sa_column=Column(String(3)))
    method: str = Field(sa_column=Column(String(20), nullable=False))
    status: str = Field(default="pending", sa_column=Column(String(20), index=True))
    fee_type: Optional[str] = Field(default=None, sa_column=Column(String(20)))
    transaction_reference: Optional[str] = Field(default=None, unique=True)
    billing_details: dict = Field(default_factory=dict, sa_column=Column(JSON))
    insurance_info: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    gateway_response: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    receipt: dict = Field(default_factory=dict, sa_column=Column(JSON))
    refund: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    processed_by: Optional[int] = Field(default=None, foreign_key="user.id")
    notes: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class MedicalRecord(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    record_id: str = Field(unique=True, index=True)
    patient_id: int = Field(foreign_key="user.id", index=True)
    doctor_id: int = Field(foreign_key="user.id", index=True)
    hospital_id: int = Field(foreign_key="hospital.id")
    appointment_id: Optional[int] = Field(default=None, foreign_key="appointment.id")
    visit_date: datetime = Field(default_factory=datetime.utcnow, index=True)
    chief_complaint: str
    history_of_present_illness: Optional[str] = None
    physical_examination: dict = Field(default_factory=dict, sa_column=Column(JSON))
    diagnosis: List[dict] = Field(default_factory=list, sa_column=Column(JSON))
    treatment_plan: dict = Field(default_factory=dict, sa_column=Column(JSON))
    allergies: List[dict] = Field(default_factory=list, sa_column=Column(JSON))
    lab_results: List[dict] = Field(default_factory=list, sa_column=Column(JSON))
    imaging_results: List[dict] = Field(default_factory=list, sa_column=Column(JSON))
    progress_notes: List[dict] = Field(default_factory=list, sa_column=Column(JSON))
    attachments: List[dict] = Field(default_factory=list, sa_column=Column(JSON))
    access_log: List[dict] = Field(default_factory=list, sa_column=Column(JSON))
    is_active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class Sequence(SQLModel, table=True):
    """Named counter behind human-readable identifiers (APT, RCP, HOSP)"""
    name: str = Field(primary_key=True)
    value: int = Field(default=0)
