from typing import Optional, List, Dict, Any, Union, Literal, Type, Annotated
from pydantic import BaseModel, ConfigDict, EmailStr, Field, AliasChoices, TypeAdapter, field_validator, model_validator
from pydantic.alias_generators import to_camel
from datetime import datetime, date

from smartcare.models import (
    UserRole, AppointmentStatus, AppointmentType, AppointmentPriority, CancelledBy, RefundStatus,
    PaymentMethod, PaymentStatus, Currency, FeeType, RefundMethod, HospitalType, Specialization,
    Facility, BloodType, StaffRole, Shift, StaffPermission, RecordAction,
)
from smartcare.validators.time_validator import is_valid_time


def to_api_name(field_name: str) -> str:
    """snake_case -> camelCase, keeping the upper-case ID suffix clients use (patientID)"""
    name = to_camel(field_name)
    if name.endswith("Id"):
        return name[:-2] + "ID"
    return name


class APIModel(BaseModel):
    """Base for every wire schema: camelCase on the wire, snake_case in Python"""
    model_config = ConfigDict(
        alias_generator=to_api_name,
        populate_by_name=True,
        from_attributes=True,
    )


def check_time(value: Optional[str]) -> Optional[str]:
    if value is not None and not is_valid_time(value):
        raise ValueError("Time must be in HH:MM format")
    if value is None:
        return value
    return datetime.strptime(value, "%H:%M").strftime("%H:%M")


# Shared value objects
class Address(APIModel):
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    country: str = "Sri Lanka"


class DayHours(APIModel):
    start: Optional[str] = None
    end: Optional[str] = None
    available: bool = True

    @field_validator("start", "end")
    @classmethod
    def validate_time(cls, value):
        return check_time(value)


# User variants
class MedicalHistoryEntry(APIModel):
    condition: str
    diagnosis_date: Optional[date] = None
    status: Literal["active", "resolved", "chronic"] = "active"
    notes: Optional[str] = None


class AllergyEntry(APIModel):
    allergen: str
    severity: Literal["mild", "moderate", "severe"]
    reaction: Optional[str] = None


class EmergencyContact(APIModel):
    name: str
    relationship: str
    phone: str
    email: Optional[EmailStr] = None


class PatientInsurance(APIModel):
    provider: Optional[str] = None
    policy_number: Optional[str] = None
    group_number: Optional[str] = None
    expiry_date: Optional[date] = None


class PatientProfile(APIModel):
    medical_history: List[MedicalHistoryEntry] = []
    allergies: List[AllergyEntry] = []
    emergency_contact: EmergencyContact
    blood_type: BloodType
    height: Optional[float] = Field(default=None, ge=0, le=300)
    weight: Optional[float] = Field(default=None, ge=0, le=1000)
    insurance_info: Optional[PatientInsurance] = None
    preferred_language: str = "English"


class Qualification(APIModel):
    degree: str
    institution: Optional[str] = None
    year: Optional[int] = None


class ProfessionalProfile(APIModel):
    specialization: Specialization
    license_number: str = Field(min_length=1)
    department: str
    years_of_experience: int = Field(default=0, ge=0, le=50)
    qualifications: List[Qualification] = []
    consultation_fee: float = Field(ge=0)
    working_hours: Dict[str, DayHours] = {}
    is_available: bool = True
    bio: Optional[str] = Field(default=None, max_length=1000)
    languages: List[str] = ["English"]
    hospital_id: Optional[int] = None


class StaffHours(APIModel):
    start: Optional[str] = None
    end: Optional[str] = None

    @field_validator("start", "end")
    @classmethod
    def validate_time(cls, value):
        return check_time(value)


class StaffProfile(APIModel):
    staff_role: StaffRole
    department: str
    employee_id: str = Field(min_length=1)
    hire_date: Optional[date] = None
    salary: Optional[float] = Field(default=None, ge=0)
    shift: Shift = Shift.MORNING
    permissions: List[StaffPermission] = []
    working_hours: Optional[StaffHours] = None
    hospital_id: Optional[int] = None


class ManagerProfile(APIModel):
    pass


PROFILE_SCHEMAS: Dict[str, Type[APIModel]] = {
    UserRole.PATIENT.value: PatientProfile,
    UserRole.HEALTHCARE_PROFESSIONAL.value: ProfessionalProfile,
    UserRole.HOSPITAL_STAFF.value: StaffProfile,
    UserRole.HEALTHCARE_MANAGER.value: ManagerProfile,
}

# Profile fields stored in their own columns rather than the profile document
PROMOTED_PROFILE_FIELDS = ("license_number", "employee_id", "hospital_id")


class AccountFields(APIModel):
    user_name: str = Field(min_length=3, max_length=30)
    email: EmailStr
    password: str
    phone: str = Field(pattern=r"^\+?[\d\s\-()]+$")
    date_of_birth: Optional[date] = None
    address: Optional[Address] = None


class PatientCreate(AccountFields, PatientProfile):
    role: Literal["patient"]


class ProfessionalCreate(AccountFields, ProfessionalProfile):
    role: Literal["healthcare_professional"]


class StaffCreate(AccountFields, StaffProfile):
    role: Literal["hospital_staff"]


class ManagerCreate(AccountFields):
    role: Literal["healthcare_manager"]


UserCreate = Annotated[
    Union[PatientCreate, ProfessionalCreate, StaffCreate, ManagerCreate],
    Field(discriminator="role"),
]

user_create_adapter = TypeAdapter(UserCreate)


def parse_user_create(data: Dict[str, Any]):
    """Validate a create payload against the variant its role tag selects"""
    return user_create_adapter.validate_python(data)


class UserUpdate(APIModel):
    user_name: Optional[str] = Field(default=None, min_length=3, max_length=30)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(default=None, pattern=r"^\+?[\d\s\-()]+$")
    date_of_birth: Optional[date] = None
    address: Optional[Address] = None
    is_active: Optional[bool] = None


class UserStatusUpdate(APIModel):
    is_active: bool


class UserLogin(BaseModel):
    email: EmailStr
    password: str


class UserRead(APIModel):
    id: int
    user_name: str
    email: str
    phone: str
    date_of_birth: Optional[date] = None
    address: Optional[Address] = None
    role: UserRole
    is_active: bool
    last_login: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


def split_profile(role: str, payload: BaseModel) -> Dict[str, Any]:
    """Role-specific part of a create payload, as stored in the profile document"""
    profile_schema = PROFILE_SCHEMAS[role]
    fields = set(profile_schema.model_fields) - set(PROMOTED_PROFILE_FIELDS)
    return payload.model_dump(include=fields, mode="json")


def pick_fields(schema: Type[BaseModel], data: Dict[str, Any]) -> Dict[str, Any]:
    """Values in `data` for the schema's fields, accepted under wire or Python names"""
    picked = {}
    for name, field in schema.model_fields.items():
        alias = field.alias or name
        if alias in data:
            picked[name] = data[alias]
        elif name in data:
            picked[name] = data[name]
    return picked


def user_to_dict(user) -> Dict[str, Any]:
    """Flat wire representation: account fields plus the role variant's fields"""
    data = UserRead.model_validate(user).model_dump(by_alias=True, mode="json")
    profile_schema = PROFILE_SCHEMAS.get(user.role)
    if profile_schema and profile_schema is not ManagerProfile:
        stored = dict(user.profile or {})
        for name in PROMOTED_PROFILE_FIELDS:
            if name in profile_schema.model_fields:
                stored[name] = getattr(user, name)
        profile = profile_schema.model_validate(stored)
        data.update(profile.model_dump(by_alias=True, mode="json"))
    return data


def user_summary(user) -> Optional[Dict[str, Any]]:
    """Compact reference embedded in appointments, payments and records"""
    if user is None:
        return None
    summary = {"id": user.id, "userName": user.user_name, "email": user.email, "phone": user.phone}
    if user.role == UserRole.HEALTHCARE_PROFESSIONAL.value:
        summary["specialization"] = (user.profile or {}).get("specialization")
    return summary


# Hospital schemas
class Capacity(APIModel):
    total_beds: int = Field(ge=1)
    occupied_beds: int = Field(default=0, ge=0)
    icu_beds: int = Field(default=0, ge=0)
    emergency_beds: int = Field(default=0, ge=0)

    @model_validator(mode="after")
    def occupied_within_total(self):
        if self.occupied_beds > self.total_beds:
            raise ValueError("Occupied beds cannot exceed total beds")
        return self


class ContactInfo(APIModel):
    phone: str
    email: Optional[EmailStr] = None
    website: Optional[str] = None
    emergency_hotline: Optional[str] = None


class OpeningHours(APIModel):
    open: Optional[str] = None
    close: Optional[str] = None
    is_open: bool = True

    @field_validator("open", "close")
    @classmethod
    def validate_time(cls, value):
        return check_time(value)


class EmergencyServices(APIModel):
    available: bool = False
    hours: Optional[str] = None


class Accreditation(APIModel):
    name: str
    issued_by: Optional[str] = None
    valid_until: Optional[date] = None


class HospitalAddress(APIModel):
    street: str
    city: str
    state: Optional[str] = None
    zip_code: Optional[str] = None
    country: str = "Sri Lanka"


class HospitalCreate(APIModel):
    name: str = Field(min_length=1, max_length=200)
    address: HospitalAddress
    hospital_type: HospitalType = Field(alias="type")
    capacity: Capacity
    contact_info: ContactInfo
    facilities: List[Facility] = []
    specializations: List[Specialization] = []
    operating_hours: Dict[str, OpeningHours] = {}
    emergency_services: EmergencyServices = EmergencyServices()
    accreditation: List[Accreditation] = []


class HospitalUpdate(APIModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    address: Optional[HospitalAddress] = None
    hospital_type: Optional[HospitalType] = Field(default=None, alias="type")
    capacity: Optional[Capacity] = None
    contact_info: Optional[ContactInfo] = None
    facilities: Optional[List[Facility]] = None
    specializations: Optional[List[Specialization]] = None
    operating_hours: Optional[Dict[str, OpeningHours]] = None
    emergency_services: Optional[EmergencyServices] = None
    accreditation: Optional[List[Accreditation]] = None


class HospitalRead(APIModel):
    id: int
    hospital_id: str
    name: str
    address: HospitalAddress
    hospital_type: HospitalType = Field(alias="type")
    capacity: Capacity
    contact_info: ContactInfo
    facilities: List[str]
    specializations: List[str]
    operating_hours: Dict[str, OpeningHours]
    emergency_services: EmergencyServices
    accreditation: List[Accreditation]
    is_active: bool
    created_at: datetime
    updated_at: datetime


# Appointment schemas
class FeeRecord(APIModel):
    amount: Optional[float] = None
    paid: bool = False
    payment_date: Optional[datetime] = None
    payment_method: Optional[str] = None


class ReminderState(APIModel):
    email_sent: bool = False
    sms_sent: bool = False
    reminder_date: Optional[datetime] = None


class CancellationRecord(APIModel):
    cancelled_by: CancelledBy
    reason: str
    cancelled_at: datetime
    refund_amount: Optional[float] = None
    refund_status: Optional[RefundStatus] = None


class FollowUp(APIModel):
    required: bool = False
    scheduled_date: Optional[date] = None
    notes: Optional[str] = None


class AppointmentCreate(APIModel):
    doctor_id: int
    hospital_id: int
    patient_id: Optional[int] = None
    appointment_date: date = Field(alias="date")
    appointment_time: str = Field(alias="time")
    duration: int = 30
    appointment_type: AppointmentType = Field(default=AppointmentType.REGULAR, alias="type")
    priority: AppointmentPriority = AppointmentPriority.MEDIUM
    symptoms: List[str] = []
    notes: Optional[str] = Field(default=None, max_length=1000)

    @field_validator("appointment_time")
    @classmethod
    def validate_time(cls, value):
        return check_time(value)


class AppointmentUpdate(APIModel):
    status: Optional[AppointmentStatus] = None
    notes: Optional[str] = Field(default=None, max_length=1000)
    appointment_date: Optional[date] = Field(default=None, alias="date")
    appointment_time: Optional[str] = Field(default=None, alias="time")
    duration: Optional[int] = None
    priority: Optional[AppointmentPriority] = None
    symptoms: Optional[List[str]] = None
    follow_up: Optional[FollowUp] = None

    @field_validator("appointment_time")
    @classmethod
    def validate_time(cls, value):
        return check_time(value)


class AppointmentCancel(APIModel):
    reason: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("cancellationReason", "reason", "cancellation_reason"),
    )


class AppointmentRead(APIModel):
    id: int
    appointment_id: str
    patient_id: int
    doctor_id: int
    hospital_id: int
    appointment_date: date = Field(alias="date")
    appointment_time: str = Field(alias="time")
    duration: int
    status: AppointmentStatus
    appointment_type: AppointmentType = Field(alias="type")
    priority: AppointmentPriority
    notes: Optional[str] = None
    symptoms: List[str] = []
    reservation_fee: FeeRecord
    consultation_fee: FeeRecord
    reminders: ReminderState
    cancellation: Optional[CancellationRecord] = None
    follow_up: Optional[FollowUp] = None
    created_at: datetime
    updated_at: datetime


# Payment schemas
class BillingService(APIModel):
    service_name: str
    service_code: Optional[str] = None
    quantity: int = Field(default=1, ge=1)
    unit_price: float = Field(ge=0)
    total_price: Optional[float] = None


class BillingDetails(APIModel):
    services: List[BillingService] = []
    subtotal: Optional[float] = Field(default=None, ge=0)
    tax: float = Field(default=0, ge=0)
    discount: float = Field(default=0, ge=0)
    total: Optional[float] = Field(default=None, ge=0)


class InsuranceInfo(APIModel):
    provider: Optional[str] = None
    policy_number: Optional[str] = None
    claim_number: Optional[str] = None
    covered_amount: Optional[float] = None
    patient_responsibility: Optional[float] = None
    deductible: Optional[float] = None
    copay: Optional[float] = None
    status: Literal["pending", "approved", "denied", "partial"] = "pending"


class GatewayResponse(APIModel):
    gateway: str
    gateway_transaction_id: Optional[str] = Field(default=None, alias="gatewayTransactionId")
    gateway_status: str
    gateway_message: Optional[str] = None
    processed_at: datetime


class Receipt(APIModel):
    generated: bool = False
    receipt_number: Optional[str] = None
    generated_at: Optional[datetime] = None
    format: Optional[str] = None


class RefundRecord(APIModel):
    refund_amount: float
    refund_reason: str
    refunded_at: datetime
    refund_method: RefundMethod
    refund_reference: str


class PaymentCreate(APIModel):
    hospital_id: int
    appointment_id: Optional[int] = None
    patient_id: Optional[int] = None
    amount: Optional[float] = Field(default=None, ge=0)
    currency: Currency = Currency.LKR
    method: PaymentMethod
    fee_type: Optional[FeeType] = None
    billing_details: Optional[BillingDetails] = None
    insurance_info: Optional[InsuranceInfo] = None
    notes: Optional[str] = Field(default=None, max_length=1000)

    @model_validator(mode="after")
    def amount_or_services(self):
        has_services = self.billing_details is not None and bool(self.billing_details.services)
        if self.amount is None and not has_services:
            raise ValueError("Payment amount is required")
        return self


class PaymentStatusUpdate(APIModel):
    status: Optional[Literal["pending", "processing", "completed", "failed", "cancelled"]] = None
    notes: Optional[str] = Field(default=None, max_length=1000)


class ReceiptRequest(APIModel):
    format: Literal["pdf", "html"] = "pdf"


class RefundRequest(APIModel):
    refund_amount: float = Field(ge=0)
    refund_reason: Optional[str] = None
    refund_method: RefundMethod = RefundMethod.ORIGINAL


class PaymentRead(APIModel):
    id: int
    payment_id: str
    patient_id: int
    appointment_id: Optional[int] = None
    hospital_id: int
    amount: float
    currency: Currency
    method: PaymentMethod
    status: PaymentStatus
    fee_type: Optional[FeeType] = None
    transaction_reference: Optional[str] = None
    billing_details: BillingDetails
    insurance_info: Optional[InsuranceInfo] = None
    gateway_response: Optional[GatewayResponse] = None
    receipt: Receipt
    refund: Optional[RefundRecord] = None
    processed_by: Optional[int] = None
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime


# Medical record schemas
class VitalSigns(APIModel):
    blood_pressure: Optional[str] = None
    heart_rate: Optional[float] = None
    temperature: Optional[float] = None
    respiratory_rate: Optional[float] = None
    oxygen_saturation: Optional[float] = None
    weight: Optional[float] = None
    height: Optional[float] = None


class PhysicalExamination(APIModel):
    vital_signs: Optional[VitalSigns] = None
    general_appearance: Optional[str] = None
    cardiovascular: Optional[str] = None
    respiratory: Optional[str] = None
    gastrointestinal: Optional[str] = None
    neurological: Optional[str] = None
    musculoskeletal: Optional[str] = None
    skin: Optional[str] = None
    other: Optional[str] = None


class Diagnosis(APIModel):
    primary: bool = False
    code: Optional[str] = None
    description: str = Field(min_length=1)
    diagnosis_type: Literal["primary", "secondary", "differential", "rule_out"] = Field(
        default="primary", alias="type"
    )


class Medication(APIModel):
    name: str
    dosage: Optional[str] = None
    frequency: Optional[str] = None
    duration: Optional[str] = None
    instructions: Optional[str] = None


class Procedure(APIModel):
    name: str
    scheduled_date: Optional[date] = None
    status: Literal["scheduled", "completed", "cancelled"] = "scheduled"


class TreatmentPlan(APIModel):
    medications: List[Medication] = []
    procedures: List[Procedure] = []
    lifestyle_recommendations: List[str] = []
    follow_up_instructions: Optional[str] = None
    next_appointment: Optional[datetime] = None


class LabResult(APIModel):
    test_name: str
    result: str
    normal_range: Optional[str] = None
    unit: Optional[str] = None
    status: Literal["normal", "abnormal", "critical"] = "normal"
    notes: Optional[str] = None
    test_date: Optional[date] = None


class ImagingResult(APIModel):
    imaging_type: str = Field(alias="type")
    body_part: Optional[str] = None
    findings: Optional[str] = None
    impression: Optional[str] = None
    image_date: Optional[date] = None


class RecordAllergy(APIModel):
    allergen: str
    reaction: Optional[str] = None
    severity: Literal["mild", "moderate", "severe"]


class AttachmentCreate(APIModel):
    file_name: str = Field(min_length=1)
    file_type: str
    file_size: int = Field(ge=0)
    file_url: Optional[str] = None
    description: Optional[str] = None


class Attachment(AttachmentCreate):
    uploaded_at: datetime
    uploaded_by: int


class ProgressNoteCreate(APIModel):
    note: Optional[str] = None


class ProgressNote(APIModel):
    date: datetime
    note: str
    author: int


class AccessLogEntry(APIModel):
    accessed_by: int
    action: RecordAction
    timestamp: datetime


class MedicalRecordCreate(APIModel):
    patient_id: int
    hospital_id: int
    appointment_id: Optional[int] = None
    visit_date: Optional[datetime] = None
    chief_complaint: str = Field(min_length=1, max_length=500)
    history_of_present_illness: Optional[str] = Field(default=None, max_length=2000)
    physical_examination: Optional[PhysicalExamination] = None
    diagnosis: List[Diagnosis] = []
    treatment_plan: Optional[TreatmentPlan] = None
    allergies: List[RecordAllergy] = []
    lab_results: List[LabResult] = []
    imaging_results: List[ImagingResult] = []


class MedicalRecordUpdate(APIModel):
    chief_complaint: Optional[str] = Field(default=None, min_length=1, max_length=500)
    history_of_present_illness: Optional[str] = Field(default=None, max_length=2000)
    physical_examination: Optional[PhysicalExamination] = None
    diagnosis: Optional[List[Diagnosis]] = None
    treatment_plan: Optional[TreatmentPlan] = None
    allergies: Optional[List[RecordAllergy]] = None
    lab_results: Optional[List[LabResult]] = None
    imaging_results: Optional[List[ImagingResult]] = None


class MedicalRecordRead(APIModel):
    id: int
    record_id: str
    patient_id: int
    doctor_id: int
    hospital_id: int
    appointment_id: Optional[int] = None
    visit_date: datetime
    chief_complaint: str
    history_of_present_illness: Optional[str] = None
    physical_examination: PhysicalExamination
    diagnosis: List[Diagnosis]
    treatment_plan: TreatmentPlan
    allergies: List[RecordAllergy]
    lab_results: List[LabResult]
    imaging_results: List[ImagingResult]
    progress_notes: List[ProgressNote]
    attachments: List[Attachment]
    access_log: List[AccessLogEntry]
    is_active: bool
    created_at: datetime
    updated_at: datetime
