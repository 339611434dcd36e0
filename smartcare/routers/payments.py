import logging
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlmodel import Session, select, func

from smartcare.database import get_session
from smartcare.dependencies import (
    get_current_user, require_roles, require_staff, get_payment_gateway, get_notifier, is_staff, forbid,
)
from smartcare.models import (
    User, Hospital, Appointment, Payment, PaymentMethod, PaymentStatus, UserRole,
)
from smartcare.routers.appointments import resolve_patient_id
from smartcare.schemas import (
    PaymentCreate, PaymentStatusUpdate, PaymentRead, ReceiptRequest, RefundRequest, user_summary,
)
from smartcare.services.billing import (
    compute_billing,
    generate_transaction_reference,
    new_payment_id,
    initial_status,
    apply_gateway,
    reconcile_fees,
    apply_refund,
    REFUND_STATUSES,
)
from smartcare.services.payment_gateway import PaymentGateway
from smartcare.services.sequences import next_receipt_number
from smartcare.utils.notification_service import NotificationKind, NotificationService
from smartcare.utils.responses import success_response, serialize, pagination
from smartcare.validators.business_rules import get_business_rules

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/payments", tags=["Payments"])

require_payer = require_roles(UserRole.PATIENT, UserRole.HOSPITAL_STAFF, UserRole.HEALTHCARE_MANAGER)


def appointment_reference(appointment: Optional[Appointment]) -> Optional[Dict[str, Any]]:
    if appointment is None:
        return None
    return {
        "id": appointment.id,
        "appointmentID": appointment.appointment_id,
        "date": appointment.appointment_date.isoformat(),
        "time": appointment.appointment_time,
    }


def payment_detail(session: Session, payment: Payment) -> Dict[str, Any]:
    """Payment with its patient, appointment and hospital references resolved"""
    data = serialize(PaymentRead, payment)
    hospital = session.get(Hospital, payment.hospital_id)
    appointment = session.get(Appointment, payment.appointment_id) if payment.appointment_id else None
    data["patient"] = user_summary(session.get(User, payment.patient_id))
    data["appointment"] = appointment_reference(appointment)
    data["hospital"] = {"id": hospital.id, "name": hospital.name, "address": hospital.address} if hospital else None
    return data


def get_payment_or_404(session: Session, payment_id: int) -> Payment:
    payment = session.get(Payment, payment_id)
    if not payment:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Payment not found"
        )
    return payment


def settle_appointment(session: Session, payment: Payment) -> None:
    """Write a completed payment onto its appointment's fee records"""
    if not payment.appointment_id:
        return
    appointment = session.get(Appointment, payment.appointment_id)
    if appointment and reconcile_fees(payment, appointment):
        session.add(appointment)
        session.commit()


@router.post("", status_code=status.HTTP_201_CREATED)
def create_payment(
    payment_data: PaymentCreate,
    current_user: User = Depends(require_payer),
    session: Session = Depends(get_session),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    notifier: NotificationService = Depends(get_notifier)
):
    """Process a payment. Cash and government payments complete at once, card-like methods go through the gateway."""
    patient_id = resolve_patient_id(session, current_user, payment_data.patient_id)

    hospital = session.get(Hospital, payment_data.hospital_id)
    if not hospital:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Hospital not found"
        )

    if payment_data.appointment_id is not None:
        appointment = session.get(Appointment, payment_data.appointment_id)
        if not appointment:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Appointment not found"
            )
        if appointment.patient_id != patient_id:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Appointment belongs to another patient"
            )

    amount, billing_details = compute_billing(payment_data.amount, payment_data.billing_details)
    method = payment_data.method.value

    insurance_info = payment_data.insurance_info.model_dump(mode="json") if payment_data.insurance_info else None
    if method == PaymentMethod.INSURANCE.value:
        insurance_info = {**(insurance_info or {}), "status": "pending"}

    payment = Payment(
        payment_id=new_payment_id(),
        patient_id=patient_id,
        appointment_id=payment_data.appointment_id,
        hospital_id=hospital.id,
        amount=amount,
        currency=payment_data.currency.value,
        method=method,
        status=initial_status(method),
        fee_type=payment_data.fee_type.value if payment_data.fee_type else None,
        transaction_reference=None if method == PaymentMethod.CASH.value else generate_transaction_reference(),
        billing_details=billing_details,
        insurance_info=insurance_info,
        receipt={"generated": False, "receipt_number": None, "generated_at": None, "format": None},
        processed_by=current_user.id if method == PaymentMethod.CASH.value else None,
        notes=payment_data.notes,
    )

    # Persisted before the gateway round-trip so an in-flight payment is visible
    session.add(payment)
    session.commit()
    session.refresh(payment)

    if payment.status == PaymentStatus.PROCESSING.value:
        apply_gateway(payment, gateway)
        session.add(payment)
        session.commit()
        session.refresh(payment)

    settle_appointment(session, payment)
    logger.info(f"Payment {payment.payment_id} ({method}, {payment.amount}) is {payment.status}")

    data = {"payment": payment_detail(session, payment)}
    if payment.status == PaymentStatus.COMPLETED.value:
        data["notification"] = notifier.notify(NotificationKind.PAYMENT_CONFIRMATION, payment, session)

    message = (
        "Payment processed successfully"
        if payment.status == PaymentStatus.COMPLETED.value
        else "Payment is being processed"
    )
    return success_response(data=data, message=message)


@router.get("")
def list_payments(
    status_filter: Optional[PaymentStatus] = Query(None, alias="status"),
    method: Optional[PaymentMethod] = None,
    patient_id: Optional[int] = Query(None, alias="patientID"),
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
    current_user: User = Depends(get_current_user),
    session: Session = Depends(get_session)
):
    """List payments; patients only see their own"""
    rules = get_business_rules()
    limit = min(limit or rules.DEFAULT_PAGE_SIZE, rules.MAX_PAGE_SIZE)

    query = select(Payment)
    if current_user.role == UserRole.PATIENT.value:
        query = query.where(Payment.patient_id == current_user.id)
    if status_filter:
        query = query.where(Payment.status == status_filter.value)
    if method:
        query = query.where(Payment.method == method.value)
    if patient_id:
        query = query.where(Payment.patient_id == patient_id)

    total = session.exec(select(func.count()).select_from(query.subquery())).one()
    payments = session.exec(
        query.order_by(Payment.created_at.desc(), Payment.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    ).all()

    return success_response(data={
        "payments": [payment_detail(session, p) for p in payments],
        "pagination": pagination(page, limit, total),
    })


@router.get("/{payment_id}")
def get_payment(
    payment_id: int,
    current_user: User = Depends(get_current_user),
    session: Session = Depends(get_session)
):
    payment = get_payment_or_404(session, payment_id)
    if current_user.role == UserRole.PATIENT.value and payment.patient_id != current_user.id:
        raise forbid()
    return success_response(data={"payment": payment_detail(session, payment)})


@router.put("/{payment_id}")
def update_payment(
    payment_id: int,
    update_data: PaymentStatusUpdate,
    current_user: User = Depends(require_staff),
    session: Session = Depends(get_session)
):
    """Staff-side status changes, e.g. settling an insurance claim"""
    payment = get_payment_or_404(session, payment_id)
    previous_status = payment.status

    if update_data.status is not None:
        if previous_status in REFUND_STATUSES and update_data.status != previous_status:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Refunded payments cannot change status"
            )
        payment.status = update_data.status
        if update_data.status == PaymentStatus.COMPLETED.value:
            payment.processed_by = current_user.id
    if "notes" in update_data.model_fields_set:
        payment.notes = update_data.notes
    payment.updated_at = datetime.utcnow()

    session.add(payment)
    session.commit()
    session.refresh(payment)

    if payment.status != previous_status:
        logger.info(f"Payment {payment.payment_id}: {previous_status} -> {payment.status} by {current_user.id}")
        settle_appointment(session, payment)

    return success_response(data={"payment": payment_detail(session, payment)}, message="Payment updated successfully")


@router.post("/{payment_id}/receipt")
def generate_receipt(
    payment_id: int,
    receipt_request: Optional[ReceiptRequest] = None,
    current_user: User = Depends(get_current_user),
    session: Session = Depends(get_session)
):
    """Receipt for a completed payment; the number is assigned on first request"""
    receipt_request = receipt_request or ReceiptRequest()
    payment = get_payment_or_404(session, payment_id)

    if current_user.role == UserRole.PATIENT.value:
        if payment.patient_id != current_user.id:
            raise forbid()
    elif not is_staff(current_user):
        raise forbid()

    if payment.status != PaymentStatus.COMPLETED.value:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Receipt can only be generated for completed payments"
        )

    receipt = payment.receipt or {}
    if not receipt.get("receipt_number"):
        payment.receipt = {
            "generated": True,
            "receipt_number": next_receipt_number(session),
            "generated_at": datetime.utcnow().isoformat(),
            "format": receipt_request.format,
        }
        payment.updated_at = datetime.utcnow()
        session.add(payment)
        session.commit()
        session.refresh(payment)
        logger.info(f"Receipt {payment.receipt['receipt_number']} generated for payment {payment.payment_id}")

    patient = session.get(User, payment.patient_id)
    hospital = session.get(Hospital, payment.hospital_id)
    appointment = session.get(Appointment, payment.appointment_id) if payment.appointment_id else None
    billing = payment.billing_details or {}

    receipt_data = {
        "receiptNumber": payment.receipt["receipt_number"],
        "format": receipt_request.format,
        "paymentDate": payment.created_at.isoformat(),
        "patient": {**user_summary(patient), "address": patient.address} if patient else None,
        "hospital": {
            "id": hospital.id,
            "name": hospital.name,
            "address": hospital.address,
            "contactInfo": hospital.contact_info,
        } if hospital else None,
        "appointment": appointment_reference(appointment),
        "services": serialize(PaymentRead, payment)["billingDetails"]["services"],
        "subtotal": billing.get("subtotal"),
        "tax": billing.get("tax"),
        "discount": billing.get("discount"),
        "total": billing.get("total"),
        "currency": payment.currency,
        "paymentMethod": payment.method,
        "transactionReference": payment.transaction_reference,
        "status": payment.status,
    }

    return success_response(data={"receipt": receipt_data}, message="Receipt generated successfully")


@router.post("/{payment_id}/refund")
def refund_payment(
    payment_id: int,
    refund_data: RefundRequest,
    current_user: User = Depends(require_staff),
    session: Session = Depends(get_session)
):
    """Full or partial refund of a completed payment (staff only)"""
    payment = get_payment_or_404(session, payment_id)
    apply_refund(payment, refund_data)

    session.add(payment)
    session.commit()
    session.refresh(payment)

    return success_response(data={"payment": payment_detail(session, payment)}, message="Refund processed successfully")
