"""
Billing Service
Payment state rules shared by the payments router and its tests:
billing totals, the status a payment starts in for each method, writing
completed payments back onto the linked appointment's fees, and refunds.
"""

import logging
import random
import time
import uuid
from datetime import datetime
from typing import Optional, Tuple

from fastapi import HTTPException, status

from smartcare.models import Appointment, Payment, PaymentMethod, PaymentStatus, FeeType
from smartcare.schemas import BillingDetails, RefundRequest
from smartcare.services.payment_gateway import GATEWAY_NAME, PaymentGateway

logger = logging.getLogger(__name__)

GATEWAY_METHODS = {
    PaymentMethod.CREDIT_CARD.value,
    PaymentMethod.DEBIT_CARD.value,
    PaymentMethod.BANK_TRANSFER.value,
    PaymentMethod.DIGITAL_WALLET.value,
}

REFUND_STATUSES = {
    PaymentStatus.REFUNDED.value,
    PaymentStatus.PARTIALLY_REFUNDED.value,
}


def compute_billing(amount: Optional[float], billing: Optional[BillingDetails]) -> Tuple[float, dict]:
    """Return the payment amount and the stored billing document.

    With services listed, each line total is unit price x quantity and
    total = subtotal + tax - discount, which is always the amount. A client
    amount that disagrees with the total is rejected. Without services the
    billing figures mirror the amount.
    """
    if billing is None or not billing.services:
        tax = billing.tax if billing else 0
        discount = billing.discount if billing else 0
        details = {
            "services": [],
            "subtotal": amount,
            "tax": tax,
            "discount": discount,
            "total": amount,
        }
        return amount, details

    services = []
    for service in billing.services:
        line = service.model_dump(mode="json")
        line["total_price"] = round(service.unit_price * service.quantity, 2)
        services.append(line)

    subtotal = round(sum(line["total_price"] for line in services), 2)
    total = round(subtotal + billing.tax - billing.discount, 2)
    if total < 0:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Discount cannot exceed subtotal plus tax"
        )

    if amount is not None and abs(amount - total) >= 0.005:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Amount does not match billing total"
        )

    details = {
        "services": services,
        "subtotal": subtotal,
        "tax": billing.tax,
        "discount": billing.discount,
        "total": total,
    }
    return total, details


def generate_transaction_reference() -> str:
    return f"TXN{int(time.time() * 1000)}{random.randint(0, 999):03d}"


def generate_refund_reference() -> str:
    return f"REF{int(time.time() * 1000)}{uuid.uuid4().hex[:4].upper()}"


def new_payment_id() -> str:
    return str(uuid.uuid4())


def initial_status(method: str) -> str:
    """Status a payment is persisted with before any gateway round-trip"""
    if method in (PaymentMethod.CASH.value, PaymentMethod.GOVERNMENT.value):
        return PaymentStatus.COMPLETED.value
    if method in GATEWAY_METHODS:
        return PaymentStatus.PROCESSING.value
    return PaymentStatus.PENDING.value


def apply_gateway(payment: Payment, gateway: PaymentGateway) -> None:
    """Run a processing payment through the gateway; leaves it completed or failed."""
    try:
        outcome = gateway.authorize(payment)
    except Exception as e:
        logger.error(f"Gateway error for payment {payment.payment_id}: {e}", exc_info=True)
        payment.status = PaymentStatus.FAILED.value
        payment.gateway_response = {
            "gateway": GATEWAY_NAME,
            "gateway_transaction_id": None,
            "gateway_status": "error",
            "gateway_message": str(e) or type(e).__name__,
            "processed_at": datetime.utcnow().isoformat(),
        }
        payment.updated_at = datetime.utcnow()
        return

    payment.gateway_response = outcome.as_gateway_response()
    if outcome.success:
        payment.status = PaymentStatus.COMPLETED.value
        logger.info(f"Payment {payment.payment_id} completed via {outcome.gateway}")
    else:
        payment.status = PaymentStatus.FAILED.value
        logger.warning(f"Payment {payment.payment_id} failed: {outcome.message}")
    payment.updated_at = datetime.utcnow()


def resolve_fee_type(payment: Payment, appointment: Appointment) -> str:
    """Which appointment fee a payment settles.

    An explicit fee type on the payment wins; otherwise a payment equal to the
    reservation fee settles the reservation and anything else the consultation.
    """
    if payment.fee_type:
        return payment.fee_type
    reservation_amount = (appointment.reservation_fee or {}).get("amount")
    if reservation_amount is not None and abs(payment.amount - reservation_amount) < 0.005:
        return FeeType.RESERVATION.value
    return FeeType.CONSULTATION.value


def reconcile_fees(payment: Payment, appointment: Appointment) -> Optional[str]:
    """Mark the settled appointment fee as paid. Returns the fee type written."""
    if payment.status != PaymentStatus.COMPLETED.value:
        return None

    fee_type = resolve_fee_type(payment, appointment)
    paid_at = datetime.utcnow().isoformat()
    if fee_type == FeeType.RESERVATION.value:
        appointment.reservation_fee = {
            **(appointment.reservation_fee or {}),
            "paid": True,
            "payment_date": paid_at,
            "payment_method": payment.method,
        }
    else:
        appointment.consultation_fee = {
            **(appointment.consultation_fee or {}),
            "amount": (appointment.consultation_fee or {}).get("amount") or payment.amount,
            "paid": True,
            "payment_date": paid_at,
            "payment_method": payment.method,
        }
    appointment.updated_at = datetime.utcnow()
    logger.info(f"Payment {payment.payment_id} settled {fee_type} fee of {appointment.appointment_id}")
    return fee_type


def apply_refund(payment: Payment, refund: RefundRequest) -> None:
    """Stamp a refund on a completed payment.

    The linked appointment's fee flags are left as they are.
    """
    if payment.refund:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Payment has already been refunded"
        )

    if payment.status != PaymentStatus.COMPLETED.value:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Can only refund completed payments"
        )

    if refund.refund_amount > payment.amount:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Refund amount cannot exceed payment amount"
        )

    reason = (refund.refund_reason or "").strip()
    if not reason:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Refund reason is required"
        )

    payment.status = (
        PaymentStatus.REFUNDED.value
        if refund.refund_amount == payment.amount
        else PaymentStatus.PARTIALLY_REFUNDED.value
    )
    payment.refund = {
        "refund_amount": refund.refund_amount,
        "refund_reason": reason,
        "refunded_at": datetime.utcnow().isoformat(),
        "refund_method": refund.refund_method.value,
        "refund_reference": generate_refund_reference(),
    }
    payment.updated_at = datetime.utcnow()
    logger.info(f"Payment {payment.payment_id} {payment.status}: {refund.refund_amount}")
