"""
Payment Gateway
Card, wallet and bank-transfer payments are authorized through a gateway.

The default implementation simulates a processor: a fixed delay, then approval
with a configurable probability. Anything with an ``authorize`` method of the
same shape can replace it (tests force approvals and declines this way).
"""

import os
import random
import time
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Protocol

logger = logging.getLogger(__name__)

GATEWAY_NAME = "simulated_gateway"


@dataclass
class GatewayOutcome:
    success: bool
    gateway: str
    status: str
    message: str
    transaction_id: Optional[str] = None
    processed_at: datetime = None

    def __post_init__(self):
        if self.processed_at is None:
            self.processed_at = datetime.utcnow()

    def as_gateway_response(self) -> dict:
        return {
            "gateway": self.gateway,
            "gateway_transaction_id": self.transaction_id,
            "gateway_status": self.status,
            "gateway_message": self.message,
            "processed_at": self.processed_at.isoformat(),
        }


class PaymentGateway(Protocol):
    def authorize(self, payment) -> GatewayOutcome:
        ...


class SimulatedGateway:
    """Stand-in processor: sleeps, then approves `success_rate` of requests."""

    def __init__(self, success_rate: float = 0.95, delay_seconds: float = 2.0, rng: Optional[random.Random] = None):
        if not 0.0 <= success_rate <= 1.0:
            raise ValueError("success_rate must be between 0 and 1")
        self.success_rate = success_rate
        self.delay_seconds = delay_seconds
        self.rng = rng or random.Random()

    def authorize(self, payment) -> GatewayOutcome:
        if self.delay_seconds > 0:
            time.sleep(self.delay_seconds)

        if self.rng.random() < self.success_rate:
            transaction_id = f"GW{int(time.time() * 1000)}{uuid.uuid4().hex[:6].upper()}"
            logger.info(f"Gateway approved payment {payment.payment_id} ({transaction_id})")
            return GatewayOutcome(
                success=True,
                gateway=GATEWAY_NAME,
                status="approved",
                message="Payment processed successfully",
                transaction_id=transaction_id,
            )

        logger.warning(f"Gateway declined payment {payment.payment_id}")
        return GatewayOutcome(
            success=False,
            gateway=GATEWAY_NAME,
            status="declined",
            message="Payment declined by gateway",
        )


_default_gateway: Optional[SimulatedGateway] = None


def get_default_gateway() -> SimulatedGateway:
    global _default_gateway
    if _default_gateway is None:
        _default_gateway = SimulatedGateway(
            success_rate=float(os.getenv("PAYMENT_GATEWAY_SUCCESS_RATE", "0.95")),
            delay_seconds=float(os.getenv("PAYMENT_GATEWAY_DELAY_SECONDS", "2.0")),
        )
    return _default_gateway
