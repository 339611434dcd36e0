"""
Sequence Service
Atomic counters for human-readable identifiers.

Each call increments the counter row with a single UPDATE inside the caller's
transaction, so two writers can never read the same value: the second one
blocks on the row (or the database write lock on SQLite) until the first
commits.
"""

import logging
from sqlmodel import Session, select
from sqlalchemy import update

from smartcare.models import Sequence

logger = logging.getLogger(__name__)

APPOINTMENT_SEQUENCE = "appointment"
RECEIPT_SEQUENCE = "receipt"
HOSPITAL_SEQUENCE = "hospital"

KNOWN_SEQUENCES = (APPOINTMENT_SEQUENCE, RECEIPT_SEQUENCE, HOSPITAL_SEQUENCE)


def ensure_sequences(session: Session, names=KNOWN_SEQUENCES) -> None:
    """Create missing counter rows so runtime increments never race on an insert."""
    existing = set(session.exec(select(Sequence.name)).all())
    missing = [name for name in names if name not in existing]
    for name in missing:
        session.add(Sequence(name=name, value=0))
    if missing:
        session.commit()
        logger.info(f"Initialized sequences: {', '.join(missing)}")


def next_value(session: Session, name: str) -> int:
    """Increment the named counter and return the new value.

    The increment is not committed here; it becomes durable together with the
    record that uses it when the caller commits.
    """
    result = session.execute(
        update(Sequence)
        .where(Sequence.name == name)
        .values(value=Sequence.value + 1)
    )
    if result.rowcount == 0:
        # Counter was never initialized for this database
        session.add(Sequence(name=name, value=1))
        session.flush()
        return 1

    return session.exec(select(Sequence.value).where(Sequence.name == name)).one()


def format_identifier(prefix: str, value: int, width: int = 6) -> str:
    return f"{prefix}{value:0{width}d}"


def next_appointment_id(session: Session) -> str:
    return format_identifier("APT", next_value(session, APPOINTMENT_SEQUENCE))


def next_receipt_number(session: Session) -> str:
    return format_identifier("RCP", next_value(session, RECEIPT_SEQUENCE))


def next_hospital_id(session: Session) -> str:
    return format_identifier("HOSP", next_value(session, HOSPITAL_SEQUENCE))
